"""
BACKEND CONTRACT
================

Every backend turns text into text behind the same async call:

    result = await backend.generate(text, system_prompt=None, model_hint=None)

and describes itself with the metadata the routes need (route name, models for
GET /v1/models, default model label, whether it uses session carry-over).

Backends only do their outbound I/O. They never touch the session or the
request; storing exchanges is the route's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class BackendError(Exception):
    """A backend call failed (timeout, non-zero exit, bad upstream response)."""

    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.backend = backend


@dataclass(frozen=True)
class BackendResult:
    """
    Output of one backend call.

    passthrough is True when the backend degraded to returning its input
    unchanged (translation service unreachable or empty answer).
    """
    text: str
    model_identifier: str
    passthrough: bool = False


class Backend(ABC):
    """Base class for all backends mounted by the gateway."""

    name: str = ""
    owned_by: str = "local"
    uses_session: bool = False

    @property
    @abstractmethod
    def models(self) -> List[str]:
        """Model ids listed by GET /v1/models."""

    @property
    def default_model(self) -> str:
        return self.models[0]

    @abstractmethod
    async def generate(
        self,
        text: str,
        system_prompt: Optional[str] = None,
        model_hint: Optional[str] = None,
    ) -> BackendResult:
        """Run the backend. Raises BackendError on failure."""

    async def aclose(self) -> None:
        """Release network clients or other resources. Default: nothing to do."""
        return None
