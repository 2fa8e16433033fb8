"""
TRANSLATION SERVICE MODULE
==========================

LibreTranslate backend. Every dictation goes through a fixed round trip,
source -> pivot -> source (hu -> en -> hu by default), which smooths out
dictation artifacts while keeping the original language.

BEST EFFORT:
  If LibreTranslate answers without a translatedText (an error body, an empty
  string), that hop passes its input through unchanged. This is a policy, not
  an accident, so every hop returns a TranslationOutcome that says whether it
  really translated. The final BackendResult has passthrough=True if any hop
  passed through, which is the only way to tell a dead service apart from a
  translation that happened to change nothing.

  Transport errors (service down, timeout) and non-JSON answers are real
  failures and raise BackendError.

There is no system prompt and no model choice: both are ignored. Session
carry-over is not used either; every request is translated on its own.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from llm_server.services.backend import Backend, BackendError, BackendResult
from config import (
    LIBRETRANSLATE_MODEL,
    LIBRETRANSLATE_URL,
    TRANSLATION_PIVOT_LANG,
    TRANSLATION_SOURCE_LANG,
)

logger = logging.getLogger("LLM-Server")


@dataclass(frozen=True)
class TranslationOutcome:
    """Result of one translation hop. translated=False means the input was passed through."""
    text: str
    translated: bool

    @classmethod
    def passthrough(cls, text: str) -> "TranslationOutcome":
        return cls(text=text, translated=False)


# ==============================================================================
# LIBRETRANSLATE BACKEND CLASS
# ==============================================================================

class LibreTranslateBackend(Backend):
    """Round-trip translation through a LibreTranslate /translate endpoint."""

    name = "libretranslate"
    owned_by = "local"
    uses_session = False

    def __init__(
        self,
        url: str = LIBRETRANSLATE_URL,
        source_lang: str = TRANSLATION_SOURCE_LANG,
        pivot_lang: str = TRANSLATION_PIVOT_LANG,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Use the given AsyncClient, or create one (httpx default timeout) on first request."""
        self.url = url
        self.source_lang = source_lang
        self.pivot_lang = pivot_lang
        self._client = client
        self._owns_client = client is None

    @property
    def models(self) -> List[str]:
        return [LIBRETRANSLATE_MODEL]

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def translate(self, text: str, source: str, target: str) -> TranslationOutcome:
        """
        POST {q, source, target} and return the translatedText.

        A JSON answer without translatedText degrades to passthrough. Network
        errors and non-JSON bodies raise BackendError.
        """
        try:
            response = await self.client.post(
                self.url,
                json={"q": text, "source": source, "target": target},
            )
        except httpx.HTTPError as e:
            raise BackendError(f"LibreTranslate request failed: {e}", backend=self.name) from e

        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(
                f"LibreTranslate returned a non-JSON response (HTTP {response.status_code})",
                backend=self.name,
            ) from e

        if not isinstance(data, dict):
            raise BackendError("LibreTranslate returned an unexpected response", backend=self.name)

        translated = data.get("translatedText")
        if not isinstance(translated, str) or not translated:
            logger.warning(
                "LibreTranslate %s->%s returned no translation (HTTP %s, %s); passing input through",
                source,
                target,
                response.status_code,
                data.get("error", "no error message"),
            )
            return TranslationOutcome.passthrough(text)
        return TranslationOutcome(text=translated, translated=True)

    async def round_trip(self, text: str) -> List[TranslationOutcome]:
        """Translate source -> pivot, then pivot -> source. Returns both hops."""
        forward = await self.translate(text, self.source_lang, self.pivot_lang)
        back = await self.translate(forward.text, self.pivot_lang, self.source_lang)
        return [forward, back]

    async def generate(
        self,
        text: str,
        system_prompt: Optional[str] = None,
        model_hint: Optional[str] = None,
    ) -> BackendResult:
        hops = await self.round_trip(text)
        return BackendResult(
            text=hops[-1].text,
            model_identifier=LIBRETRANSLATE_MODEL,
            passthrough=not all(hop.translated for hop in hops),
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
