"""
Shared pytest fixtures for the LLM Server test suite.

This module provides:
- A controllable clock for session timing
- A stub Claude CLI runner that records every invocation
- A stub LibreTranslate transport (httpx.MockTransport)
- A FastAPI TestClient wired to those stubs (no subprocess, no network)
"""

import json
import subprocess
from collections.abc import Generator
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from llm_server.main import create_app
from llm_server.services.backend import Backend, BackendError, BackendResult
from llm_server.services.claude_service import ClaudeBackend
from llm_server.services.session_service import SessionStore
from llm_server.services.translation_service import LibreTranslateBackend

TRANSLATE_URL = "http://translate.test/translate"


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Callable clock returning a settable epoch time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store(clock: FakeClock) -> SessionStore:
    return SessionStore(timeout_seconds=300, max_exchanges=0, clock=clock)


# ============================================================================
# CLAUDE CLI STUB
# ============================================================================


class StubRunner:
    """
    Stands in for subprocess.run. Replies with `reply(prompt)` on stdout and
    records the argument vector and keyword arguments of every call.
    """

    def __init__(self, reply: Optional[Callable[[str], str]] = None, returncode: int = 0, stderr: str = ""):
        self.reply = reply or (lambda prompt: f"claude says: {(prompt.splitlines() or [''])[-1]}")
        self.returncode = returncode
        self.stderr = stderr
        self.calls: List[Dict] = []

    def __call__(self, args, **kwargs):
        self.calls.append({"args": list(args), "kwargs": kwargs})
        prompt = args[args.index("-p") + 1]
        stdout = self.reply(prompt) if self.returncode == 0 else ""
        return subprocess.CompletedProcess(args, self.returncode, stdout=stdout, stderr=self.stderr)

    @property
    def prompts(self) -> List[str]:
        return [call["args"][call["args"].index("-p") + 1] for call in self.calls]


@pytest.fixture
def claude_runner() -> StubRunner:
    return StubRunner()


@pytest.fixture
def claude_backend(claude_runner: StubRunner) -> ClaudeBackend:
    return ClaudeBackend(command="claude", default_model="haiku", runner=claude_runner)


# ============================================================================
# LIBRETRANSLATE STUB
# ============================================================================


def translation_table(table: Dict[tuple, str]) -> Callable[[httpx.Request], httpx.Response]:
    """MockTransport handler answering {q, source, target} from a (q, source, target) table; echoes otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        key = (body["q"], body["source"], body["target"])
        return httpx.Response(200, json={"translatedText": table.get(key, body["q"])})

    return handler


@pytest.fixture
def translation_requests() -> List[Dict]:
    return []


@pytest.fixture
def translate_backend(translation_requests: List[Dict]) -> LibreTranslateBackend:
    table = {
        ("hello", "hu", "en"): "szia",
        ("szia", "en", "hu"): "hello",
    }
    answer = translation_table(table)

    def handler(request: httpx.Request) -> httpx.Response:
        translation_requests.append(json.loads(request.content))
        return answer(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LibreTranslateBackend(url=TRANSLATE_URL, source_lang="hu", pivot_lang="en", client=client)


class FailingBackend(Backend):
    """Backend that always fails, for error-path tests."""

    name = "broken"
    uses_session = False

    @property
    def models(self) -> List[str]:
        return ["broken-1"]

    async def generate(self, text, system_prompt=None, model_hint=None) -> BackendResult:
        raise BackendError("upstream exploded", backend=self.name)


# ============================================================================
# APP FIXTURES
# ============================================================================


@pytest.fixture
def test_client(
    claude_backend: ClaudeBackend,
    translate_backend: LibreTranslateBackend,
    session_store: SessionStore,
) -> Generator[TestClient, None, None]:
    """TestClient for an app with the stubbed Claude and LibreTranslate backends."""
    app = create_app(
        backends=[claude_backend, translate_backend, FailingBackend()],
        session_store=session_store,
        tailscale=None,
        show_banner=False,
    )
    with TestClient(app) as client:
        yield client
