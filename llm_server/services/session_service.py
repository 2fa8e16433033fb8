"""
SESSION SERVICE MODULE
======================

In-memory conversational memory for dictation carry-over. There is exactly one
session per server (single-user design): no session ids, no persistence, and
everything is gone after a restart.

A session is "active" while the last exchange is less than SESSION_TIMEOUT_SECONDS
old (strictly less: at exactly the timeout the session has expired). When a
request arrives:

  - active   -> the stored exchanges are carried over into the prompt;
  - inactive -> start_fresh() clears the history and marks the session active.

Either way the (dictated input, output) pair is appended after the backend call.

CONCURRENCY:
  Primitive operations are guarded by a threading lock. turn() additionally
  serializes whole read-decide-append sequences with an asyncio lock, so two
  overlapping requests cannot interleave their exchanges or read half-written
  context. The price is that session-backed requests run one at a time.

BOUNDS:
  With max_exchanges > 0 the oldest exchanges are evicted first.
"""

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Tuple

from llm_server.utils.time_info import format_elapsed
from config import SESSION_MAX_EXCHANGES, SESSION_TIMEOUT_SECONDS

logger = logging.getLogger("LLM-Server")

CONTEXT_HEADER = "[Previous dictations in this session]"
CURRENT_DICTATION_MARKER = "[Current dictation]"


@dataclass(frozen=True)
class SessionExchange:
    """One stored message: role is 'user' or 'assistant', timestamp in epoch seconds."""
    role: str
    content: str
    timestamp: float


@dataclass(frozen=True)
class SessionContext:
    """Immutable snapshot of an active session, handed to the prompt builder and the logs."""
    exchanges: Tuple[SessionExchange, ...]
    message_count: int
    time_since_last_activity: Optional[str]


@dataclass
class SessionTurn:
    """What a single request saw when it entered the session (see SessionStore.turn)."""
    store: "SessionStore"
    context: Optional[SessionContext]

    @property
    def is_carry_over(self) -> bool:
        return self.context is not None

    def record(self, user_text: str, assistant_text: str) -> None:
        """Append the exchange pair of this request."""
        self.store.append("user", user_text)
        self.store.append("assistant", assistant_text)


class SessionStore:
    """
    Owns the single dictation session. Created once per app (see main.lifespan)
    and injected into the routes that need carry-over.
    """

    def __init__(
        self,
        timeout_seconds: float = SESSION_TIMEOUT_SECONDS,
        max_exchanges: int = SESSION_MAX_EXCHANGES,
        clock: Callable[[], float] = time.time,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_exchanges = max_exchanges
        self._clock = clock
        self._exchanges: List[SessionExchange] = []
        self._last_activity: Optional[float] = None
        self._lock = threading.RLock()
        self._turn_lock: Optional[asyncio.Lock] = None

    # -------------------------------------------------------------------------
    # STATE QUERIES
    # -------------------------------------------------------------------------

    @property
    def last_activity(self) -> Optional[float]:
        return self._last_activity

    def is_active(self) -> bool:
        """True iff there was activity less than timeout_seconds ago."""
        with self._lock:
            if self._last_activity is None:
                return False
            return self._clock() - self._last_activity < self.timeout_seconds

    def time_since_last_activity(self) -> Optional[str]:
        with self._lock:
            if self._last_activity is None:
                return None
            return format_elapsed(self._clock() - self._last_activity)

    def current_context(self) -> Optional[SessionContext]:
        """Snapshot of the session, or None if it has expired (or never started)."""
        with self._lock:
            if not self.is_active():
                return None
            return SessionContext(
                exchanges=tuple(self._exchanges),
                message_count=len(self._exchanges),
                time_since_last_activity=self.time_since_last_activity(),
            )

    def stats(self) -> dict:
        """Session summary for logging."""
        with self._lock:
            return {
                "active": self.is_active(),
                "message_count": len(self._exchanges),
                "time_since_last_activity": self.time_since_last_activity(),
            }

    # -------------------------------------------------------------------------
    # MUTATIONS
    # -------------------------------------------------------------------------

    def append(self, role: str, content: str) -> None:
        """Store one exchange and mark the session as active now."""
        with self._lock:
            now = self._clock()
            self._exchanges.append(SessionExchange(role=role, content=content, timestamp=now))
            self._last_activity = now
            if self.max_exchanges > 0 and len(self._exchanges) > self.max_exchanges:
                dropped = len(self._exchanges) - self.max_exchanges
                del self._exchanges[:dropped]
                logger.debug("Session history full, evicted %s oldest exchange(s)", dropped)

    def reset(self) -> None:
        """Forget everything, including the last activity."""
        with self._lock:
            self._exchanges = []
            self._last_activity = None

    def start_fresh(self) -> None:
        """Reset, then mark the empty session as active now (new session, not timed out)."""
        with self._lock:
            self.reset()
            self._last_activity = self._clock()

    # -------------------------------------------------------------------------
    # REQUEST TURNS
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def turn(self) -> AsyncIterator[SessionTurn]:
        """
        Hold the session for one request.

        On entry: read the context if the session is active, otherwise start a
        fresh session. The caller runs its backend call inside the block and then
        calls turn.record(...). Other turns wait until this one is finished.
        """
        if self._turn_lock is None:
            self._turn_lock = asyncio.Lock()
        async with self._turn_lock:
            with self._lock:
                context = self.current_context()
                if context is None:
                    self.start_fresh()
            yield SessionTurn(store=self, context=context)


def format_context_for_prompt(context: Optional[SessionContext]) -> Optional[str]:
    """
    Render carried-over exchanges as a prompt prefix, or None if there is nothing to carry.

        [Previous dictations in this session]
        Input: "..."
        Output: "..."

        [Current dictation]
    """
    if context is None or not context.exchanges:
        return None

    lines = [CONTEXT_HEADER]
    for exchange in context.exchanges:
        if exchange.role == "user":
            lines.append(f'Input: "{exchange.content}"')
        else:
            lines.append(f'Output: "{exchange.content}"')
    lines.append("")
    lines.append(CURRENT_DICTATION_MARKER)
    return "\n".join(lines)


def build_prompt(text: str, context: Optional[SessionContext]) -> str:
    """Prepend the carried-over context (if any) to the normalized input."""
    prefix = format_context_for_prompt(context)
    if prefix:
        return prefix + "\n" + text
    return text
