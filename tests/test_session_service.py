"""
Tests for the session store and the carry-over prompt projection.

Tests cover:
- Activity window (strict less-than timeout)
- Context snapshots and elapsed-time text
- reset() versus start_fresh()
- Bounded history eviction
- format_context_for_prompt / build_prompt
- turn(): carry-over decision and serialized read-decide-append
"""

import asyncio

import pytest

from llm_server.services.session_service import (
    CONTEXT_HEADER,
    CURRENT_DICTATION_MARKER,
    SessionContext,
    SessionExchange,
    SessionStore,
    build_prompt,
    format_context_for_prompt,
)
from llm_server.utils.time_info import format_elapsed


class TestActivityWindow:
    def test_new_store_is_inactive(self, session_store):
        assert session_store.is_active() is False
        assert session_store.current_context() is None
        assert session_store.last_activity is None

    def test_active_right_after_append(self, session_store, clock):
        session_store.append("user", "hi")
        assert session_store.last_activity == clock.now
        assert session_store.is_active() is True

    def test_active_just_before_timeout(self, session_store, clock):
        session_store.append("user", "hi")
        clock.advance(299.999)
        assert session_store.is_active() is True

    def test_inactive_exactly_at_timeout(self, session_store, clock):
        session_store.append("user", "hi")
        clock.advance(300)
        assert session_store.is_active() is False
        assert session_store.current_context() is None

    def test_append_extends_window(self, session_store, clock):
        session_store.append("user", "one")
        clock.advance(200)
        session_store.append("assistant", "two")
        clock.advance(200)
        assert session_store.is_active() is True


class TestContextSnapshot:
    def test_snapshot_contents(self, session_store, clock):
        session_store.append("user", "in")
        session_store.append("assistant", "out")
        clock.advance(42)

        context = session_store.current_context()

        assert context.message_count == 2
        assert [e.role for e in context.exchanges] == ["user", "assistant"]
        assert [e.content for e in context.exchanges] == ["in", "out"]
        assert context.time_since_last_activity == "42s ago"

    def test_snapshot_is_immutable_copy(self, session_store):
        session_store.append("user", "in")
        context = session_store.current_context()
        session_store.append("assistant", "out")

        assert isinstance(context.exchanges, tuple)
        assert len(context.exchanges) == 1

    def test_minutes_text(self, session_store, clock):
        session_store.append("user", "in")
        clock.advance(150)
        assert session_store.time_since_last_activity() == "2m ago"

    def test_stats(self, session_store, clock):
        session_store.append("user", "in")
        clock.advance(5)
        assert session_store.stats() == {
            "active": True,
            "message_count": 1,
            "time_since_last_activity": "5s ago",
        }


class TestResetAndStartFresh:
    def test_reset_clears_everything(self, session_store):
        session_store.append("user", "in")
        session_store.reset()
        assert session_store.last_activity is None
        assert session_store.is_active() is False
        assert session_store.stats()["message_count"] == 0

    def test_start_fresh_is_active_but_empty(self, session_store, clock):
        session_store.append("user", "old")
        clock.advance(1000)
        session_store.start_fresh()

        context = session_store.current_context()
        assert session_store.is_active() is True
        assert context is not None
        assert context.exchanges == ()
        assert context.message_count == 0


class TestBoundedHistory:
    def test_oldest_exchanges_evicted(self, clock):
        store = SessionStore(timeout_seconds=300, max_exchanges=4, clock=clock)
        for i in range(6):
            store.append("user" if i % 2 == 0 else "assistant", f"m{i}")

        context = store.current_context()
        assert [e.content for e in context.exchanges] == ["m2", "m3", "m4", "m5"]

    def test_zero_means_unbounded(self, session_store):
        for i in range(100):
            session_store.append("user", str(i))
        assert session_store.current_context().message_count == 100


class TestFormatContextForPrompt:
    def test_none_context(self):
        assert format_context_for_prompt(None) is None

    def test_empty_context(self):
        assert format_context_for_prompt(SessionContext((), 0, "1s ago")) is None

    def test_lines_in_order(self):
        context = SessionContext(
            exchanges=(
                SessionExchange("user", "first in", 1.0),
                SessionExchange("assistant", "first out", 2.0),
                SessionExchange("user", "second in", 3.0),
            ),
            message_count=3,
            time_since_last_activity="3s ago",
        )

        prompt = format_context_for_prompt(context)

        assert prompt.splitlines() == [
            CONTEXT_HEADER,
            'Input: "first in"',
            'Output: "first out"',
            'Input: "second in"',
            "",
            CURRENT_DICTATION_MARKER,
        ]

    def test_build_prompt_prepends_context(self):
        context = SessionContext((SessionExchange("user", "a", 1.0),), 1, "1s ago")
        assert build_prompt("now", context).endswith(f"{CURRENT_DICTATION_MARKER}\nnow")

    def test_build_prompt_without_context(self):
        assert build_prompt("now", None) == "now"


class TestTurn:
    async def test_first_turn_starts_fresh(self, session_store):
        async with session_store.turn() as turn:
            assert turn.is_carry_over is False
            assert session_store.is_active() is True
            turn.record("in", "out")

        assert session_store.current_context().message_count == 2

    async def test_second_turn_carries_over(self, session_store, clock):
        async with session_store.turn() as turn:
            turn.record("in", "out")
        clock.advance(60)

        async with session_store.turn() as turn:
            assert turn.is_carry_over is True
            assert [e.content for e in turn.context.exchanges] == ["in", "out"]

    async def test_expired_session_is_reset(self, session_store, clock):
        async with session_store.turn() as turn:
            turn.record("old in", "old out")
        clock.advance(301)

        async with session_store.turn() as turn:
            assert turn.context is None
            turn.record("new in", "new out")

        assert [e.content for e in session_store.current_context().exchanges] == ["new in", "new out"]

    async def test_failed_turn_records_nothing(self, session_store):
        with pytest.raises(RuntimeError):
            async with session_store.turn():
                raise RuntimeError("backend failed")

        assert session_store.current_context().message_count == 0

    async def test_turns_do_not_interleave(self, session_store):
        async def dictate(name: str, delay: float):
            async with session_store.turn() as turn:
                await asyncio.sleep(delay)
                turn.record(f"{name} in", f"{name} out")

        await asyncio.gather(dictate("slow", 0.05), dictate("fast", 0))

        contents = [e.content for e in session_store.current_context().exchanges]
        assert contents == ["slow in", "slow out", "fast in", "fast out"]


class TestFormatElapsed:
    @pytest.mark.parametrize(
        "seconds, expected",
        [(None, None), (0, "0s ago"), (59.9, "59s ago"), (60, "1m ago"), (299, "4m ago")],
    )
    def test_format(self, seconds, expected):
        assert format_elapsed(seconds) == expected
