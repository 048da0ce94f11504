"""Tests for chat session history and last-request-wins cancellation."""

from __future__ import annotations

import asyncio

import pytest

from surveyq.api.chat_sessions import (
    MAX_SESSION_HISTORY,
    ChatSession,
    ChatSessionStore,
    LatestRequestGate,
    RequestSuperseded,
)


async def _value(value, delay: float = 0.0):
    await asyncio.sleep(delay)
    return value


class TestLatestRequestGate:
    @pytest.mark.asyncio
    async def test_single_request(self):
        gate = LatestRequestGate()
        assert await gate.run("s1", _value("reply")) == "reply"
        assert not gate.in_flight("s1")

    @pytest.mark.asyncio
    async def test_newer_request_supersedes_older(self):
        gate = LatestRequestGate()
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "old"

        first = asyncio.create_task(gate.run("s1", slow()))
        await asyncio.sleep(0)
        assert gate.in_flight("s1")

        assert await gate.run("s1", _value("new")) == "new"
        with pytest.raises(RequestSuperseded):
            await first

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self):
        gate = LatestRequestGate()
        first = asyncio.create_task(gate.run("s1", _value("one", delay=0.01)))
        second = asyncio.create_task(gate.run("s2", _value("two", delay=0.01)))
        assert await asyncio.gather(first, second) == ["one", "two"]

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        gate = LatestRequestGate()

        async def failing():
            raise ValueError("model failed")

        with pytest.raises(ValueError):
            await gate.run("s1", failing())
        assert not gate.in_flight("s1")

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        gate = LatestRequestGate()
        pending = asyncio.create_task(gate.run("s1", asyncio.sleep(10)))
        await asyncio.sleep(0)

        await gate.cancel_all()

        assert not gate.in_flight("s1")
        with pytest.raises(asyncio.CancelledError):
            await pending


class TestChatSessions:
    def test_commit_appends_turn_pair(self):
        session = ChatSession(session_id="s1")
        session.commit("How many questions?", "Ten is a good start.")
        assert session.history == [
            {"role": "user", "content": "How many questions?"},
            {"role": "assistant", "content": "Ten is a good start."},
        ]

    def test_history_capped(self):
        session = ChatSession(session_id="s1")
        for i in range(MAX_SESSION_HISTORY):
            session.commit(f"message {i}", f"reply {i}")
        assert len(session.history) == MAX_SESSION_HISTORY
        assert session.history[-1]["content"] == f"reply {MAX_SESSION_HISTORY - 1}"

    def test_store_reuses_sessions(self):
        store = ChatSessionStore()
        assert store.get("a") is store.get("a")
        store.get("b")
        assert len(store) == 2

    def test_store_is_bounded(self):
        store = ChatSessionStore(max_sessions=100)
        for i in range(10_000):
            store.get(f"s{i}")
        assert len(store) == 100
        assert "s9999" in store
        assert "s0" not in store

    def test_eviction_drops_least_recently_used(self):
        store = ChatSessionStore(max_sessions=2)
        first = store.get("a")
        store.get("b")
        assert store.get("a") is first
        store.get("c")
        assert "a" in store
        assert "b" not in store

    @pytest.mark.asyncio
    async def test_busy_session_is_not_evicted(self):
        store = ChatSessionStore(max_sessions=1)
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "done"

        store.get("busy")
        task = asyncio.create_task(store.gate.run("busy", slow()))
        await asyncio.sleep(0)
        store.get("other")
        assert "busy" in store
        assert "other" in store

        release.set()
        assert await task == "done"
        store.get("third")
        assert "busy" not in store
        assert len(store) == 1
