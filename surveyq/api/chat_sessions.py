"""Per-session chat state with last-request-wins cancellation.

A chat session accepts one in-flight request at a time. A newer request for
the same session cancels the older task; if the older task finished anyway,
its result is discarded. Only the latest request's result is committed to
the session history.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Awaitable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_SESSION_HISTORY = 50
MAX_SESSIONS = 1000


class RequestSuperseded(Exception):
    """Raised to the caller whose request was replaced by a newer one."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Request for chat session {session_id!r} was superseded")
        self.session_id = session_id


class LatestRequestGate:
    """Run at most one live task per key; newer submissions cancel older ones."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run(self, key: str, work: Awaitable[T]) -> T:
        """Run ``work`` as the latest request for ``key``.

        Raises:
            RequestSuperseded: A newer request for the same key arrived first.
        """
        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.info("chat_request_superseded", session_id=key)

        task = asyncio.ensure_future(work)
        self._tasks[key] = task
        try:
            result = await task
        except asyncio.CancelledError:
            current = self._tasks.get(key)
            if task.cancelled() and current is not None and current is not task:
                raise RequestSuperseded(key) from None
            raise
        finally:
            if self._tasks.get(key) is task and task.done():
                del self._tasks[key]

        # No await between this check and the caller's commit
        if self._tasks.get(key, task) is not task:
            raise RequestSuperseded(key)
        return result

    async def cancel_all(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


@dataclass
class ChatSession:
    """Conversation history for one chat session."""

    session_id: str
    history: list[dict[str, str]] = field(default_factory=list)

    def commit(self, user_message: str, reply: str) -> None:
        self.history.append({"role": "user", "content": user_message})
        self.history.append({"role": "assistant", "content": reply})
        del self.history[:-MAX_SESSION_HISTORY]


class ChatSessionStore:
    """In-memory chat sessions plus the gate that serializes their requests.

    Sessions are kept in least-recently-used order. Past ``max_sessions`` the
    oldest idle session is evicted; sessions with a request in flight stay.
    """

    def __init__(self, max_sessions: int = MAX_SESSIONS) -> None:
        self._sessions: OrderedDict[str, ChatSession] = OrderedDict()
        self.max_sessions = max_sessions
        self.gate = LatestRequestGate()

    def get(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ChatSession(session_id=session_id)
            self._sessions[session_id] = session
            self._evict(keep=session_id)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def _evict(self, keep: str) -> None:
        overflow = len(self._sessions) - self.max_sessions
        if overflow <= 0:
            return
        idle = [
            sid for sid in self._sessions if sid != keep and not self.gate.in_flight(sid)
        ]
        for session_id in idle[:overflow]:
            del self._sessions[session_id]
            logger.debug("chat_session_evicted", session_id=session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
