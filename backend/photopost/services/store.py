from __future__ import annotations

import asyncio
import logging

from photopost.services.session import UploadSession

logger = logging.getLogger(__name__)


class SessionStore:
    """In-memory registry of upload sessions and their background runs."""

    def __init__(self, max_sessions: int = 100) -> None:
        self._sessions: dict[str, UploadSession] = {}
        self._runs: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self.max_sessions = max_sessions

    async def add(self, session: UploadSession) -> None:
        async with self._lock:
            self._sessions[session.id] = session
            self._evict_oldest()

    async def get(self, session_id: str) -> UploadSession | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def start(self, session: UploadSession) -> asyncio.Task:
        task = asyncio.create_task(session.run())
        async with self._lock:
            self._runs[session.id] = task
        task.add_done_callback(lambda done: self._finish(session.id, done))
        return task

    async def wait(self, session_id: str) -> None:
        async with self._lock:
            task = self._runs.get(session_id)
            session = self._sessions.get(session_id)
        if task is not None:
            await task
        if session is not None:
            await session.wait_idle()

    def _evict_oldest(self) -> None:
        # In-flight runs stay referenced in _runs and finish on their own timeouts.
        while len(self._sessions) > self.max_sessions:
            oldest_id = min(self._sessions, key=lambda key: self._sessions[key].created_at)
            self._sessions.pop(oldest_id, None)

    def _finish(self, session_id: str, task: asyncio.Task) -> None:
        if self._runs.get(session_id) is task:
            self._runs.pop(session_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session %s processing failed: %s", session_id, exc)


session_store = SessionStore()
