from __future__ import annotations

import asyncio
import json
from typing import Any


class EventBus:
    """Fans session progress out to SSE listeners, optionally one session each."""

    def __init__(self) -> None:
        # queue -> session id it follows, None for every session
        self._subscribers: dict[asyncio.Queue[str], str | None] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, session_id: str | None = None) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        async with self._lock:
            self._subscribers[queue] = session_id
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        async with self._lock:
            self._subscribers.pop(queue, None)

    async def publish(self, payload: dict[str, Any]) -> None:
        message = json.dumps(payload, default=str)
        target = payload.get("sessionId")
        async with self._lock:
            for queue, session_id in list(self._subscribers.items()):
                if session_id is None or session_id == target:
                    await queue.put(message)


event_bus = EventBus()
