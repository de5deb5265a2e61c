from __future__ import annotations

import json

import pytest

from photopost.services.events import EventBus


@pytest.mark.asyncio
async def test_session_subscriber_only_receives_its_session() -> None:
    bus = EventBus()
    queue = await bus.subscribe("abc")

    await bus.publish({"sessionId": "other", "stage": {"code": "preview:ready"}})
    await bus.publish({"sessionId": "abc", "stage": {"code": "location:resolved"}})

    message = json.loads(queue.get_nowait())
    assert message == {"sessionId": "abc", "stage": {"code": "location:resolved"}}
    assert queue.empty()


@pytest.mark.asyncio
async def test_unfiltered_subscriber_receives_every_session() -> None:
    bus = EventBus()
    queue = await bus.subscribe()

    await bus.publish({"sessionId": "one", "stage": {"code": "upload:accepted"}})
    await bus.publish({"sessionId": "two", "stage": {"code": "upload:accepted"}})

    received = [json.loads(queue.get_nowait())["sessionId"] for _ in range(2)]
    assert received == ["one", "two"]


@pytest.mark.asyncio
async def test_unsubscribed_queue_stops_receiving() -> None:
    bus = EventBus()
    queue = await bus.subscribe("abc")
    await bus.unsubscribe(queue)

    await bus.publish({"sessionId": "abc", "stage": {"code": "weather:ready"}})

    assert queue.empty()
