from __future__ import annotations

import asyncio

import pytest

from photopost.core.exceptions import PositionError
from photopost.pipelines.models import Accuracy, DevicePosition, LocationSource
from photopost.services.device_location import (
    DeviceLocationReader,
    PositionOptions,
    ReportedPositionProvider,
    UnavailablePositionProvider,
)


class CountingProvider:
    def __init__(self, position: DevicePosition) -> None:
        self.position = position
        self.calls = 0

    async def get_position(self, options: PositionOptions) -> DevicePosition:
        self.calls += 1
        return self.position


class SlowProvider:
    async def get_position(self, options: PositionOptions) -> DevicePosition:
        await asyncio.sleep(1.0)
        return DevicePosition(latitude=0.0, longitude=0.0, accuracy=1.0)


class BrokenProvider:
    async def get_position(self, options: PositionOptions) -> DevicePosition:
        raise RuntimeError("sensor exploded")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("radius", "expected"),
    [(5.0, Accuracy.HIGH), (15.0, Accuracy.MEDIUM), (250.0, Accuracy.LOW), (None, Accuracy.LOW)],
)
async def test_reported_position_is_classified(radius: float | None, expected: Accuracy) -> None:
    provider = ReportedPositionProvider(DevicePosition(latitude=51.0, longitude=5.0, accuracy=radius))
    reading = await DeviceLocationReader(provider).read()

    assert reading.fix is not None
    assert reading.fix.source is LocationSource.DEVICE
    assert reading.fix.accuracy is expected
    assert reading.fix.accuracy_radius == radius


@pytest.mark.asyncio
async def test_reported_error_becomes_reason() -> None:
    provider = ReportedPositionProvider(error_code=PositionError.PERMISSION_DENIED)
    reading = await DeviceLocationReader(provider).read()

    assert reading.fix is None
    assert reading.reason == "location access denied"


@pytest.mark.asyncio
async def test_unavailable_capability() -> None:
    reading = await DeviceLocationReader(UnavailablePositionProvider()).read()
    assert reading.fix is None
    assert reading.reason == "positioning not supported"


@pytest.mark.asyncio
async def test_slow_provider_times_out() -> None:
    reader = DeviceLocationReader(SlowProvider(), PositionOptions(timeout=0.05))
    reading = await reader.read()
    assert reading.fix is None
    assert reading.reason == "position request timed out"


@pytest.mark.asyncio
async def test_provider_bug_does_not_raise() -> None:
    reading = await DeviceLocationReader(BrokenProvider()).read()
    assert reading.fix is None
    assert reading.reason == "position unavailable"


@pytest.mark.asyncio
async def test_out_of_range_position_is_rejected() -> None:
    provider = ReportedPositionProvider(DevicePosition(latitude=123.0, longitude=5.0, accuracy=5.0))
    reading = await DeviceLocationReader(provider).read()
    assert reading.fix is None


@pytest.mark.asyncio
async def test_recent_fix_is_reused_within_maximum_age() -> None:
    now = [100.0]
    provider = CountingProvider(DevicePosition(latitude=51.0, longitude=5.0, accuracy=8.0))
    reader = DeviceLocationReader(provider, PositionOptions(maximum_age=30.0), clock=lambda: now[0])

    first = await reader.read()
    now[0] += 10.0
    second = await reader.read()
    assert provider.calls == 1
    assert second.fix == first.fix

    now[0] += 31.0
    await reader.read()
    assert provider.calls == 2
