from __future__ import annotations

import asyncio

import pytest

from photopost.core.exceptions import InvalidCoordinatesError
from photopost.pipelines.models import (
    Accuracy,
    ExtractionOutcome,
    ExtractionState,
    GeoFix,
    LocationReading,
    LocationSource,
)
from photopost.services.arbiter import LocationArbiter, compose_failure_reason


def _fix(lat: float, lon: float, source: LocationSource, accuracy: Accuracy = Accuracy.HIGH) -> GeoFix:
    fix = GeoFix.create(lat, lon, source=source, accuracy=accuracy)
    assert fix is not None
    return fix


class StubMetadataReader:
    def __init__(self, reading: LocationReading, gate: asyncio.Event | None = None) -> None:
        self.reading = reading
        self.gate = gate

    async def read(self, payload: bytes) -> LocationReading:
        if self.gate is not None:
            await self.gate.wait()
        return self.reading


class StubDeviceReader:
    def __init__(self, reading: LocationReading, gate: asyncio.Event | None = None) -> None:
        self.reading = reading
        self.gate = gate

    async def read(self) -> LocationReading:
        if self.gate is not None:
            await self.gate.wait()
        return self.reading


METADATA_FIX = _fix(52.37, 4.895, LocationSource.METADATA)
DEVICE_FIX = _fix(51.0, 5.0, LocationSource.DEVICE, Accuracy.MEDIUM)


@pytest.mark.asyncio
async def test_metadata_fix_wins_over_device() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading(fix=METADATA_FIX)),
        StubDeviceReader(LocationReading(fix=DEVICE_FIX)),
    )
    outcome = await arbiter.run(b"")

    assert outcome.state is ExtractionState.RESOLVED
    assert outcome.fix == METADATA_FIX


@pytest.mark.asyncio
async def test_device_fix_used_when_metadata_absent() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading.absent("no GPS tags in photo")),
        StubDeviceReader(LocationReading(fix=DEVICE_FIX)),
    )
    outcome = await arbiter.run(b"")

    assert outcome.state is ExtractionState.RESOLVED
    assert outcome.fix == DEVICE_FIX


@pytest.mark.asyncio
async def test_both_absent_is_unresolved_with_reason() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading.absent("no GPS tags in photo")),
        StubDeviceReader(LocationReading.absent("location access denied")),
    )
    outcome = await arbiter.run(b"")

    assert outcome.state is ExtractionState.UNRESOLVED
    assert outcome.fix is None
    assert "no GPS tags in photo" in outcome.reason
    assert "location access denied" in outcome.reason


@pytest.mark.asyncio
async def test_manual_override_during_race_survives_late_result() -> None:
    gate = asyncio.Event()
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading(fix=METADATA_FIX), gate=gate),
        StubDeviceReader(LocationReading(fix=DEVICE_FIX)),
    )
    race = asyncio.create_task(arbiter.run(b""))
    await asyncio.sleep(0)
    assert arbiter.outcome.state is ExtractionState.EXTRACTING

    await arbiter.override(48.85, 2.35)
    gate.set()
    final = await race

    assert final.fix is not None
    assert final.fix.source is LocationSource.MANUAL
    assert arbiter.current_fix.latitude == 48.85
    assert arbiter.current_fix.longitude == 2.35


@pytest.mark.asyncio
async def test_manual_override_after_resolution_replaces_fix() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading(fix=METADATA_FIX)),
        StubDeviceReader(LocationReading.absent("timeout")),
    )
    resolved = await arbiter.run(b"")
    overridden = await arbiter.override(48.85, 2.35, name="Paris")

    assert overridden.version > resolved.version
    assert overridden.fix.source is LocationSource.MANUAL
    assert overridden.fix.accuracy is Accuracy.HIGH
    assert overridden.fix.name == "Paris"


@pytest.mark.asyncio
async def test_manual_override_default_name() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading.absent("x")),
        StubDeviceReader(LocationReading.absent("y")),
    )
    outcome = await arbiter.override(48.85, 2.35)
    assert outcome.fix.name == "Manually selected (48.8500, 2.3500)"


@pytest.mark.asyncio
async def test_invalid_override_is_rejected_and_state_kept() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading(fix=METADATA_FIX)),
        StubDeviceReader(LocationReading.absent("timeout")),
    )
    before = await arbiter.run(b"")

    with pytest.raises(InvalidCoordinatesError):
        await arbiter.override(91.0, 0.0)
    with pytest.raises(InvalidCoordinatesError):
        await arbiter.override(0.0, float("nan"))
    assert arbiter.outcome == before


@pytest.mark.asyncio
async def test_slow_warning_is_advisory() -> None:
    gate = asyncio.Event()
    seen: list[ExtractionOutcome] = []
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading.absent("no GPS tags in photo")),
        StubDeviceReader(LocationReading(fix=DEVICE_FIX), gate=gate),
        slow_warning_after=0.01,
    )
    arbiter.on_change(seen.append)

    race = asyncio.create_task(arbiter.run(b""))
    await asyncio.sleep(0.05)
    assert arbiter.outcome.state is ExtractionState.EXTRACTING
    assert arbiter.outcome.slow_warning is True

    gate.set()
    outcome = await race
    assert outcome.state is ExtractionState.RESOLVED
    assert outcome.slow_warning is False
    assert [item.state for item in seen] == [
        ExtractionState.EXTRACTING,
        ExtractionState.EXTRACTING,
        ExtractionState.RESOLVED,
    ]


@pytest.mark.asyncio
async def test_reconfirm_pins_current_fix_as_manual() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading.absent("no GPS tags in photo")),
        StubDeviceReader(LocationReading(fix=DEVICE_FIX)),
    )
    await arbiter.run(b"")
    outcome = await arbiter.reconfirm()

    assert outcome.fix.source is LocationSource.MANUAL
    assert (outcome.fix.latitude, outcome.fix.longitude) == (DEVICE_FIX.latitude, DEVICE_FIX.longitude)


@pytest.mark.asyncio
async def test_reconfirm_without_fix_raises() -> None:
    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading.absent("x")),
        StubDeviceReader(LocationReading.absent("y")),
    )
    with pytest.raises(InvalidCoordinatesError):
        await arbiter.reconfirm()


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_race() -> None:
    def broken(outcome: ExtractionOutcome) -> None:
        raise RuntimeError("listener bug")

    arbiter = LocationArbiter(
        StubMetadataReader(LocationReading(fix=METADATA_FIX)),
        StubDeviceReader(LocationReading.absent("timeout")),
    )
    arbiter.on_change(broken)
    outcome = await arbiter.run(b"")
    assert outcome.state is ExtractionState.RESOLVED


def test_compose_failure_reason_without_details() -> None:
    assert compose_failure_reason(LocationReading(), LocationReading()) == "No automatic location found (no data)"


class HandshakeMetadataReader:
    def __init__(self, started: asyncio.Event, other_started: asyncio.Event) -> None:
        self.started = started
        self.other_started = other_started

    async def read(self, payload: bytes) -> LocationReading:
        self.started.set()
        await self.other_started.wait()
        return LocationReading(fix=METADATA_FIX)


class HandshakeDeviceReader:
    def __init__(self, started: asyncio.Event, other_started: asyncio.Event) -> None:
        self.started = started
        self.other_started = other_started

    async def read(self) -> LocationReading:
        self.started.set()
        await self.other_started.wait()
        return LocationReading(fix=DEVICE_FIX)


@pytest.mark.asyncio
async def test_readers_are_started_together() -> None:
    metadata_started = asyncio.Event()
    device_started = asyncio.Event()
    arbiter = LocationArbiter(
        HandshakeMetadataReader(metadata_started, device_started),
        HandshakeDeviceReader(device_started, metadata_started),
    )

    # Each reader waits for the other to start, so a sequential race would hang.
    outcome = await asyncio.wait_for(arbiter.run(b""), timeout=5.0)

    assert outcome.fix == METADATA_FIX
