"""Location arbitration between photo metadata, device GPS and manual input.

Both automatic readers are started together and awaited until both settle; each
one bounds itself with its own timeout. Metadata GPS wins over device GPS. A
manual override is accepted in any state and always wins over an automatic
result that settles later, which is enforced with a monotonic version counter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable

from photopost.core.exceptions import InvalidCoordinatesError
from photopost.pipelines.models import (
    Accuracy,
    ExtractionOutcome,
    ExtractionState,
    GeoFix,
    LocationReading,
    LocationSource,
)
from photopost.services.device_location import DeviceLocationReader
from photopost.services.metadata import MetadataLocationReader

logger = logging.getLogger(__name__)

OutcomeListener = Callable[[ExtractionOutcome], Awaitable[None] | None]


class LocationArbiter:
    def __init__(
        self,
        metadata_reader: MetadataLocationReader,
        device_reader: DeviceLocationReader,
        *,
        slow_warning_after: float = 3.0,
    ) -> None:
        self.metadata_reader = metadata_reader
        self.device_reader = device_reader
        self.slow_warning_after = slow_warning_after
        self._outcome = ExtractionOutcome(state=ExtractionState.PENDING)
        self._clock = 0
        self._listeners: list[OutcomeListener] = []

    @property
    def outcome(self) -> ExtractionOutcome:
        return self._outcome

    @property
    def current_fix(self) -> GeoFix | None:
        return self._outcome.fix

    def on_change(self, listener: OutcomeListener) -> None:
        self._listeners.append(listener)

    async def run(self, payload: bytes) -> ExtractionOutcome:
        """Race metadata and device readers and apply the priority rule."""
        started_at = self._next_version()
        await self._publish(ExtractionOutcome(state=ExtractionState.EXTRACTING, version=started_at))
        warning_task = asyncio.create_task(self._slow_warning(started_at))
        try:
            metadata_reading, device_reading = await asyncio.gather(
                self.metadata_reader.read(payload),
                self.device_reader.read(),
            )
        finally:
            warning_task.cancel()

        if metadata_reading.fix is not None:
            outcome = ExtractionOutcome(state=ExtractionState.RESOLVED, fix=metadata_reading.fix)
        elif device_reading.fix is not None:
            outcome = ExtractionOutcome(state=ExtractionState.RESOLVED, fix=device_reading.fix)
        else:
            outcome = ExtractionOutcome(
                state=ExtractionState.UNRESOLVED,
                reason=compose_failure_reason(metadata_reading, device_reading),
            )

        # Anything applied after the race started (a manual override) takes precedence.
        if self._clock != started_at:
            logger.info("Automatic location result discarded; superseded by a manual selection")
            return self._outcome
        await self._publish(replace(outcome, version=self._next_version()))
        return self._outcome

    async def override(self, latitude: float, longitude: float, name: str | None = None) -> ExtractionOutcome:
        """Apply a user-selected coordinate, replacing any prior value."""
        fix = GeoFix.create(
            latitude,
            longitude,
            source=LocationSource.MANUAL,
            accuracy=Accuracy.HIGH,
            name=name or f"Manually selected ({float(latitude):.4f}, {float(longitude):.4f})",
        )
        if fix is None:
            raise InvalidCoordinatesError(f"Invalid coordinates: {latitude}, {longitude}")
        logger.info("Manual location selected (override): %.6f, %.6f", fix.latitude, fix.longitude)
        await self._publish(
            ExtractionOutcome(state=ExtractionState.RESOLVED, fix=fix, version=self._next_version())
        )
        return self._outcome

    async def reconfirm(self) -> ExtractionOutcome:
        """Pin the currently detected location as a manual choice."""
        current = self._outcome.fix
        if current is None:
            raise InvalidCoordinatesError("No location to confirm")
        name = current.name or f"Current location ({current.latitude:.4f}, {current.longitude:.4f})"
        return await self.override(current.latitude, current.longitude, name=name)

    def _next_version(self) -> int:
        self._clock += 1
        return self._clock

    async def _publish(self, outcome: ExtractionOutcome) -> None:
        self._outcome = outcome
        await self._notify()

    async def _slow_warning(self, started_at: int) -> None:
        await asyncio.sleep(self.slow_warning_after)
        if self._clock != started_at:
            return
        logger.info("Location extraction is slow (>%.1fs)", self.slow_warning_after)
        await self._publish(replace(self._outcome, slow_warning=True))

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(self._outcome)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:  # noqa: BLE001 - listeners are consumers, not part of the race
                logger.warning("Location listener failed: %s", exc)


def compose_failure_reason(metadata: LocationReading, device: LocationReading) -> str:
    """Advisory text explaining why neither reader produced a fix."""
    parts = []
    if metadata.reason:
        parts.append(f"photo: {metadata.reason}")
    if device.reason:
        parts.append(f"device: {device.reason}")
    detail = "; ".join(parts) if parts else "no data"
    return f"No automatic location found ({detail})"
