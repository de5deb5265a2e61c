"""Device position acquisition.

The positioning capability lives on the client; the backend sees it through a
``PositionProvider``. The mobile client reports what its sensor returned (or the
error it got) with the upload, and an optional IP lookup can stand in when it
reported nothing.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx

from photopost.core.exceptions import PositionError
from photopost.pipelines.models import DevicePosition, GeoFix, LocationReading, LocationSource
from photopost.services.geo import classify_accuracy

logger = logging.getLogger(__name__)

# Coarse IP lookups resolve to a city at best.
IP_GEOLOCATION_RADIUS_METERS = 5000.0


@dataclass(slots=True, frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout: float = 8.0
    maximum_age: float = 30.0


class PositionProvider(Protocol):
    async def get_position(self, options: PositionOptions) -> DevicePosition:
        ...


class UnavailablePositionProvider:
    """Host without a positioning capability."""

    async def get_position(self, options: PositionOptions) -> DevicePosition:
        raise PositionError(PositionError.UNAVAILABLE)


class ReportedPositionProvider:
    """Position (or failure code) reported by the mobile client with the upload."""

    def __init__(self, position: DevicePosition | None = None, error_code: str | None = None) -> None:
        self._position = position
        self._error_code = error_code

    async def get_position(self, options: PositionOptions) -> DevicePosition:
        if self._position is not None:
            return self._position
        raise PositionError(self._error_code or PositionError.POSITION_UNAVAILABLE)


class IPGeolocationProvider:
    """Coarse position from an ip-api.com compatible endpoint."""

    def __init__(self, url: str, user_agent: str = "WP-Photo-Uploader/1.0") -> None:
        self.url = url
        self.user_agent = user_agent

    async def get_position(self, options: PositionOptions) -> DevicePosition:
        try:
            async with httpx.AsyncClient(timeout=options.timeout) as client:
                response = await client.get(self.url, headers={"User-Agent": self.user_agent})
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as exc:
            raise PositionError(PositionError.TIMEOUT) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise PositionError(PositionError.POSITION_UNAVAILABLE, f"IP geolocation failed: {exc}") from exc

        if payload.get("status", "success") != "success" or "lat" not in payload or "lon" not in payload:
            raise PositionError(PositionError.POSITION_UNAVAILABLE)
        return DevicePosition(
            latitude=float(payload["lat"]),
            longitude=float(payload["lon"]),
            accuracy=IP_GEOLOCATION_RADIUS_METERS,
            timestamp=time.time() * 1000,
        )


class DeviceLocationReader:
    """Requests a single position fix, accepting a recent cached one."""

    def __init__(
        self,
        provider: PositionProvider,
        options: PositionOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.options = options or PositionOptions()
        self._clock = clock
        self._cached: tuple[float, GeoFix] | None = None

    async def read(self) -> LocationReading:
        cached = self._cached_fix()
        if cached is not None:
            logger.debug("Using cached device fix")
            return LocationReading(fix=cached)

        try:
            position = await asyncio.wait_for(
                self.provider.get_position(self.options),
                timeout=self.options.timeout,
            )
        except asyncio.TimeoutError:
            logger.info("Device GPS timed out after %.1fs", self.options.timeout)
            return LocationReading.absent(PositionError.MESSAGES[PositionError.TIMEOUT])
        except PositionError as exc:
            logger.info("Device GPS error (%s): %s", exc.code, exc)
            return LocationReading.absent(str(exc))
        except Exception as exc:  # noqa: BLE001 - a provider bug must not break the race
            logger.warning("Device GPS provider failed: %s", exc)
            return LocationReading.absent(PositionError.MESSAGES[PositionError.POSITION_UNAVAILABLE])

        fix = GeoFix.create(
            position.latitude,
            position.longitude,
            source=LocationSource.DEVICE,
            accuracy=classify_accuracy(position.accuracy),
            altitude=position.altitude,
            captured_at=_format_timestamp(position.timestamp),
            accuracy_radius=position.accuracy,
        )
        if fix is None:
            logger.info("Device GPS returned out-of-range coordinates")
            return LocationReading.absent(PositionError.MESSAGES[PositionError.POSITION_UNAVAILABLE])

        logger.info(
            "Device GPS position received: %.6f, %.6f (±%sm)",
            fix.latitude,
            fix.longitude,
            position.accuracy,
        )
        self._cached = (self._clock(), fix)
        return LocationReading(fix=fix)

    def _cached_fix(self) -> GeoFix | None:
        if self._cached is None or self.options.maximum_age <= 0:
            return None
        stored_at, fix = self._cached
        if self._clock() - stored_at > self.options.maximum_age:
            return None
        return fix


def _format_timestamp(timestamp_ms: float | None) -> str | None:
    if timestamp_ms is None:
        return None
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(timestamp_ms / 1000))
