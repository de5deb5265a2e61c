from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Callable

from PIL import ExifTags, Image

from photopost.pipelines.models import Accuracy, GeoFix, LocationReading, LocationSource
from photopost.services.geo import as_float, dms_to_decimal

logger = logging.getLogger(__name__)

GPS_IFD_TAG = 0x8825

REASON_NO_TAGS = "no GPS tags in photo"
REASON_INVALID = "GPS tags in photo are out of range"
REASON_PARSE_ERROR = "photo metadata could not be read"
REASON_TIMEOUT = "photo metadata read timed out"


def read_gps_fix(payload: bytes) -> LocationReading:
    """Parse embedded GPS tags from image bytes (blocking)."""
    try:
        with Image.open(BytesIO(payload)) as img:
            exif = img.getexif()
            raw_gps = exif.get_ifd(GPS_IFD_TAG) if exif else {}
    except Exception as exc:  # noqa: BLE001 - any decoder failure means "no fix"
        logger.debug("EXIF parsing failed: %s", exc)
        return LocationReading.absent(REASON_PARSE_ERROR)

    if not raw_gps:
        return LocationReading.absent(REASON_NO_TAGS)

    gps_map = {ExifTags.GPSTAGS.get(key, key): value for key, value in raw_gps.items()}
    lat_dms = gps_map.get("GPSLatitude")
    lat_ref = gps_map.get("GPSLatitudeRef")
    lon_dms = gps_map.get("GPSLongitude")
    lon_ref = gps_map.get("GPSLongitudeRef")
    if not (lat_dms and lat_ref and lon_dms and lon_ref):
        return LocationReading.absent(REASON_NO_TAGS)

    try:
        latitude = dms_to_decimal(lat_dms, lat_ref)
        longitude = dms_to_decimal(lon_dms, lon_ref)
    except (TypeError, ValueError, ZeroDivisionError) as exc:
        logger.debug("GPS tag conversion failed: %s", exc)
        return LocationReading.absent(REASON_PARSE_ERROR)

    fix = GeoFix.create(
        round(latitude, 6),
        round(longitude, 6),
        source=LocationSource.METADATA,
        accuracy=Accuracy.HIGH,
        altitude=_parse_altitude(gps_map.get("GPSAltitude"), gps_map.get("GPSAltitudeRef")),
        captured_at=_parse_gps_timestamp(gps_map.get("GPSDateStamp"), gps_map.get("GPSTimeStamp")),
    )
    if fix is None:
        return LocationReading.absent(REASON_INVALID)
    return LocationReading(fix=fix)


def extract_image_metadata(payload: bytes) -> dict[str, Any]:
    """Return selected EXIF metadata (capture time, dimensions) if available."""
    metadata: dict[str, Any] = {}
    try:
        with Image.open(BytesIO(payload)) as img:
            metadata["width"], metadata["height"] = img.size
            exif = img.getexif()
            if not exif:
                return metadata
            labeled = {ExifTags.TAGS.get(tag, tag): value for tag, value in exif.items()}
            exif_ifd = exif.get_ifd(0x8769)
            labeled.update({ExifTags.TAGS.get(tag, tag): value for tag, value in exif_ifd.items()})

            if "DateTimeOriginal" in labeled:
                metadata["captured_at"] = _parse_datetime(labeled["DateTimeOriginal"])
            elif "DateTime" in labeled:
                metadata["captured_at"] = _parse_datetime(labeled["DateTime"])
            for key in ("Make", "Model"):
                if key in labeled:
                    metadata[key.lower()] = str(labeled[key]).strip("\x00 ")
    except Exception:  # noqa: BLE001
        # Metadata is informational; keep ingestion resilient.
        return metadata

    return metadata


def _parse_datetime(value: Any) -> str:
    try:
        dt = datetime.strptime(value, "%Y:%m:%d %H:%M:%S")
        return dt.isoformat()
    except (TypeError, ValueError):
        return str(value)


def _parse_altitude(altitude: Any, ref: Any) -> float | None:
    if altitude is None:
        return None
    try:
        value = as_float(altitude)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    # GPSAltitudeRef 1 means below sea level.
    if ref in (1, b"\x01", "1"):
        value = -value
    return value


def _parse_gps_timestamp(date_stamp: Any, time_stamp: Any) -> str | None:
    if not date_stamp or not time_stamp:
        return None
    try:
        hours, minutes, seconds = (int(as_float(part)) for part in time_stamp)
    except (TypeError, ValueError, ZeroDivisionError):
        logger.debug("Could not parse GPS timestamp %r", time_stamp)
        return None
    return f"{str(date_stamp).strip()} {hours:02d}:{minutes:02d}:{seconds:02d}"


class MetadataLocationReader:
    """Reads embedded GPS tags off the event loop, bounded by a hard timeout."""

    def __init__(
        self,
        timeout: float = 5.0,
        parser: Callable[[bytes], LocationReading] = read_gps_fix,
    ) -> None:
        self.timeout = timeout
        self._parser = parser

    async def read(self, payload: bytes) -> LocationReading:
        try:
            reading = await asyncio.wait_for(asyncio.to_thread(self._parser, payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info("Metadata GPS extraction timed out after %.1fs", self.timeout)
            return LocationReading.absent(REASON_TIMEOUT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Metadata GPS extraction failed: %s", exc)
            return LocationReading.absent(REASON_PARSE_ERROR)

        if reading.fix is not None:
            logger.info("Metadata GPS found: %.6f, %.6f", reading.fix.latitude, reading.fix.longitude)
        else:
            logger.info("No metadata GPS fix: %s", reading.reason)
        return reading
