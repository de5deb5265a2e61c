from __future__ import annotations

import base64
import math
from dataclasses import dataclass, field
from enum import Enum


class LocationSource(str, Enum):
    METADATA = "metadata"
    DEVICE = "device"
    MANUAL = "manual"


class Accuracy(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExtractionState(str, Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class WeatherIcon(str, Enum):
    SUN = "sun"
    CLOUD = "cloud"
    RAIN = "rain"
    SNOW = "snow"


@dataclass(slots=True, frozen=True)
class RawAsset:
    """User-selected image, immutable once selected."""

    payload: bytes = field(repr=False)
    content_type: str
    filename: str

    @property
    def size_bytes(self) -> int:
        return len(self.payload)


@dataclass(slots=True, frozen=True)
class ProcessedAsset:
    """Upload-ready derivative of a RawAsset."""

    payload: bytes = field(repr=False)
    content_type: str
    filename: str
    substituted: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.payload)

    @classmethod
    def passthrough(cls, asset: RawAsset) -> "ProcessedAsset":
        return cls(payload=asset.payload, content_type=asset.content_type, filename=asset.filename)


@dataclass(slots=True, frozen=True)
class CompressionInfo:
    original_size: int
    compressed_size: int
    reduction_percent: float
    elapsed_ms: int
    width: int
    height: int


@dataclass(slots=True, frozen=True)
class ImageInfo:
    width: int
    height: int
    size_bytes: int
    content_type: str
    filename: str
    error: bool = False


@dataclass(slots=True, frozen=True)
class PreviewImage:
    payload: bytes = field(repr=False)
    width: int
    height: int
    content_type: str = "image/jpeg"

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.payload).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


@dataclass(slots=True, frozen=True)
class GeoFix:
    """A single resolved coordinate plus provenance and precision class.

    Build through ``GeoFix.create`` so that out-of-range coordinates yield
    ``None`` instead of an invalid fix.
    """

    latitude: float
    longitude: float
    source: LocationSource
    accuracy: Accuracy
    altitude: float | None = None
    captured_at: str | None = None
    accuracy_radius: float | None = None
    name: str | None = None

    @staticmethod
    def valid_coordinates(latitude: float, longitude: float) -> bool:
        try:
            lat = float(latitude)
            lon = float(longitude)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0

    @classmethod
    def create(
        cls,
        latitude: float,
        longitude: float,
        *,
        source: LocationSource,
        accuracy: Accuracy,
        altitude: float | None = None,
        captured_at: str | None = None,
        accuracy_radius: float | None = None,
        name: str | None = None,
    ) -> "GeoFix | None":
        if not cls.valid_coordinates(latitude, longitude):
            return None
        return cls(
            latitude=float(latitude),
            longitude=float(longitude),
            source=source,
            accuracy=accuracy,
            altitude=altitude,
            captured_at=captured_at,
            accuracy_radius=accuracy_radius,
            name=name,
        )

    @property
    def map_url(self) -> str:
        return f"https://maps.google.com/?q={self.latitude},{self.longitude}"


@dataclass(slots=True, frozen=True)
class ExtractionOutcome:
    state: ExtractionState
    fix: GeoFix | None = None
    reason: str | None = None
    version: int = 0
    slow_warning: bool = False


@dataclass(slots=True, frozen=True)
class WeatherSnapshot:
    temperature: int
    description: str
    humidity: int
    wind_speed: int
    icon: WeatherIcon
    visibility: int | None = None
    place_name: str | None = None
    code: int | None = None
    provider: str = "wttr.in"


@dataclass(slots=True, frozen=True)
class DevicePosition:
    """Raw reading from the host's positioning capability."""

    latitude: float
    longitude: float
    accuracy: float | None
    altitude: float | None = None
    timestamp: float | None = None


@dataclass(slots=True, frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: str


@dataclass(slots=True)
class PublishRequest:
    asset: ProcessedAsset
    title: str
    content: str = ""
    categories: list[int] = field(default_factory=list)
    rating: int = 0
    location: GeoFix | None = None
    weather: WeatherSnapshot | None = None


@dataclass(slots=True, frozen=True)
class PublishResult:
    post_id: int
    link: str
    media_id: int
    media_url: str | None = None


@dataclass(slots=True, frozen=True)
class LocationReading:
    """Settled outcome of one location reader: a fix, or the reason there is none."""

    fix: GeoFix | None = None
    reason: str | None = None

    @classmethod
    def absent(cls, reason: str) -> "LocationReading":
        return cls(fix=None, reason=reason)
