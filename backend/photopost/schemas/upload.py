from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AssetSchema(BaseModel):
    filename: str
    content_type: str
    size_bytes: int
    checksum_sha256: str | None = None
    width: int | None = None
    height: int | None = None
    metadata: dict[str, Any] | None = None


class CompressionSchema(BaseModel):
    original_size: int
    compressed_size: int
    reduction_percent: float
    elapsed_ms: int
    width: int
    height: int


class GeoFixSchema(BaseModel):
    latitude: float
    longitude: float
    source: str
    accuracy: str
    accuracy_radius: float | None = None
    altitude: float | None = None
    captured_at: str | None = None
    name: str | None = None
    map_url: str


class LocationStatusSchema(BaseModel):
    state: str
    fix: GeoFixSchema | None = None
    reason: str | None = None
    slow_warning: bool = False
    version: int


class WeatherSchema(BaseModel):
    temperature: int
    description: str
    humidity: int
    wind_speed: int
    visibility: int | None = None
    place_name: str | None = None
    icon: str
    code: int | None = None
    provider: str


class SessionEventSchema(BaseModel):
    code: str
    label: str
    kind: str
    timestamp: datetime
    details: dict[str, Any] | None = None


class PublishResultSchema(BaseModel):
    post_id: int
    link: str
    media_id: int
    media_url: str | None = None


class UploadSessionResponse(BaseModel):
    session_id: str
    status: str
    created_at: datetime
    original: AssetSchema
    upload: AssetSchema | None = None
    compression: CompressionSchema | None = None
    preview_available: bool = False
    preview_url: str | None = None
    preview_error: str | None = None
    location: LocationStatusSchema
    weather: WeatherSchema | None = None
    weather_status: str
    published: PublishResultSchema | None = None
    last_error: str | None = None
    timeline: list[SessionEventSchema] = Field(default_factory=list)


class LocationOverrideRequest(BaseModel):
    latitude: float
    longitude: float
    name: str | None = Field(default=None, max_length=500)


class GeocodeResultSchema(BaseModel):
    latitude: float
    longitude: float
    display_name: str


class PublishRequestSchema(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    content: str = ""
    categories: list[int] = Field(default_factory=list)
    rating: int = Field(default=0, ge=0, le=5)


class CategorySchema(BaseModel):
    id: int
    name: str
