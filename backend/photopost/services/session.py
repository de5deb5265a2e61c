"""Upload session: one user-initiated capture from selection to publication."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from photopost.core.config import Settings
from photopost.core.exceptions import PhotoPostError, PreviewError
from photopost.pipelines.models import (
    CompressionInfo,
    ExtractionOutcome,
    ExtractionState,
    GeoFix,
    ImageInfo,
    PreviewImage,
    ProcessedAsset,
    PublishRequest,
    PublishResult,
    RawAsset,
    WeatherSnapshot,
)
from photopost.services.arbiter import LocationArbiter
from photopost.services.device_location import (
    DeviceLocationReader,
    PositionOptions,
    PositionProvider,
)
from photopost.services.metadata import MetadataLocationReader, extract_image_metadata
from photopost.services.preview import PreviewGenerator
from photopost.services.publisher import WordPressPublisher
from photopost.services.transcoder import ImageTranscoder, TranscodePolicy, read_image_info
from photopost.services.weather import WeatherLookup

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class SessionBusyError(PhotoPostError):
    """A publish is already in flight for this session."""


@dataclass(slots=True)
class SessionEvent:
    code: str
    label: str
    kind: str
    timestamp: datetime
    details: dict[str, Any] | None = None


@dataclass
class UploadSession:
    """Owns the asset, its derivatives, the location outcome and the weather.

    Every field is replaced wholesale by the coroutine that produced it.
    """

    id: str
    asset: RawAsset
    arbiter: LocationArbiter
    transcoder: ImageTranscoder
    preview_generator: PreviewGenerator
    weather_lookup: WeatherLookup
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    status: str = "processing"
    image_info: ImageInfo | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    preview: PreviewImage | None = None
    preview_error: str | None = None
    processed: ProcessedAsset | None = None
    compression: CompressionInfo | None = None
    weather: WeatherSnapshot | None = None
    weather_status: str = "pending"
    published: PublishResult | None = None
    last_error: str | None = None
    timeline: list[SessionEvent] = field(default_factory=list)
    progress: ProgressCallback | None = None
    image_info_timeout: float = 3.0
    _media_task: asyncio.Task | None = field(default=None, repr=False)
    _tasks: set[asyncio.Task] = field(default_factory=set, repr=False)
    _publishing: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        self.transcoder.check_size(self.asset)
        self.arbiter.on_change(self._on_location_change)

    @property
    def location(self) -> ExtractionOutcome:
        return self.arbiter.outcome

    @property
    def upload_asset(self) -> ProcessedAsset:
        return self.processed or ProcessedAsset.passthrough(self.asset)

    async def run(self) -> None:
        """Media processing and location race, side by side."""
        await self.emit("upload:received", "Photo received", details={"sizeBytes": self.asset.size_bytes})
        self._media_task = asyncio.ensure_future(self.process_media())
        await asyncio.gather(self._media_task, self.locate())
        if self.status == "processing":
            self.status = "ready"
        await self.emit("session:ready", "Ready for upload", kind="success")

    async def process_media(self) -> None:
        """Preview and transcoding run concurrently on the original bytes."""
        _, transcoded, self.image_info, extracted = await asyncio.gather(
            self._build_preview(),
            self.transcoder.transcode(self.asset),
            read_image_info(self.asset, self.image_info_timeout),
            asyncio.to_thread(extract_image_metadata, self.asset.payload),
        )
        self.metadata = {**self.metadata, **extracted}
        self.processed = transcoded.asset
        self.compression = transcoded.info
        if transcoded.info is not None:
            await self.emit(
                "compression:complete",
                "Photo optimised",
                kind="success",
                details={
                    "originalSize": transcoded.info.original_size,
                    "compressedSize": transcoded.info.compressed_size,
                    "reduction": transcoded.info.reduction_percent,
                },
            )
        else:
            await self.emit("compression:skipped", "Original photo kept")

    async def _build_preview(self) -> None:
        try:
            self.preview = await self.preview_generator.generate(self.asset)
        except PreviewError as exc:
            self.preview = None
            self.preview_error = str(exc)
            await self.emit("preview:error", "Preview unavailable", kind="warning", details={"message": str(exc)})
            return
        await self.emit("preview:ready", "Preview ready", details={"width": self.preview.width})

    async def locate(self) -> ExtractionOutcome:
        return await self.arbiter.run(self.asset.payload)

    async def override_location(self, latitude: float, longitude: float, name: str | None = None) -> ExtractionOutcome:
        return await self.arbiter.override(latitude, longitude, name=name)

    async def reconfirm_location(self) -> ExtractionOutcome:
        return await self.arbiter.reconfirm()

    async def _on_location_change(self, outcome: ExtractionOutcome) -> None:
        if outcome.state is ExtractionState.EXTRACTING:
            if outcome.slow_warning:
                await self.emit("location:slow", "Location extraction is taking long", kind="warning")
            else:
                await self.emit("location:extracting", "Checking photo GPS and device location")
            return
        if outcome.state is ExtractionState.UNRESOLVED:
            self.weather = None
            self.weather_status = "unavailable"
            await self.emit("location:unresolved", outcome.reason or "No location found", kind="warning")
            return
        if outcome.fix is not None:
            # Weather belongs to the fix it was fetched for.
            self.weather = None
            self.weather_status = "fetching"
            await self.emit(
                "location:resolved",
                "Location found",
                kind="success",
                details={
                    "source": outcome.fix.source.value,
                    "latitude": outcome.fix.latitude,
                    "longitude": outcome.fix.longitude,
                },
            )
            self._spawn(self._refresh_weather(outcome.fix, outcome.version))

    async def _refresh_weather(self, fix: GeoFix, version: int) -> None:
        snapshot = await self.weather_lookup.lookup(fix)
        # A newer fix arrived while this lookup was in flight.
        if version != self.arbiter.outcome.version:
            return
        self.weather = snapshot
        self.weather_status = "available" if snapshot is not None else "unavailable"
        if snapshot is not None:
            await self.emit("weather:available", "Weather found", details={"provider": snapshot.provider})
        else:
            await self.emit("weather:unavailable", "Weather unavailable, posting without it", kind="warning")

    async def publish(
        self,
        publisher: WordPressPublisher,
        *,
        title: str,
        content: str = "",
        categories: list[int] | None = None,
        rating: int = 0,
    ) -> PublishResult:
        if self._publishing:
            raise SessionBusyError("Upload already in progress.")
        self._publishing = True
        try:
            if self._media_task is not None and not self._media_task.done():
                await self._media_task
            request = PublishRequest(
                asset=self.upload_asset,
                title=title,
                content=content,
                categories=list(categories or []),
                rating=rating,
                location=self.arbiter.current_fix,
                weather=self.weather,
            )
            result = await publisher.publish(request)
        except PhotoPostError as exc:
            self.last_error = str(exc)
            await self.emit("publish:error", "Upload failed", kind="error", details={"message": str(exc)})
            raise
        finally:
            self._publishing = False

        self.published = result
        self.status = "published"
        self.last_error = None
        await self.emit(
            "publish:complete",
            "Photo published",
            kind="success",
            details={"postId": result.post_id, "link": result.link},
        )
        return result

    async def wait_idle(self) -> None:
        """Wait for every background task spawned by the session (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def emit(
        self,
        code: str,
        label: str,
        *,
        kind: str = "info",
        details: dict[str, Any] | None = None,
    ) -> None:
        event = SessionEvent(
            code=code,
            label=label,
            kind=kind,
            timestamp=datetime.now(tz=timezone.utc),
            details=details,
        )
        self.timeline.append(event)
        logger.debug("Session %s: %s", self.id, code)
        if self.progress:
            result = self.progress(code, {"label": label, "kind": kind, **(details or {})})
            if asyncio.iscoroutine(result):
                await result


def create_session(
    asset: RawAsset,
    cfg: Settings,
    position_provider: PositionProvider,
    *,
    session_id: str | None = None,
    weather_lookup: WeatherLookup | None = None,
    progress: ProgressCallback | None = None,
) -> UploadSession:
    """Wire an UploadSession from explicit configuration.

    Raises OversizeInputError before any processing when the asset is too large.
    """
    arbiter = LocationArbiter(
        MetadataLocationReader(timeout=cfg.METADATA_TIMEOUT_SECONDS),
        DeviceLocationReader(
            position_provider,
            PositionOptions(
                enable_high_accuracy=cfg.DEVICE_HIGH_ACCURACY,
                timeout=cfg.DEVICE_TIMEOUT_SECONDS,
                maximum_age=cfg.DEVICE_MAXIMUM_AGE_SECONDS,
            ),
        ),
        slow_warning_after=cfg.SLOW_EXTRACTION_WARNING_SECONDS,
    )
    return UploadSession(
        id=session_id or uuid4().hex,
        asset=asset,
        arbiter=arbiter,
        transcoder=ImageTranscoder(TranscodePolicy.from_settings(cfg)),
        preview_generator=PreviewGenerator(cfg.PREVIEW_MAX_SIZE, cfg.PREVIEW_TIMEOUT_SECONDS),
        weather_lookup=weather_lookup or WeatherLookup.from_settings(cfg),
        progress=progress,
        image_info_timeout=cfg.IMAGE_INFO_TIMEOUT_SECONDS,
    )
