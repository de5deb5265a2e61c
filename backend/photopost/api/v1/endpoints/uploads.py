from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable
from uuid import uuid4

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.responses import StreamingResponse

from photopost.core.config import Settings, settings
from photopost.core.exceptions import (
    InvalidCoordinatesError,
    OversizeInputError,
    PositionError,
    PublishError,
    PublisherNotConfiguredError,
    UnsupportedMediaError,
)
from photopost.pipelines.models import DevicePosition, RawAsset
from photopost.schemas.upload import (
    AssetSchema,
    CategorySchema,
    CompressionSchema,
    GeocodeResultSchema,
    GeoFixSchema,
    LocationOverrideRequest,
    LocationStatusSchema,
    PublishRequestSchema,
    PublishResultSchema,
    SessionEventSchema,
    UploadSessionResponse,
    WeatherSchema,
)
from photopost.services.device_location import (
    IPGeolocationProvider,
    PositionProvider,
    ReportedPositionProvider,
)
from photopost.services.events import event_bus
from photopost.services.geocoding import GeocodingClient
from photopost.services.publisher import WordPressPublisher
from photopost.services.session import SessionBusyError, UploadSession, create_session
from photopost.services.storage import allowed_content_type, read_upload_file, sanitize_filename
from photopost.services.store import SessionStore, session_store
from photopost.services.weather import WeatherLookup

router = APIRouter()
lookup_router = APIRouter()
logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES: Iterable[str] = ("image/",)


def get_settings() -> Settings:
    return settings


def get_session_store() -> SessionStore:
    return session_store


def get_weather_lookup(cfg: Settings = Depends(get_settings)) -> WeatherLookup:
    return WeatherLookup.from_settings(cfg)


def get_geocoder(cfg: Settings = Depends(get_settings)) -> GeocodingClient:
    return GeocodingClient.from_settings(cfg)


def get_publisher(cfg: Settings = Depends(get_settings)) -> WordPressPublisher:
    try:
        return WordPressPublisher.from_settings(cfg)
    except PublisherNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


def _position_provider(
    cfg: Settings,
    latitude: float | None,
    longitude: float | None,
    accuracy: float | None,
    altitude: float | None,
    timestamp: float | None,
    error_code: str | None,
) -> PositionProvider:
    if latitude is not None and longitude is not None:
        position = DevicePosition(
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            altitude=altitude,
            timestamp=timestamp,
        )
        return ReportedPositionProvider(position=position)
    if error_code:
        return ReportedPositionProvider(error_code=error_code)
    if cfg.IP_GEOLOCATION_ENABLED:
        return IPGeolocationProvider(cfg.IP_GEOLOCATION_URL, cfg.HTTP_USER_AGENT)
    return ReportedPositionProvider(error_code=PositionError.UNAVAILABLE)


def _serialize_session(upload_session: UploadSession, cfg: Settings) -> UploadSessionResponse:
    asset = upload_session.asset
    info = upload_session.image_info
    original = AssetSchema(
        filename=asset.filename,
        content_type=asset.content_type,
        size_bytes=asset.size_bytes,
        checksum_sha256=upload_session.metadata.get("checksum_sha256"),
        width=info.width if info and not info.error else None,
        height=info.height if info and not info.error else None,
        metadata={k: v for k, v in upload_session.metadata.items() if k != "checksum_sha256"} or None,
    )

    upload: AssetSchema | None = None
    if upload_session.processed is not None:
        processed = upload_session.processed
        compression = upload_session.compression
        upload = AssetSchema(
            filename=processed.filename,
            content_type=processed.content_type,
            size_bytes=processed.size_bytes,
            width=compression.width if compression else None,
            height=compression.height if compression else None,
        )

    outcome = upload_session.location
    fix = outcome.fix
    location = LocationStatusSchema(
        state=outcome.state.value,
        fix=GeoFixSchema(
            latitude=fix.latitude,
            longitude=fix.longitude,
            source=fix.source.value,
            accuracy=fix.accuracy.value,
            accuracy_radius=fix.accuracy_radius,
            altitude=fix.altitude,
            captured_at=fix.captured_at,
            name=fix.name,
            map_url=fix.map_url,
        )
        if fix
        else None,
        reason=outcome.reason,
        slow_warning=outcome.slow_warning,
        version=outcome.version,
    )

    weather = upload_session.weather
    compression = upload_session.compression
    published = upload_session.published
    return UploadSessionResponse(
        session_id=upload_session.id,
        status=upload_session.status,
        created_at=upload_session.created_at,
        original=original,
        upload=upload,
        compression=CompressionSchema(
            original_size=compression.original_size,
            compressed_size=compression.compressed_size,
            reduction_percent=compression.reduction_percent,
            elapsed_ms=compression.elapsed_ms,
            width=compression.width,
            height=compression.height,
        )
        if compression
        else None,
        preview_available=upload_session.preview is not None,
        preview_url=f"{cfg.API_V1_PREFIX}/uploads/{upload_session.id}/preview"
        if upload_session.preview is not None
        else None,
        preview_error=upload_session.preview_error,
        location=location,
        weather=WeatherSchema(
            temperature=weather.temperature,
            description=weather.description,
            humidity=weather.humidity,
            wind_speed=weather.wind_speed,
            visibility=weather.visibility,
            place_name=weather.place_name,
            icon=weather.icon.value,
            code=weather.code,
            provider=weather.provider,
        )
        if weather
        else None,
        weather_status=upload_session.weather_status,
        published=PublishResultSchema(
            post_id=published.post_id,
            link=published.link,
            media_id=published.media_id,
            media_url=published.media_url,
        )
        if published
        else None,
        last_error=upload_session.last_error,
        timeline=[
            SessionEventSchema(
                code=event.code,
                label=event.label,
                kind=event.kind,
                timestamp=event.timestamp,
                details=event.details,
            )
            for event in upload_session.timeline
        ],
    )


async def _require_session(store: SessionStore, session_id: str) -> UploadSession:
    upload_session = await store.get(session_id)
    if upload_session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload not found")
    return upload_session


@router.post(
    "",
    summary="Select a photo and start enrichment",
    response_model=UploadSessionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_upload(
    file: UploadFile,
    device_latitude: float | None = Form(None),
    device_longitude: float | None = Form(None),
    device_accuracy: float | None = Form(None),
    device_altitude: float | None = Form(None),
    device_timestamp: float | None = Form(None),
    device_error: str | None = Form(None),
    cfg: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_session_store),
    weather_lookup: WeatherLookup = Depends(get_weather_lookup),
) -> UploadSessionResponse:
    session_id = uuid4().hex
    content_type = file.content_type or "application/octet-stream"
    filename = sanitize_filename(file.filename or "photo.jpg") or "photo.jpg"

    async def publish_stage(code: str, details: dict[str, Any]) -> None:
        await event_bus.publish({"sessionId": session_id, "stage": {"code": code, **details}})

    try:
        if not allowed_content_type(content_type, ALLOWED_CONTENT_TYPES):
            raise UnsupportedMediaError(f"Unsupported content type: {content_type}")
        payload, checksum = await read_upload_file(file, cfg.MAX_UPLOAD_BYTES)
        upload_session = create_session(
            RawAsset(payload=payload, content_type=content_type, filename=filename),
            cfg,
            _position_provider(
                cfg,
                device_latitude,
                device_longitude,
                device_accuracy,
                device_altitude,
                device_timestamp,
                device_error,
            ),
            session_id=session_id,
            weather_lookup=weather_lookup,
            progress=publish_stage,
        )
    except UnsupportedMediaError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except OversizeInputError as exc:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc)) from exc

    upload_session.metadata["checksum_sha256"] = checksum
    await store.add(upload_session)
    await store.start(upload_session)
    logger.info("Upload %s accepted (%s, %d bytes)", session_id, filename, len(payload))
    return _serialize_session(upload_session, cfg)


async def _event_stream(request: Request, queue: asyncio.Queue[str], interval: float = 15.0):
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(queue.get(), timeout=interval)
            except asyncio.TimeoutError:
                yield "event: keepalive\ndata: {}\n\n"
            else:
                yield f"data: {message}\n\n"
    finally:
        await event_bus.unsubscribe(queue)


@lookup_router.get("/events", summary="Server-sent events for upload progress")
async def upload_events(
    request: Request,
    session_id: str | None = Query(None, max_length=64),
) -> StreamingResponse:
    queue = await event_bus.subscribe(session_id)
    return StreamingResponse(_event_stream(request, queue), media_type="text/event-stream")


@router.get("/{session_id}", summary="Current state of an upload", response_model=UploadSessionResponse)
async def read_upload(
    session_id: str,
    cfg: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_session_store),
) -> UploadSessionResponse:
    upload_session = await _require_session(store, session_id)
    return _serialize_session(upload_session, cfg)


@router.get("/{session_id}/preview", summary="Downscaled JPEG preview")
async def read_preview(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Response:
    upload_session = await _require_session(store, session_id)
    if upload_session.preview is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=upload_session.preview_error or "Preview not available",
        )
    preview = upload_session.preview
    return Response(content=preview.payload, media_type=preview.content_type)


@router.put("/{session_id}/location", summary="Select a location manually", response_model=UploadSessionResponse)
async def override_location(
    session_id: str,
    payload: LocationOverrideRequest,
    cfg: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_session_store),
) -> UploadSessionResponse:
    upload_session = await _require_session(store, session_id)
    try:
        await upload_session.override_location(payload.latitude, payload.longitude, name=payload.name)
    except InvalidCoordinatesError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return _serialize_session(upload_session, cfg)


@router.post(
    "/{session_id}/location/reconfirm",
    summary="Pin the detected location as a manual choice",
    response_model=UploadSessionResponse,
)
async def reconfirm_location(
    session_id: str,
    cfg: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_session_store),
) -> UploadSessionResponse:
    upload_session = await _require_session(store, session_id)
    try:
        await upload_session.reconfirm_location()
    except InvalidCoordinatesError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _serialize_session(upload_session, cfg)


@router.post("/{session_id}/publish", summary="Publish the photo to WordPress", response_model=PublishResultSchema)
async def publish_upload(
    session_id: str,
    payload: PublishRequestSchema,
    store: SessionStore = Depends(get_session_store),
    publisher: WordPressPublisher = Depends(get_publisher),
) -> PublishResultSchema:
    upload_session = await _require_session(store, session_id)
    try:
        result = await upload_session.publish(
            publisher,
            title=payload.title,
            content=payload.content,
            categories=payload.categories,
            rating=payload.rating,
        )
    except SessionBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PublishError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return PublishResultSchema(
        post_id=result.post_id,
        link=result.link,
        media_id=result.media_id,
        media_url=result.media_url,
    )


@lookup_router.get("/geocode", summary="Search places by name", response_model=list[GeocodeResultSchema])
async def geocode(
    q: str = Query("", max_length=500),
    geocoder: GeocodingClient = Depends(get_geocoder),
) -> list[GeocodeResultSchema]:
    results = await geocoder.search(q)
    return [
        GeocodeResultSchema(latitude=item.latitude, longitude=item.longitude, display_name=item.display_name)
        for item in results
    ]


@lookup_router.get("/categories", summary="WordPress categories", response_model=list[CategorySchema])
async def list_categories(publisher: WordPressPublisher = Depends(get_publisher)) -> list[CategorySchema]:
    try:
        categories = await publisher.list_categories()
    except PublishError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [CategorySchema(id=int(item["id"]), name=str(item.get("name", ""))) for item in categories]
