from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePath

from PIL import Image, ImageOps

from photopost.core.config import Settings
from photopost.core.exceptions import OversizeInputError
from photopost.pipelines.models import CompressionInfo, ImageInfo, ProcessedAsset, RawAsset

logger = logging.getLogger(__name__)

FORMAT_CONTENT_TYPES = {"JPEG": "image/jpeg", "WEBP": "image/webp"}
FORMAT_SUFFIXES = {"JPEG": ".jpg", "WEBP": ".webp"}


@dataclass(slots=True, frozen=True)
class TranscodePolicy:
    max_input_bytes: int = 50 * 1024 * 1024
    min_bytes: int = 500 * 1024
    max_width: int = 1920
    max_height: int = 1080
    quality: float = 0.8
    format: str = "JPEG"
    timeout: float = 10.0

    @classmethod
    def from_settings(cls, cfg: Settings) -> "TranscodePolicy":
        return cls(
            max_input_bytes=cfg.MAX_UPLOAD_BYTES,
            min_bytes=cfg.COMPRESSION_MIN_BYTES,
            max_width=cfg.COMPRESSION_MAX_WIDTH,
            max_height=cfg.COMPRESSION_MAX_HEIGHT,
            quality=cfg.COMPRESSION_QUALITY,
            timeout=cfg.COMPRESSION_TIMEOUT_SECONDS,
        )

    @property
    def content_type(self) -> str:
        return FORMAT_CONTENT_TYPES[self.format]


@dataclass(slots=True, frozen=True)
class TranscodeResult:
    asset: ProcessedAsset
    info: CompressionInfo | None = None

    @property
    def substituted(self) -> bool:
        return self.asset.substituted


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Scale (width, height) down uniformly so neither exceeds the maxima."""
    if width <= max_width and height <= max_height:
        return width, height
    ratio = min(max_width / width, max_height / height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def flatten_to_rgb(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def encode_derivative(payload: bytes, policy: TranscodePolicy) -> tuple[bytes, int, int]:
    """Decode, resample and re-encode (blocking). Returns (bytes, width, height)."""
    with Image.open(BytesIO(payload)) as source:
        image = ImageOps.exif_transpose(source)
        width, height = fit_within(image.width, image.height, policy.max_width, policy.max_height)
        if (width, height) != image.size:
            image = image.resize((width, height), Image.Resampling.LANCZOS)
        image = flatten_to_rgb(image)
        buffer = BytesIO()
        image.save(buffer, format=policy.format, quality=round(policy.quality * 100))
    return buffer.getvalue(), width, height


class ImageTranscoder:
    """Decides per file whether to recompress before upload.

    Transcoding is an optimisation: apart from the oversize rejection, every
    failure falls back to the original bytes.
    """

    def __init__(self, policy: TranscodePolicy | None = None) -> None:
        self.policy = policy or TranscodePolicy()

    def check_size(self, asset: RawAsset) -> None:
        if asset.size_bytes > self.policy.max_input_bytes:
            raise OversizeInputError(asset.size_bytes, self.policy.max_input_bytes)

    async def transcode(self, asset: RawAsset) -> TranscodeResult:
        self.check_size(asset)

        if asset.size_bytes < self.policy.min_bytes:
            logger.info("File already small (%d bytes), skipping compression", asset.size_bytes)
            return TranscodeResult(asset=ProcessedAsset.passthrough(asset))

        start = time.perf_counter()
        try:
            payload, width, height = await asyncio.wait_for(
                asyncio.to_thread(encode_derivative, asset.payload, self.policy),
                timeout=self.policy.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Compression timeout after %.1fs, using original %s", self.policy.timeout, asset.filename)
            return TranscodeResult(asset=ProcessedAsset.passthrough(asset))
        except Exception as exc:  # noqa: BLE001 - decode errors fall back to the original
            logger.warning("Compression error for %s, using original: %s", asset.filename, exc)
            return TranscodeResult(asset=ProcessedAsset.passthrough(asset))

        if len(payload) >= asset.size_bytes:
            logger.info("Compression not beneficial for %s, using original", asset.filename)
            return TranscodeResult(asset=ProcessedAsset.passthrough(asset))

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        processed = ProcessedAsset(
            payload=payload,
            content_type=self.policy.content_type,
            filename=_with_suffix(asset.filename, FORMAT_SUFFIXES[self.policy.format]),
            substituted=True,
        )
        info = CompressionInfo(
            original_size=asset.size_bytes,
            compressed_size=processed.size_bytes,
            reduction_percent=round((1 - processed.size_bytes / asset.size_bytes) * 100, 1),
            elapsed_ms=elapsed_ms,
            width=width,
            height=height,
        )
        logger.info(
            "Compression successful for %s: %.1fMB -> %.1fMB (%.0f%% saved, %dx%d, %dms)",
            asset.filename,
            info.original_size / 1024 / 1024,
            info.compressed_size / 1024 / 1024,
            info.reduction_percent,
            width,
            height,
            elapsed_ms,
        )
        return TranscodeResult(asset=processed, info=info)


async def read_image_info(asset: RawAsset, timeout: float = 3.0) -> ImageInfo:
    """Dimensions of the image, zeros when it cannot be decoded in time."""

    def _read_size() -> tuple[int, int]:
        with Image.open(BytesIO(asset.payload)) as image:
            return image.size

    try:
        width, height = await asyncio.wait_for(asyncio.to_thread(_read_size), timeout=timeout)
    except asyncio.TimeoutError:
        return ImageInfo(0, 0, asset.size_bytes, asset.content_type, asset.filename)
    except Exception:  # noqa: BLE001
        return ImageInfo(0, 0, asset.size_bytes, asset.content_type, asset.filename, error=True)
    return ImageInfo(width, height, asset.size_bytes, asset.content_type, asset.filename)


def _with_suffix(filename: str, suffix: str) -> str:
    path = PurePath(filename or "photo")
    return path.stem + suffix if path.suffix.lower() not in (suffix, ".jpeg") else path.name
