from __future__ import annotations

import asyncio
import logging
from io import BytesIO

from PIL import Image, ImageOps

from photopost.core.exceptions import PreviewError
from photopost.pipelines.models import PreviewImage, RawAsset
from photopost.services.transcoder import flatten_to_rgb

logger = logging.getLogger(__name__)


def render_preview(payload: bytes, max_size: int, quality: int = 80) -> PreviewImage:
    with Image.open(BytesIO(payload)) as source:
        # draft() lets the JPEG decoder downscale while decoding.
        source.draft("RGB", (max_size, max_size))
        image = ImageOps.exif_transpose(source)
        ratio = min(max_size / image.width, max_size / image.height)
        width = max(1, round(image.width * ratio))
        height = max(1, round(image.height * ratio))
        image = flatten_to_rgb(image.resize((width, height), Image.Resampling.BILINEAR))
        buffer = BytesIO()
        image.save(buffer, format="JPEG", quality=quality)
    return PreviewImage(payload=buffer.getvalue(), width=width, height=height)


class PreviewGenerator:
    """Small raster preview for immediate UI feedback."""

    def __init__(self, max_size: int = 400, timeout: float = 5.0) -> None:
        self.max_size = max_size
        self.timeout = timeout

    async def generate(self, asset: RawAsset) -> PreviewImage:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(render_preview, asset.payload, self.max_size),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Preview timeout for %s", asset.filename)
            raise PreviewError("Preview timeout") from exc
        except Exception as exc:  # noqa: BLE001
            logger.warning("Preview could not be created for %s: %s", asset.filename, exc)
            raise PreviewError("Preview could not be created") from exc
