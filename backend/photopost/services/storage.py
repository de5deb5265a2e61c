from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable

from fastapi import UploadFile

from photopost.core.exceptions import OversizeInputError


async def read_upload_file(
    upload: UploadFile,
    limit_bytes: int,
    chunk_size: int = 1024 * 1024,
) -> tuple[bytes, str]:
    """
    Read an UploadFile into memory, refusing anything over ``limit_bytes``.

    Returns tuple (payload, sha256_hex). The oversize check runs while reading so
    a huge upload is rejected before it is fully buffered.
    """
    hasher = hashlib.sha256()
    chunks: list[bytes] = []
    size = 0

    try:
        while True:
            chunk = await upload.read(chunk_size)
            if not chunk:
                break
            size += len(chunk)
            if size > limit_bytes:
                raise OversizeInputError(upload.size or size, limit_bytes)
            chunks.append(chunk)
            hasher.update(chunk)
    finally:
        await upload.close()

    return b"".join(chunks), hasher.hexdigest()


def sanitize_filename(name: str) -> str:
    """Basic sanitization to avoid directory traversal."""
    return Path(name).name


def allowed_content_type(content_type: str, allowed_types: Iterable[str]) -> bool:
    return any(content_type.startswith(prefix) for prefix in allowed_types)
