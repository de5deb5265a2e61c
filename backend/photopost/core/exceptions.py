"""Errors that reach the caller.

Optional enrichment steps (metadata GPS, device GPS, transcoding, weather)
never raise; they log and degrade to absence. Only the conditions below
surface to the user.
"""

from __future__ import annotations


class PhotoPostError(Exception):
    """Base class for user-visible failures."""


class UnsupportedMediaError(PhotoPostError):
    """Selected file is not an image."""


class OversizeInputError(PhotoPostError):
    """Image exceeds the hard byte-length ceiling."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"Photo too large ({size_bytes / 1024 / 1024:.1f}MB, max {limit_bytes / 1024 / 1024:.0f}MB)"
        )


class PreviewError(PhotoPostError):
    """Preview could not be produced (decode failure or timeout)."""


class InvalidCoordinatesError(PhotoPostError):
    """Manual coordinates outside the valid latitude/longitude ranges."""


class PositionError(PhotoPostError):
    """Device positioning failure, mirrored on the browser Geolocation API codes."""

    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"

    MESSAGES = {
        PERMISSION_DENIED: "location access denied",
        POSITION_UNAVAILABLE: "position unavailable",
        TIMEOUT: "position request timed out",
        UNAVAILABLE: "positioning not supported",
    }

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or self.MESSAGES.get(code, "position could not be determined"))


class PublishError(PhotoPostError):
    """The WordPress collaborator rejected or failed the upload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PublisherNotConfiguredError(PhotoPostError):
    """No WordPress site/credentials are configured."""
