from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "PhotoPost"
    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = Field(default="INFO", description="Root logging level")
    LOG_FORMAT: str | None = Field(
        default=None,
        description="Custom logging formatter pattern (optional).",
    )
    LOG_DATE_FORMAT: str | None = Field(
        default=None,
        description="Custom logging date format (optional).",
    )
    LOG_FILE: str | None = Field(
        default=None,
        description="Optional path to a file where logs should be written.",
    )
    HTTP_USER_AGENT: str = Field(default="WP-Photo-Uploader/1.0", description="User-Agent for outbound requests")
    HTTP_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout per outbound HTTP request (seconds)")

    # Location acquisition
    METADATA_TIMEOUT_SECONDS: float = Field(default=5.0, description="Bound on embedded GPS tag parsing")
    DEVICE_TIMEOUT_SECONDS: float = Field(default=8.0, description="Bound on a device position request")
    DEVICE_MAXIMUM_AGE_SECONDS: float = Field(default=30.0, description="Oldest cached device fix accepted")
    DEVICE_HIGH_ACCURACY: bool = Field(default=True, description="Request high accuracy device positions")
    SLOW_EXTRACTION_WARNING_SECONDS: float = Field(
        default=3.0,
        description="Delay after which consumers are told the extraction is slow (advisory only)",
    )
    IP_GEOLOCATION_ENABLED: bool = Field(
        default=False,
        description="Use coarse IP geolocation when the client did not report a device position",
    )
    IP_GEOLOCATION_URL: str = Field(default="http://ip-api.com/json")

    # Image processing
    MAX_UPLOAD_BYTES: int = Field(default=50 * 1024 * 1024, description="Hard ceiling on input size")
    COMPRESSION_MIN_BYTES: int = Field(default=500 * 1024, description="Files below this size are passed through")
    COMPRESSION_MAX_WIDTH: int = Field(default=1920)
    COMPRESSION_MAX_HEIGHT: int = Field(default=1080)
    COMPRESSION_QUALITY: float = Field(default=0.8, ge=0.0, le=1.0)
    COMPRESSION_TIMEOUT_SECONDS: float = Field(default=10.0)
    PREVIEW_MAX_SIZE: int = Field(default=300, description="Longer side of the upload preview (pixels)")
    PREVIEW_TIMEOUT_SECONDS: float = Field(default=5.0)
    IMAGE_INFO_TIMEOUT_SECONDS: float = Field(default=3.0)

    # Weather
    WEATHER_PRIMARY_URL: str = Field(default="https://wttr.in")
    WEATHER_FALLBACK_URL: str = Field(default="https://api.open-meteo.com")
    WEATHER_FALLBACK_PLACE_NAME: str = Field(default="Current location")

    # Geocoding
    GEOCODING_URL: str = Field(default="https://nominatim.openstreetmap.org")
    GEOCODING_COUNTRY_CODES: list[str] = Field(default_factory=list)
    GEOCODING_LIMIT: int = Field(default=5, ge=1, le=5)

    # WordPress publishing
    WORDPRESS_SITE_URL: str | None = Field(default=None)
    WORDPRESS_USERNAME: str | None = Field(default=None)
    WORDPRESS_APP_PASSWORD: str | None = Field(default=None)
    WORDPRESS_FORCE_HTTPS: bool = Field(default=True, description="Upgrade http:// site URLs to https://")
    WORDPRESS_TIMEOUT_SECONDS: float = Field(default=60.0)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("GEOCODING_COUNTRY_CODES", mode="before")
    @classmethod
    def _coerce_country_codes(cls, value):  # noqa: D401 - simple normalizer
        if isinstance(value, str):
            items = [item.strip().lower() for item in value.split(",")]
            return [item for item in items if item]
        return value

    @property
    def wordpress_configured(self) -> bool:
        return bool(self.WORDPRESS_SITE_URL and self.WORDPRESS_USERNAME and self.WORDPRESS_APP_PASSWORD)


settings = Settings()
