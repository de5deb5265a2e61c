"""WordPress publishing: media upload followed by post creation."""

from __future__ import annotations

import html
import logging
from typing import Any

import httpx

from photopost.core.config import Settings
from photopost.core.exceptions import PublishError, PublisherNotConfiguredError
from photopost.pipelines.models import (
    GeoFix,
    LocationSource,
    PublishRequest,
    PublishResult,
    WeatherIcon,
    WeatherSnapshot,
)

logger = logging.getLogger(__name__)

RATING_LABELS = ["", "Poor", "Fair", "Good", "Very good", "Excellent"]
WEATHER_EMOJI = {
    WeatherIcon.SUN: "☀️",
    WeatherIcon.CLOUD: "☁️",
    WeatherIcon.RAIN: "🌧️",
    WeatherIcon.SNOW: "❄️",
}


def normalize_site_url(site_url: str, force_https: bool = True) -> str:
    url = site_url.strip().rstrip("/")
    if force_https and url.startswith("http://"):
        url = "https://" + url[len("http://"):]
    return url


def render_rating(rating: int) -> str:
    if rating <= 0:
        return ""
    rating = min(rating, 5)
    return (
        '<div class="rating-info">'
        "<h4>⭐ Rating</h4>"
        f"<p>{'⭐' * rating}</p>"
        f"<p><strong>{rating}/5 stars</strong> - {RATING_LABELS[rating]}</p>"
        "</div>"
    )


def render_location(location: GeoFix) -> str:
    if location.source is LocationSource.METADATA:
        icon, accuracy_text = "📸", "GPS data from photo (very accurate)"
    elif location.source is LocationSource.MANUAL:
        icon, accuracy_text = "🗺️", "Manually selected location (accurate)"
    else:
        radius = location.accuracy_radius
        icon = "📱"
        accuracy_text = f"Device GPS (±{round(radius)}m)" if radius is not None else "Device GPS"

    lines = [
        '<div class="location-info">',
        f"<h4>{icon} Location</h4>",
        f"<p><strong>Coordinates:</strong> {location.latitude:.6f}, {location.longitude:.6f}</p>",
        f"<p><strong>Accuracy:</strong> {accuracy_text}</p>",
    ]
    if location.altitude is not None:
        lines.append(f"<p><strong>Altitude:</strong> {round(location.altitude)}m</p>")
    if location.name:
        lines.append(f"<p><strong>Place:</strong> {html.escape(location.name)}</p>")
    lines.append(
        f'<p><a href="{html.escape(location.map_url)}" target="_blank" rel="noopener">🗺️ View on map →</a></p>'
    )
    lines.append("</div>")
    return "".join(lines)


def render_weather(weather: WeatherSnapshot) -> str:
    lines = [
        '<div class="weather-info">',
        f"<h4>{WEATHER_EMOJI.get(weather.icon, '🌤️')} Weather at capture</h4>",
        f"<p><strong>Temperature:</strong> {weather.temperature}°C</p>",
        f"<p><strong>Conditions:</strong> {html.escape(weather.description)}</p>",
        f"<p><strong>Humidity:</strong> {weather.humidity}%</p>",
        f"<p><strong>Wind speed:</strong> {weather.wind_speed} km/h</p>",
    ]
    if weather.visibility:
        lines.append(f"<p><strong>Visibility:</strong> {weather.visibility} km</p>")
    if weather.place_name:
        lines.append(f"<p><strong>Location:</strong> {html.escape(weather.place_name)}</p>")
    lines.append("</div>")
    return "".join(lines)


def compose_post_content(request: PublishRequest) -> str:
    parts = [f"<p>{html.escape(request.content or '')}</p>"]
    parts.append(render_rating(request.rating))
    if request.location is not None:
        parts.append(render_location(request.location))
    if request.weather is not None:
        parts.append(render_weather(request.weather))
    return "\n".join(part for part in parts if part)


class WordPressPublisher:
    def __init__(
        self,
        site_url: str,
        username: str,
        password: str,
        *,
        force_https: bool = True,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.site_url = normalize_site_url(site_url, force_https)
        self._auth = httpx.BasicAuth(username, password)
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "WordPressPublisher":
        if not cfg.wordpress_configured:
            raise PublisherNotConfiguredError("WordPress site URL and credentials are not configured.")
        return cls(
            cfg.WORDPRESS_SITE_URL or "",
            cfg.WORDPRESS_USERNAME or "",
            cfg.WORDPRESS_APP_PASSWORD or "",
            force_https=cfg.WORDPRESS_FORCE_HTTPS,
            timeout=cfg.WORDPRESS_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.site_url}/wp-json/wp/v2",
            auth=self._auth,
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    async def list_categories(self) -> list[dict[str, Any]]:
        """Fetch categories; doubles as the connection/credentials check."""
        try:
            async with self._client() as client:
                response = await client.get("/categories", params={"per_page": 100})
        except httpx.HTTPError as exc:
            raise PublishError(f"Network error: {exc}") from exc
        if response.is_error:
            raise PublishError(
                f"Connection failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        return [
            {"id": item.get("id"), "name": item.get("name")}
            for item in response.json()
            if isinstance(item, dict)
        ]

    async def publish(self, request: PublishRequest) -> PublishResult:
        asset = request.asset
        logger.info("Uploading media %s (%.1fMB)", asset.filename, asset.size_bytes / 1024 / 1024)
        try:
            async with self._client() as client:
                media_response = await client.post(
                    "/media",
                    files={"file": (asset.filename, asset.payload, asset.content_type)},
                )
                if media_response.is_error:
                    raise PublishError(
                        f"Media upload failed: {media_response.status_code} - {media_response.text}",
                        status_code=media_response.status_code,
                    )
                media = media_response.json()

                post_payload: dict[str, Any] = {
                    "title": request.title,
                    "content": compose_post_content(request),
                    "status": "publish",
                    "featured_media": media["id"],
                }
                if request.categories:
                    post_payload["categories"] = list(request.categories)

                post_response = await client.post("/posts", json=post_payload)
                if post_response.is_error:
                    raise PublishError(
                        f"Post creation failed: {post_response.status_code} - {post_response.text}",
                        status_code=post_response.status_code,
                    )
                post = post_response.json()
                result = PublishResult(
                    post_id=int(post["id"]),
                    link=str(post.get("link", "")),
                    media_id=int(media["id"]),
                    media_url=media.get("source_url"),
                )
        except httpx.HTTPError as exc:
            raise PublishError(f"Network error: {exc}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise PublishError(f"Unexpected WordPress response: {exc}") from exc

        logger.info("Post created successfully: %s %s", result.post_id, result.link)
        return result
