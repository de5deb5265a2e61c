"""Current weather for a resolved location.

wttr.in is queried first; on any failure Open-Meteo is tried once. The two
providers use unrelated weather code spaces, so each keeps its own icon table.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from photopost.core.config import Settings
from photopost.pipelines.models import GeoFix, WeatherIcon, WeatherSnapshot

logger = logging.getLogger(__name__)

WMO_DESCRIPTIONS: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Light rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Light snow",
    73: "Moderate snow",
    75: "Heavy snow",
    80: "Light showers",
    81: "Moderate showers",
    82: "Heavy showers",
}
UNKNOWN_DESCRIPTION = "Unknown weather"


class WeatherPayloadError(ValueError):
    """Provider answered with a body we cannot normalise."""


def primary_icon(code: int | None) -> WeatherIcon:
    """Icon for the primary provider's condition codes (2xx-8xx groups)."""
    if code is None:
        return WeatherIcon.SUN
    if 200 <= code < 600:
        return WeatherIcon.RAIN
    if 600 <= code < 700:
        return WeatherIcon.SNOW
    if 700 <= code < 800:
        return WeatherIcon.CLOUD
    if code == 800:
        return WeatherIcon.SUN
    if code > 800:
        return WeatherIcon.CLOUD
    return WeatherIcon.SUN


def wmo_icon(code: int | None) -> WeatherIcon:
    """Icon for WMO weather interpretation codes (fallback provider)."""
    if code is None:
        return WeatherIcon.CLOUD
    if code == 0:
        return WeatherIcon.SUN
    if code <= 3:
        return WeatherIcon.CLOUD
    if code <= 67:
        return WeatherIcon.RAIN
    if code <= 77:
        return WeatherIcon.SNOW
    if code <= 82:
        return WeatherIcon.RAIN
    return WeatherIcon.CLOUD


def wmo_description(code: int | None) -> str:
    if code is None:
        return UNKNOWN_DESCRIPTION
    return WMO_DESCRIPTIONS.get(code, UNKNOWN_DESCRIPTION)


def parse_primary(data: dict[str, Any]) -> WeatherSnapshot:
    try:
        current = data["current_condition"][0]
        code = _optional_int(current.get("weatherCode"))
        area = (data.get("nearest_area") or [{}])[0]
        area_names = area.get("areaName") or [{}]
        return WeatherSnapshot(
            temperature=int(current["temp_C"]),
            description=current["weatherDesc"][0]["value"],
            humidity=int(current["humidity"]),
            wind_speed=int(current["windspeedKmph"]),
            visibility=_optional_int(current.get("visibility")),
            icon=primary_icon(code),
            code=code,
            place_name=area_names[0].get("value"),
            provider="wttr.in",
        )
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
        raise WeatherPayloadError(f"Malformed wttr.in payload: {exc}") from exc


def parse_fallback(data: dict[str, Any], place_name: str | None = None) -> WeatherSnapshot:
    try:
        current = data["current"]
        code = _optional_int(current.get("weather_code"))
        return WeatherSnapshot(
            temperature=round(float(current["temperature_2m"])),
            description=wmo_description(code),
            humidity=round(float(current["relative_humidity_2m"])),
            wind_speed=round(float(current["wind_speed_10m"])),
            visibility=None,
            icon=wmo_icon(code),
            code=code,
            place_name=place_name,
            provider="open-meteo",
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise WeatherPayloadError(f"Malformed Open-Meteo payload: {exc}") from exc


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class WeatherLookup:
    def __init__(
        self,
        primary_url: str = "https://wttr.in",
        fallback_url: str = "https://api.open-meteo.com",
        *,
        timeout: float = 10.0,
        user_agent: str = "WP-Photo-Uploader/1.0",
        fallback_place_name: str | None = "Current location",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.primary_url = primary_url.rstrip("/")
        self.fallback_url = fallback_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self.fallback_place_name = fallback_place_name
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "WeatherLookup":
        return cls(
            cfg.WEATHER_PRIMARY_URL,
            cfg.WEATHER_FALLBACK_URL,
            timeout=cfg.HTTP_TIMEOUT_SECONDS,
            user_agent=cfg.HTTP_USER_AGENT,
            fallback_place_name=cfg.WEATHER_FALLBACK_PLACE_NAME,
            transport=transport,
        )

    async def lookup(self, fix: GeoFix) -> WeatherSnapshot | None:
        """Current conditions at the fix, or None when both providers fail."""
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        ) as client:
            try:
                snapshot = await self._fetch_primary(client, fix)
                logger.info("Weather received from wttr.in for %.4f, %.4f", fix.latitude, fix.longitude)
                return snapshot
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Primary weather source failed: %s", exc)

            try:
                snapshot = await self._fetch_fallback(client, fix)
                logger.info("Weather received from Open-Meteo for %.4f, %.4f", fix.latitude, fix.longitude)
                return snapshot
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Fallback weather source also failed: %s", exc)
        return None

    async def _fetch_primary(self, client: httpx.AsyncClient, fix: GeoFix) -> WeatherSnapshot:
        response = await client.get(
            f"{self.primary_url}/{fix.latitude},{fix.longitude}",
            params={"format": "j1"},
        )
        response.raise_for_status()
        return parse_primary(response.json())

    async def _fetch_fallback(self, client: httpx.AsyncClient, fix: GeoFix) -> WeatherSnapshot:
        response = await client.get(
            f"{self.fallback_url}/v1/forecast",
            params={
                "latitude": fix.latitude,
                "longitude": fix.longitude,
                "current": "temperature_2m,relative_humidity_2m,wind_speed_10m,weather_code",
                "timezone": "auto",
            },
        )
        response.raise_for_status()
        return parse_fallback(response.json(), self.fallback_place_name)
