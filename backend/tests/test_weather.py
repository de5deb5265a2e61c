from __future__ import annotations

import httpx
import pytest

from photopost.pipelines.models import Accuracy, GeoFix, LocationSource, WeatherIcon
from photopost.services.weather import (
    WeatherLookup,
    WeatherPayloadError,
    parse_fallback,
    parse_primary,
    primary_icon,
    wmo_description,
    wmo_icon,
)

FIX = GeoFix.create(52.37, 4.895, source=LocationSource.METADATA, accuracy=Accuracy.HIGH)

WTTR_PAYLOAD = {
    "current_condition": [
        {
            "temp_C": "14",
            "weatherDesc": [{"value": "Partly cloudy"}],
            "humidity": "72",
            "windspeedKmph": "19",
            "visibility": "10",
            "weatherCode": "116",
        }
    ],
    "nearest_area": [{"areaName": [{"value": "Amsterdam"}]}],
}

OPEN_METEO_PAYLOAD = {
    "current": {
        "temperature_2m": 13.6,
        "relative_humidity_2m": 70.4,
        "wind_speed_10m": 18.2,
        "weather_code": 61,
    }
}


def _lookup(handler) -> WeatherLookup:
    return WeatherLookup(transport=httpx.MockTransport(handler))


def test_parse_primary() -> None:
    snapshot = parse_primary(WTTR_PAYLOAD)
    assert snapshot.temperature == 14
    assert snapshot.description == "Partly cloudy"
    assert snapshot.humidity == 72
    assert snapshot.wind_speed == 19
    assert snapshot.visibility == 10
    assert snapshot.place_name == "Amsterdam"
    assert snapshot.provider == "wttr.in"


def test_parse_primary_rejects_malformed_payload() -> None:
    with pytest.raises(WeatherPayloadError):
        parse_primary({"current_condition": []})


def test_parse_fallback_rounds_and_maps_code() -> None:
    snapshot = parse_fallback(OPEN_METEO_PAYLOAD, "Current location")
    assert snapshot.temperature == 14
    assert snapshot.humidity == 70
    assert snapshot.wind_speed == 18
    assert snapshot.description == "Light rain"
    assert snapshot.icon is WeatherIcon.RAIN
    assert snapshot.visibility is None
    assert snapshot.place_name == "Current location"
    assert snapshot.provider == "open-meteo"


def test_icon_tables_are_provider_specific() -> None:
    assert primary_icon(800) is WeatherIcon.SUN
    assert primary_icon(615) is WeatherIcon.SNOW
    assert primary_icon(301) is WeatherIcon.RAIN
    assert primary_icon(741) is WeatherIcon.CLOUD
    assert wmo_icon(0) is WeatherIcon.SUN
    assert wmo_icon(3) is WeatherIcon.CLOUD
    assert wmo_icon(73) is WeatherIcon.SNOW
    assert wmo_icon(81) is WeatherIcon.RAIN
    assert wmo_icon(95) is WeatherIcon.CLOUD
    assert wmo_description(999) == "Unknown weather"


@pytest.mark.asyncio
async def test_lookup_uses_primary_provider() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=WTTR_PAYLOAD)

    snapshot = await _lookup(handler).lookup(FIX)

    assert snapshot is not None
    assert snapshot.provider == "wttr.in"
    assert len(requests) == 1
    assert requests[0].url.host == "wttr.in"
    assert requests[0].url.params["format"] == "j1"
    assert requests[0].headers["User-Agent"] == "WP-Photo-Uploader/1.0"


@pytest.mark.asyncio
async def test_primary_503_falls_back_to_secondary() -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "wttr.in":
            return httpx.Response(503, text="Service Unavailable")
        assert request.url.path == "/v1/forecast"
        assert request.url.params["latitude"] == "52.37"
        assert request.url.params["longitude"] == "4.895"
        return httpx.Response(200, json=OPEN_METEO_PAYLOAD)

    snapshot = await _lookup(handler).lookup(FIX)

    assert hosts == ["wttr.in", "api.open-meteo.com"]
    assert snapshot is not None
    assert snapshot.provider == "open-meteo"
    assert snapshot.temperature == 14


@pytest.mark.asyncio
async def test_malformed_primary_body_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "wttr.in":
            return httpx.Response(200, text="<html>rate limited</html>")
        return httpx.Response(200, json=OPEN_METEO_PAYLOAD)

    snapshot = await _lookup(handler).lookup(FIX)
    assert snapshot is not None
    assert snapshot.provider == "open-meteo"


@pytest.mark.asyncio
async def test_both_providers_failing_yields_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "wttr.in":
            raise httpx.ConnectError("unreachable", request=request)
        return httpx.Response(500)

    assert await _lookup(handler).lookup(FIX) is None
