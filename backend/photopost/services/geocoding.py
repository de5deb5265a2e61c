from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from photopost.core.config import Settings
from photopost.pipelines.models import GeoFix, GeocodeResult

logger = logging.getLogger(__name__)

MAX_RESULTS = 5


class GeocodingClient:
    """Free-text place search through a Nominatim-compatible endpoint."""

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        *,
        country_codes: Sequence[str] = (),
        limit: int = MAX_RESULTS,
        timeout: float = 10.0,
        user_agent: str = "WP-Photo-Uploader/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.country_codes = list(country_codes)
        self.limit = max(1, min(limit, MAX_RESULTS))
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "GeocodingClient":
        return cls(
            cfg.GEOCODING_URL,
            country_codes=cfg.GEOCODING_COUNTRY_CODES,
            limit=cfg.GEOCODING_LIMIT,
            timeout=cfg.HTTP_TIMEOUT_SECONDS,
            user_agent=cfg.HTTP_USER_AGENT,
            transport=transport,
        )

    async def search(self, query: str) -> list[GeocodeResult]:
        query = query.strip()
        if not query:
            return []

        params: dict[str, Any] = {
            "format": "json",
            "q": query,
            "limit": self.limit,
            "addressdetails": 1,
        }
        if self.country_codes:
            params["countrycodes"] = ",".join(self.country_codes)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            ) as client:
                response = await client.get(f"{self.base_url}/search", params=params)
                response.raise_for_status()
                items = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Geocoding search failed for %r: %s", query, exc)
            return []

        if not isinstance(items, list):
            return []

        results: list[GeocodeResult] = []
        for item in items:
            try:
                latitude = float(item["lat"])
                longitude = float(item["lon"])
            except (KeyError, TypeError, ValueError):
                continue
            if not GeoFix.valid_coordinates(latitude, longitude):
                continue
            results.append(
                GeocodeResult(
                    latitude=latitude,
                    longitude=longitude,
                    display_name=str(item.get("display_name") or f"{latitude:.4f}, {longitude:.4f}"),
                )
            )
            if len(results) >= self.limit:
                break
        return results
