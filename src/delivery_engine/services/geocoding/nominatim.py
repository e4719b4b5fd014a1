"""OpenStreetMap Nominatim adapter, used as the fallback geocoder."""

from __future__ import annotations

import logging

import httpx

from ...config import settings
from ...models.domain import Address, Coordinate
from .base import GeocodingError, HTTPGeocodingProvider

logger = logging.getLogger(__name__)


class NominatimProvider(HTTPGeocodingProvider):
    name = "nominatim"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        user_agent: str | None = None,
        country: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            timeout=timeout if timeout is not None else settings.geocode_timeout_seconds,
            max_retries=max_retries if max_retries is not None else settings.geocode_max_retries,
            backoff_seconds=backoff_seconds if backoff_seconds is not None else settings.geocode_backoff_seconds,
            client=client,
        )
        self.base_url = (base_url or settings.nominatim_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Nominatim base URL is not configured.")
        self.headers = {"User-Agent": user_agent or settings.nominatim_user_agent}
        self.country = country if country is not None else settings.geocode_country

    async def geocode(self, query: str) -> Coordinate | None:
        params = {"format": "json", "q": query, "limit": 1}
        if self.country:
            params["countrycodes"] = self.country.lower()
        data = await self._get_json(f"{self.base_url}/search", params, self.headers)
        if not isinstance(data, list) or not data:
            logger.info(f"Nominatim found no match for '{query}'")
            return None
        first = data[0]
        try:
            return Coordinate(latitude=float(first["lat"]), longitude=float(first["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError(f"Nominatim returned an unusable location: {first}") from e

    async def reverse_geocode(self, coordinate: Coordinate) -> Address | None:
        params = {
            "format": "json",
            "lat": coordinate.latitude,
            "lon": coordinate.longitude,
            "addressdetails": 1,
        }
        data = await self._get_json(f"{self.base_url}/reverse", params, self.headers)
        if not isinstance(data, dict) or "error" in data:
            return None
        details = data.get("address") or {}
        if not isinstance(details, dict):
            raise GeocodingError(f"Nominatim returned an unexpected address payload: {details!r}")
        if not details:
            return None
        return Address(
            street=details.get("road", ""),
            number=details.get("house_number", ""),
            neighborhood=details.get("suburb") or details.get("neighbourhood") or "",
            city=details.get("city") or details.get("town") or details.get("village") or "",
            postal_code="".join(ch for ch in details.get("postcode", "") if ch.isdigit()),
            state=details.get("state"),
        )
