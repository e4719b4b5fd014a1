"""Google Geocoding API adapter."""

from __future__ import annotations

import logging
import re

import httpx

from ...config import settings
from ...models.domain import Address, Coordinate
from .base import GeocodingError, HTTPGeocodingProvider

logger = logging.getLogger(__name__)

# Checked in order; the first component matching any of these becomes the neighborhood
NEIGHBORHOOD_TYPES = (
    "sublocality_level_1",
    "neighborhood",
    "sublocality",
    "sublocality_level_2",
    "sublocality_level_3",
)


class GoogleGeocodingProvider(HTTPGeocodingProvider):
    name = "google"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        url: str | None = None,
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
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is not configured.")
        self.url = url or settings.google_geocode_url
        self.country = country if country is not None else settings.geocode_country

    async def _call(self, params: dict) -> list[dict]:
        params = {**params, "key": self.api_key}
        data = await self._get_json(self.url, params)
        if not isinstance(data, dict):
            raise GeocodingError(f"Google returned an unexpected payload: {data!r}")
        status = data.get("status")
        if status == "OK":
            return data.get("results") or []
        if status == "ZERO_RESULTS":
            return []
        message = data.get("error_message", "no error message")
        raise GeocodingError(f"Google geocoding failed with status {status}: {message}")

    async def geocode(self, query: str) -> Coordinate | None:
        params = {"address": query}
        if self.country:
            params["components"] = f"country:{self.country}"
        results = await self._call(params)
        if not results:
            logger.info(f"Google found no match for '{query}'")
            return None
        first = results[0]
        try:
            location = first["geometry"]["location"]
            return Coordinate(latitude=float(location["lat"]), longitude=float(location["lng"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError(f"Google returned an unusable location: {first!r}") from e

    async def reverse_geocode(self, coordinate: Coordinate) -> Address | None:
        results = await self._call({"latlng": f"{coordinate.latitude},{coordinate.longitude}"})
        if not results:
            return None
        first = results[0]
        if not isinstance(first, dict):
            raise GeocodingError(f"Google returned an unexpected reverse result: {first!r}")
        return address_from_components(first.get("address_components", []))


def address_from_components(components: list[dict]) -> Address:
    """Map Google address components onto an :class:`Address`."""

    fields = {"street": "", "number": "", "neighborhood": "", "city": "", "postal_code": ""}
    state = None
    neighborhood_rank = len(NEIGHBORHOOD_TYPES)
    for component in components:
        types = component.get("types", [])
        long_name = component.get("long_name", "")
        if "route" in types:
            fields["street"] = long_name
        if "street_number" in types:
            fields["number"] = long_name
        for rank, kind in enumerate(NEIGHBORHOOD_TYPES):
            if kind in types and rank < neighborhood_rank:
                fields["neighborhood"] = long_name
                neighborhood_rank = rank
                break
        if "locality" in types or ("administrative_area_level_2" in types and not fields["city"]):
            fields["city"] = long_name
        if "administrative_area_level_1" in types:
            state = component.get("short_name") or long_name
        if "postal_code" in types:
            fields["postal_code"] = re.sub(r"\D", "", long_name)
    # Google sometimes repeats the street as the neighborhood
    if fields["neighborhood"] == fields["street"]:
        fields["neighborhood"] = ""
    return Address(state=state, **fields)
