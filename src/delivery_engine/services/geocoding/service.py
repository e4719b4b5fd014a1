"""Address geocoding with provider fallback and response caching."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Sequence

from ...config import settings
from ...models.domain import Address, Coordinate
from .base import GeocodingError, GeocodingProvider
from .cache import GeocodeCache, is_miss
from .google import GoogleGeocodingProvider
from .nominatim import NominatimProvider

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def format_address_query(address: Address) -> str:
    """Join the address fields into the free-text query sent to providers.

    The complement (apartment, block) is left out since providers cannot
    place it and it only adds noise to the match.
    """

    parts = [address.street, address.number, address.neighborhood, address.city]
    if address.state:
        parts.append(address.state)
    parts.append(address.postal_code)
    cleaned = [_WHITESPACE.sub(" ", part).strip() for part in parts]
    return ", ".join(part for part in cleaned if part)


def cache_key(query: str) -> str:
    return _WHITESPACE.sub(" ", query).strip().casefold()


class Geocoder:
    """Front door used by the fee session and the quote endpoint.

    Providers are tried in order. The first coordinate wins; a provider
    error only propagates when no later provider found the address.
    """

    def __init__(
        self,
        providers: Sequence[GeocodingProvider],
        cache: GeocodeCache | None = None,
    ) -> None:
        if not providers:
            raise ValueError("At least one geocoding provider is required.")
        self.providers = tuple(providers)
        self.cache = cache

    @property
    def provider_names(self) -> tuple[str, ...]:
        return tuple(provider.name for provider in self.providers)

    async def geocode(self, address: Address) -> Coordinate | None:
        return await self.geocode_query(format_address_query(address))

    async def geocode_query(self, query: str) -> Coordinate | None:
        key = cache_key(query)
        if self.cache is not None:
            cached = self.cache.get(key)
            if not is_miss(cached):
                return cached

        last_error: GeocodingError | None = None
        for index, provider in enumerate(self.providers):
            try:
                coordinate = await provider.geocode(query)
            except GeocodingError as e:
                logger.warning(f"Geocoding provider {provider.name} failed for '{query}': {e}")
                last_error = e
                continue
            if coordinate is not None:
                if index > 0:
                    logger.info(f"Address '{query}' resolved by fallback provider {provider.name}")
                if self.cache is not None:
                    self.cache.put(key, coordinate)
                return coordinate

        if last_error is not None:
            raise last_error
        if self.cache is not None:
            self.cache.put(key, None)
        return None

    async def reverse_geocode(self, coordinate: Coordinate) -> Address | None:
        last_error: GeocodingError | None = None
        for provider in self.providers:
            try:
                address = await provider.reverse_geocode(coordinate)
            except GeocodingError as e:
                logger.warning(f"Reverse geocoding with {provider.name} failed: {e}")
                last_error = e
                continue
            if address is not None:
                return address
        if last_error is not None:
            raise last_error
        return None


def build_providers() -> list[GeocodingProvider]:
    """Instantiate every provider that has enough configuration to run."""

    providers: list[GeocodingProvider] = []
    if settings.google_maps_api_key:
        providers.append(GoogleGeocodingProvider())
    if settings.nominatim_base_url:
        providers.append(NominatimProvider())
    return providers


@lru_cache()
def get_geocoder() -> Geocoder:
    """Process-wide geocoder so every session shares one response cache."""

    providers = build_providers()
    if not providers:
        raise ValueError(
            "No geocoding provider configured. Set DFE_GOOGLE_MAPS_API_KEY or DFE_NOMINATIM_BASE_URL."
        )
    cache = GeocodeCache(
        ttl_seconds=settings.geocode_cache_ttl_seconds,
        max_entries=settings.geocode_cache_max_entries,
    )
    return Geocoder(providers, cache=cache)
