"""Geocoding adapters and the shared geocoder."""

from .base import GeocodingError, GeocodingProvider
from .cache import GeocodeCache
from .service import Geocoder, format_address_query, get_geocoder

__all__ = [
    "GeocodingError",
    "GeocodingProvider",
    "GeocodeCache",
    "Geocoder",
    "format_address_query",
    "get_geocoder",
]
