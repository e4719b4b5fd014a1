"""One-shot resolution pipeline: address → coordinate → distance → zone."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..models.domain import (
    Address,
    Coordinate,
    GeocodeFailed,
    GeocodeFailureReason,
    Incomplete,
    OutOfCoverage,
    Resolved,
    ResolutionResult,
    Storefront,
    ZoneTable,
)
from .geocoding import Geocoder, GeocodingError
from .geospatial import distance_km
from .zones.resolver import DeliveryTimePolicy, resolve_for_storefront

logger = logging.getLogger(__name__)


def quote_coordinate(
    coordinate: Coordinate,
    storefront: Storefront,
    zones: ZoneTable,
    policy: DeliveryTimePolicy | None = None,
) -> Resolved | OutOfCoverage:
    distance = distance_km(storefront.location, coordinate)
    return resolve_for_storefront(distance, zones, storefront, policy)


async def locate(geocoder: Geocoder, address: Address) -> Coordinate | GeocodeFailed:
    """Geocode an address, folding provider outcomes into a coordinate or a failure value."""

    try:
        coordinate = await geocoder.geocode(address)
    except GeocodingError as e:
        logger.warning(f"Geocoding unavailable: {e}")
        return GeocodeFailed(reason=GeocodeFailureReason.PROVIDER_ERROR)
    if coordinate is None:
        return GeocodeFailed(reason=GeocodeFailureReason.NOT_FOUND)
    return coordinate


@dataclass(frozen=True, slots=True)
class Quote:
    result: ResolutionResult
    coordinate: Optional[Coordinate] = None


async def quote_address(
    address: Address,
    storefront: Storefront,
    zones: ZoneTable,
    geocoder: Geocoder,
    policy: DeliveryTimePolicy | None = None,
) -> Quote:
    missing = address.missing_fields()
    if missing:
        return Quote(result=Incomplete(missing_fields=missing))
    located = await locate(geocoder, address)
    if isinstance(located, GeocodeFailed):
        return Quote(result=located)
    return Quote(result=quote_coordinate(located, storefront, zones, policy), coordinate=located)
