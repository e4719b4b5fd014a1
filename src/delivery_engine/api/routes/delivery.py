"""API routes for merchant zone tables and delivery quotes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from ...data.zone_repository import load_storefront, load_zones
from ...models.domain import Storefront, ZoneTable
from ...schemas.delivery import (
    CoordinatePayload,
    QuoteRequest,
    QuoteResponse,
    ZoneConflict,
    ZoneSchema,
    ZoneTableResponse,
)
from ...services.geocoding import get_geocoder
from ...services.geospatial import coverage_geojson
from ...services.quote import quote_address, quote_coordinate
from ...services.zones.resolver import DeliveryTimePolicy, log_zone_conflicts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/merchants", tags=["delivery"])


def _load_merchant(merchant_id: str) -> tuple[Storefront, ZoneTable]:
    try:
        storefront = load_storefront(merchant_id)
        zones = load_zones(merchant_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return storefront, zones


@router.get("/{merchant_id}/zones", response_model=ZoneTableResponse)
def get_zone_table(merchant_id: str) -> ZoneTableResponse:
    """Active delivery zones with coverage circles for the merchant's map."""
    storefront, table = _load_merchant(merchant_id)
    conflicts = log_zone_conflicts(table)
    return ZoneTableResponse(
        merchant_id=merchant_id,
        storefront=CoordinatePayload.from_domain(storefront.location),
        charges_delivery_fee=storefront.charges_delivery_fee,
        zones=[
            ZoneSchema(
                zone_id=zone.zone_id,
                name=zone.name,
                max_distance_km=zone.max_distance_km,
                fee=zone.fee,
                min_time=zone.min_time,
                max_time=zone.max_time,
                coverage=coverage_geojson(storefront.location, zone.max_distance_km),
            )
            for zone in table
        ],
        conflicts=[
            ZoneConflict(max_distance_km=radius, zone_ids=list(zone_ids), selected_zone_id=zone_ids[0])
            for radius, zone_ids in conflicts.items()
        ],
    )


@router.post("/{merchant_id}/delivery-quote", response_model=QuoteResponse)
async def delivery_quote(merchant_id: str, payload: QuoteRequest) -> QuoteResponse:
    """Resolve the delivery fee for an address or map point against current zones.

    Checkout calls this when placing the order so the charged fee always
    reflects the zone table at that moment.
    """
    storefront, table = await run_in_threadpool(_load_merchant, merchant_id)
    policy = DeliveryTimePolicy.from_settings()

    if payload.coordinate is not None:
        coordinate = payload.coordinate.to_domain()
        result = quote_coordinate(coordinate, storefront, table, policy)
        return QuoteResponse.from_result(merchant_id, result, coordinate)

    try:
        geocoder = get_geocoder()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    quote = await quote_address(payload.address.to_domain(), storefront, table, geocoder, policy)
    logger.info(f"Delivery quote for merchant {merchant_id}: {quote.result.status}")
    return QuoteResponse.from_result(merchant_id, quote.result, quote.coordinate)
