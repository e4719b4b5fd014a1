"""Merchant storefront and delivery zone loaders backed by Supabase."""

from __future__ import annotations

import logging
from typing import Any

from ..db.supabase import get_supabase_client
from ..models.domain import Coordinate, DeliveryZone, Storefront, ZoneTable

logger = logging.getLogger(__name__)


def _require_client(client: Any = None) -> Any:
    client = client or get_supabase_client()
    if client is None:
        raise ValueError("Supabase is not configured. Set DFE_SUPABASE_URL and DFE_SUPABASE_KEY.")
    return client


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def zone_from_row(row: dict) -> DeliveryZone:
    """Build a zone from a `delivery_zones` row; raises on unusable rows."""

    return DeliveryZone(
        zone_id=str(row["id"]),
        name=row.get("name"),
        max_distance_km=float(row["max_distance_km"]),
        fee=row.get("delivery_fee") or 0,
        min_time=_optional_int(row.get("min_delivery_time_minutes")),
        max_time=_optional_int(row.get("max_delivery_time_minutes")),
    )


def load_zones(merchant_id: str, client: Any = None) -> ZoneTable:
    """Fetch the merchant's active zones as a fresh snapshot.

    Rows that fail validation are skipped so one bad tier does not block
    checkout for every customer of the merchant.
    """

    supabase = _require_client(client)
    response = (
        supabase.table("delivery_zones")
        .select("*")
        .eq("restaurant_id", merchant_id)
        .eq("is_active", True)
        .order("max_distance_km")
        .order("created_at")
        .execute()
    )

    zones: list[DeliveryZone] = []
    for row in response.data or []:
        try:
            zones.append(zone_from_row(row))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping invalid delivery zone row {row.get('id')} for merchant {merchant_id}: {e}")
            continue
    return ZoneTable.from_zones(merchant_id, zones)


def load_storefront(merchant_id: str, client: Any = None) -> Storefront:
    """Fetch the merchant's location and fee-charging setting."""

    supabase = _require_client(client)
    response = supabase.table("restaurants").select("*").eq("id", merchant_id).limit(1).execute()
    if not response.data:
        raise LookupError(f"Merchant '{merchant_id}' not found.")
    row = response.data[0]
    return storefront_from_row(row)


def storefront_from_row(row: dict) -> Storefront:
    latitude, longitude = row.get("latitude"), row.get("longitude")
    if latitude is None or longitude is None:
        raise ValueError(f"Merchant '{row.get('id')}' has no storefront location configured.")
    return Storefront(
        merchant_id=str(row["id"]),
        name=row.get("name"),
        location=Coordinate(latitude=float(latitude), longitude=float(longitude)),
        # NULL means the merchant never touched the setting; fees apply
        charges_delivery_fee=row.get("delivery_enabled") is not False,
    )
