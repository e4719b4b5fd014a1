"""Match a delivery distance against a merchant's zone table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ...config import settings
from ...models.domain import (
    DeliveryZone,
    OutOfCoverage,
    Resolved,
    Storefront,
    ZoneTable,
)

logger = logging.getLogger(__name__)

FREE = Decimal("0.00")


@dataclass(frozen=True, slots=True)
class DeliveryTimePolicy:
    """How delivery windows are filled in when a zone lacks an explicit estimate.

    The fallback window is a fixed merchant-wide default, not a function of
    distance. `window_minutes` is the span added to a zone that declares only
    one end of its window.
    """

    fallback_min_minutes: int = 30
    fallback_max_minutes: int = 45
    window_minutes: int = 15

    def __post_init__(self) -> None:
        if self.fallback_min_minutes < 0 or self.window_minutes < 0:
            raise ValueError("Delivery time policy values must be non-negative.")
        if self.fallback_max_minutes < self.fallback_min_minutes:
            raise ValueError("fallback_max_minutes must be >= fallback_min_minutes.")

    @classmethod
    def from_settings(cls) -> "DeliveryTimePolicy":
        return cls(
            fallback_min_minutes=settings.fallback_min_time_minutes,
            fallback_max_minutes=settings.fallback_max_time_minutes,
            window_minutes=settings.delivery_window_minutes,
        )

    @property
    def fallback_window(self) -> tuple[int, int]:
        return (self.fallback_min_minutes, self.fallback_max_minutes)

    def window_for(self, zone: DeliveryZone) -> tuple[int, int]:
        if zone.min_time is not None and zone.max_time is not None:
            return (zone.min_time, zone.max_time)
        if zone.min_time is not None:
            return (zone.min_time, zone.min_time + self.window_minutes)
        if zone.max_time is not None:
            return (max(0, zone.max_time - self.window_minutes), zone.max_time)
        return self.fallback_window


def find_zone(distance: float, zones: ZoneTable) -> Optional[DeliveryZone]:
    """Return the first zone, in ascending radius order, whose radius covers `distance`."""

    if distance < 0:
        raise ValueError(f"Distance must be non-negative, got {distance}.")
    for zone in zones:
        if zone.max_distance_km >= distance:
            return zone
    return None


def resolve(
    distance: float,
    zones: ZoneTable,
    policy: DeliveryTimePolicy | None = None,
) -> Resolved | OutOfCoverage:
    """Resolve the fee and delivery window for a distance in kilometres.

    The upper bound of each zone is inclusive. Zones sharing a radius are a
    merchant configuration error; the earlier-inserted one wins and callers
    are expected to report it through :func:`log_zone_conflicts`.
    """

    policy = policy or DeliveryTimePolicy()
    zone = find_zone(distance, zones)
    if zone is None:
        return OutOfCoverage(distance_km=distance)
    min_time, max_time = policy.window_for(zone)
    return Resolved(
        fee=zone.fee,
        min_time=min_time,
        max_time=max_time,
        distance_km=distance,
        zone_id=zone.zone_id,
    )


def resolve_for_storefront(
    distance: float,
    zones: ZoneTable,
    storefront: Storefront,
    policy: DeliveryTimePolicy | None = None,
) -> Resolved | OutOfCoverage:
    """Resolve, honoring a merchant that has switched delivery fees off.

    Such merchants deliver everywhere free of charge: covered addresses keep
    their zone's window, uncovered ones get the fallback window.
    """

    policy = policy or DeliveryTimePolicy()
    result = resolve(distance, zones, policy)
    if storefront.charges_delivery_fee:
        return result
    if isinstance(result, Resolved):
        return Resolved(
            fee=FREE,
            min_time=result.min_time,
            max_time=result.max_time,
            distance_km=distance,
            zone_id=result.zone_id,
        )
    min_time, max_time = policy.fallback_window
    return Resolved(fee=FREE, min_time=min_time, max_time=max_time, distance_km=distance)


def log_zone_conflicts(table: ZoneTable) -> dict[float, tuple[str, ...]]:
    """Warn about zones sharing a radius and return the conflicts found."""

    conflicts = table.conflicts()
    for radius, zone_ids in conflicts.items():
        logger.warning(
            f"Merchant {table.merchant_id} has {len(zone_ids)} delivery zones with radius "
            f"{radius} km ({', '.join(zone_ids)}); using {zone_ids[0]}."
        )
    return conflicts
