"""Domain models for storefronts, delivery zones and resolution outcomes."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Optional, Union

CENTS = Decimal("0.01")

REQUIRED_ADDRESS_FIELDS = ("street", "number", "neighborhood", "city", "postal_code")


def to_money(value: object) -> Decimal:
    """Convert a numeric value into a currency amount rounded to cents."""

    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid currency amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid currency amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A (latitude, longitude) pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError("Coordinate values must be finite numbers.")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Address:
    """Structured postal address as typed by the customer.

    Equality is exact field equality; two addresses that geocode to the same
    point are still different inputs.
    """

    street: str = ""
    number: str = ""
    neighborhood: str = ""
    city: str = ""
    postal_code: str = ""
    complement: Optional[str] = None
    state: Optional[str] = None

    def missing_fields(self) -> tuple[str, ...]:
        return tuple(name for name in REQUIRED_ADDRESS_FIELDS if not getattr(self, name).strip())

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


@dataclass(frozen=True, slots=True)
class DeliveryZone:
    """Distance tier configured by a merchant."""

    zone_id: str
    max_distance_km: float
    fee: Decimal
    name: Optional[str] = None
    min_time: Optional[int] = None
    max_time: Optional[int] = None

    def __post_init__(self) -> None:
        if not math.isfinite(self.max_distance_km) or self.max_distance_km <= 0:
            raise ValueError(f"Zone {self.zone_id}: max_distance_km must be > 0.")
        fee = to_money(self.fee)
        if fee < 0:
            raise ValueError(f"Zone {self.zone_id}: fee must be non-negative.")
        object.__setattr__(self, "fee", fee)
        for label, value in (("min_time", self.min_time), ("max_time", self.max_time)):
            if value is not None and value < 0:
                raise ValueError(f"Zone {self.zone_id}: {label} must be non-negative.")
        if self.min_time is not None and self.max_time is not None and self.min_time > self.max_time:
            raise ValueError(f"Zone {self.zone_id}: min_time must not exceed max_time.")


@dataclass(frozen=True, slots=True)
class ZoneTable:
    """Snapshot of a merchant's active zones ordered by ascending radius.

    The ordering is stable, so zones sharing a radius keep the order in which
    they were supplied.
    """

    merchant_id: str
    zones: tuple[DeliveryZone, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.zones, key=lambda zone: zone.max_distance_km))
        object.__setattr__(self, "zones", ordered)

    @classmethod
    def empty(cls, merchant_id: str) -> "ZoneTable":
        return cls(merchant_id=merchant_id)

    @classmethod
    def from_zones(cls, merchant_id: str, zones: Iterable[DeliveryZone]) -> "ZoneTable":
        return cls(merchant_id=merchant_id, zones=tuple(zones))

    def __len__(self) -> int:
        return len(self.zones)

    def __iter__(self):
        return iter(self.zones)

    def conflicts(self) -> dict[float, tuple[str, ...]]:
        """Return radii shared by more than one zone, mapped to the zone ids involved."""

        by_radius: dict[float, list[str]] = {}
        for zone in self.zones:
            by_radius.setdefault(zone.max_distance_km, []).append(zone.zone_id)
        return {radius: tuple(ids) for radius, ids in by_radius.items() if len(ids) > 1}


@dataclass(frozen=True, slots=True)
class Storefront:
    """Merchant location and fee-charging setting."""

    merchant_id: str
    location: Coordinate
    charges_delivery_fee: bool = True
    name: Optional[str] = None


class DeliveryOption(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class GeocodeFailureReason(str, Enum):
    NOT_FOUND = "not_found"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True, slots=True)
class Resolved:
    fee: Decimal
    min_time: int
    max_time: int
    distance_km: Optional[float] = None
    zone_id: Optional[str] = None
    status: str = field(default="resolved", init=False)


@dataclass(frozen=True, slots=True)
class OutOfCoverage:
    distance_km: Optional[float] = None
    status: str = field(default="out_of_coverage", init=False)


@dataclass(frozen=True, slots=True)
class GeocodeFailed:
    reason: GeocodeFailureReason = GeocodeFailureReason.NOT_FOUND
    status: str = field(default="geocode_failed", init=False)


@dataclass(frozen=True, slots=True)
class Incomplete:
    missing_fields: tuple[str, ...] = ()
    status: str = field(default="incomplete", init=False)


ResolutionResult = Union[Resolved, OutOfCoverage, GeocodeFailed, Incomplete]
