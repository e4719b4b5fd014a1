"""Checkout fee session as a frozen value plus a single transition function."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from ...models.domain import (
    Address,
    Coordinate,
    DeliveryOption,
    GeocodeFailed,
    Incomplete,
    OutOfCoverage,
    Resolved,
    ResolutionResult,
    Storefront,
    ZoneTable,
)
from ..quote import quote_coordinate
from ..zones.resolver import DeliveryTimePolicy


class SessionState(str, Enum):
    IDLE = "idle"
    INCOMPLETE = "incomplete"
    PENDING_GEOCODE = "pending_geocode"
    RESOLVED = "resolved"
    OUT_OF_COVERAGE = "out_of_coverage"
    GEOCODE_FAILED = "geocode_failed"


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    storefront: Storefront
    zone_table: ZoneTable
    delivery_option: DeliveryOption = DeliveryOption.DELIVERY
    state: SessionState = SessionState.IDLE
    current_address: Optional[Address] = None
    last_resolved_address: Optional[Address] = None
    coordinate: Optional[Coordinate] = None
    result: Optional[ResolutionResult] = None
    request_id: int = 0
    is_address_saved: bool = False


@dataclass(frozen=True, slots=True)
class AddressEdited:
    address: Address


@dataclass(frozen=True, slots=True)
class LocationPicked:
    coordinate: Coordinate
    address: Optional[Address] = None


@dataclass(frozen=True, slots=True)
class GeocodeCompleted:
    request_id: int
    outcome: Union[Coordinate, GeocodeFailed]


@dataclass(frozen=True, slots=True)
class ReverseGeocodeCompleted:
    request_id: int
    address: Address


@dataclass(frozen=True, slots=True)
class ZoneTableReplaced:
    zone_table: ZoneTable


@dataclass(frozen=True, slots=True)
class StorefrontUpdated:
    storefront: Storefront


@dataclass(frozen=True, slots=True)
class AddressSaved:
    pass


@dataclass(frozen=True, slots=True)
class DeliveryOptionChanged:
    option: DeliveryOption


@dataclass(frozen=True, slots=True)
class SessionReset:
    pass


SessionEvent = Union[
    AddressEdited,
    LocationPicked,
    GeocodeCompleted,
    ReverseGeocodeCompleted,
    ZoneTableReplaced,
    StorefrontUpdated,
    AddressSaved,
    DeliveryOptionChanged,
    SessionReset,
]


def state_for(result: ResolutionResult) -> SessionState:
    if isinstance(result, Resolved):
        return SessionState.RESOLVED
    if isinstance(result, OutOfCoverage):
        return SessionState.OUT_OF_COVERAGE
    if isinstance(result, GeocodeFailed):
        return SessionState.GEOCODE_FAILED
    return SessionState.INCOMPLETE


def coverage_changed(previous: Optional[ResolutionResult], current: Optional[ResolutionResult]) -> bool:
    """True when a re-resolution moved the customer in or out of coverage or changed the fee."""

    if type(previous) is not type(current):
        return True
    if isinstance(previous, Resolved) and isinstance(current, Resolved):
        return previous.fee != current.fee
    return False


def _fresh(snapshot: SessionSnapshot, option: DeliveryOption) -> SessionSnapshot:
    return SessionSnapshot(
        storefront=snapshot.storefront,
        zone_table=snapshot.zone_table,
        delivery_option=option,
        request_id=snapshot.request_id + 1,
    )


def _resolve_cached(snapshot: SessionSnapshot, policy: DeliveryTimePolicy) -> SessionSnapshot:
    """Re-run the resolver against the cached coordinate after a configuration change."""

    if snapshot.coordinate is None or snapshot.state not in (
        SessionState.RESOLVED,
        SessionState.OUT_OF_COVERAGE,
    ):
        return snapshot
    result = quote_coordinate(snapshot.coordinate, snapshot.storefront, snapshot.zone_table, policy)
    saved = snapshot.is_address_saved and not coverage_changed(snapshot.result, result)
    return replace(snapshot, result=result, state=state_for(result), is_address_saved=saved)


def reduce(
    snapshot: SessionSnapshot,
    event: SessionEvent,
    policy: DeliveryTimePolicy | None = None,
) -> SessionSnapshot:
    """Apply one event and return the next snapshot. Never mutates its input."""

    policy = policy or DeliveryTimePolicy()

    if isinstance(event, AddressEdited):
        if snapshot.delivery_option is DeliveryOption.PICKUP:
            return snapshot
        missing = event.address.missing_fields()
        return replace(
            snapshot,
            current_address=event.address,
            coordinate=None,
            request_id=snapshot.request_id + 1,
            is_address_saved=False,
            result=Incomplete(missing_fields=missing) if missing else None,
            state=SessionState.INCOMPLETE if missing else SessionState.PENDING_GEOCODE,
        )

    if isinstance(event, LocationPicked):
        if snapshot.delivery_option is DeliveryOption.PICKUP:
            return snapshot
        address = event.address if event.address is not None else snapshot.current_address
        result = quote_coordinate(event.coordinate, snapshot.storefront, snapshot.zone_table, policy)
        return replace(
            snapshot,
            current_address=address,
            last_resolved_address=address,
            coordinate=event.coordinate,
            request_id=snapshot.request_id + 1,
            is_address_saved=False,
            result=result,
            state=state_for(result),
        )

    if isinstance(event, GeocodeCompleted):
        if event.request_id != snapshot.request_id or snapshot.state is not SessionState.PENDING_GEOCODE:
            return snapshot
        if isinstance(event.outcome, GeocodeFailed):
            return replace(snapshot, coordinate=None, result=event.outcome, state=SessionState.GEOCODE_FAILED)
        result = quote_coordinate(event.outcome, snapshot.storefront, snapshot.zone_table, policy)
        return replace(
            snapshot,
            coordinate=event.outcome,
            last_resolved_address=snapshot.current_address,
            result=result,
            state=state_for(result),
        )

    if isinstance(event, ReverseGeocodeCompleted):
        if event.request_id != snapshot.request_id:
            return snapshot
        return replace(snapshot, current_address=event.address, last_resolved_address=event.address)

    if isinstance(event, ZoneTableReplaced):
        return _resolve_cached(replace(snapshot, zone_table=event.zone_table), policy)

    if isinstance(event, StorefrontUpdated):
        return _resolve_cached(replace(snapshot, storefront=event.storefront), policy)

    if isinstance(event, AddressSaved):
        if snapshot.state is not SessionState.RESOLVED:
            return snapshot
        return replace(snapshot, is_address_saved=True)

    if isinstance(event, DeliveryOptionChanged):
        if event.option is snapshot.delivery_option:
            return snapshot
        return _fresh(snapshot, event.option)

    if isinstance(event, SessionReset):
        return _fresh(snapshot, snapshot.delivery_option)

    raise TypeError(f"Unsupported session event: {event!r}")
