"""Asyncio orchestrator for one checkout attempt's delivery fee."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from ...config import settings
from ...models.domain import (
    Address,
    Coordinate,
    DeliveryOption,
    GeocodeFailed,
    GeocodeFailureReason,
    Resolved,
    ResolutionResult,
    Storefront,
    ZoneTable,
)
from ..geocoding import GeocodingError
from ..quote import locate
from ..zones.resolver import DeliveryTimePolicy, log_zone_conflicts
from .state import (
    AddressEdited,
    AddressSaved,
    DeliveryOptionChanged,
    GeocodeCompleted,
    LocationPicked,
    ReverseGeocodeCompleted,
    SessionEvent,
    SessionReset,
    SessionSnapshot,
    SessionState,
    StorefrontUpdated,
    ZoneTableReplaced,
    coverage_changed,
    reduce,
)

logger = logging.getLogger(__name__)

ResultCallback = Callable[[ResolutionResult], None]
ChangeCallback = Callable[[Optional[ResolutionResult], ResolutionResult], None]
StateCallback = Callable[[SessionSnapshot], None]


class AddressLocator(Protocol):
    def geocode(self, address: Address) -> Awaitable[Optional[Coordinate]]: ...

    def reverse_geocode(self, coordinate: Coordinate) -> Awaitable[Optional[Address]]: ...


class ZoneSubscription(Protocol):
    def subscribe(self, callback: Callable[[ZoneTable], None]) -> Callable[[], None]: ...


class FeeSession:
    """Owns the address input of one checkout and keeps its fee decision current.

    Every address edit or map pick takes a new request id. Asynchronous work
    captures the id it was started under and its outcome is applied only if
    that id is still the latest, so a slow geocode for an old address can
    never overwrite the answer for a newer one. Nothing is cancelled; stale
    work simply finishes and is ignored.

    `on_result` only sees published decisions. An edit or a reset that clears
    the result is reported through `on_state_change`, which receives every
    snapshot whose state, result or saved flag moved.

    Methods that start background work must be called from a running event
    loop.
    """

    def __init__(
        self,
        storefront: Storefront,
        zone_table: ZoneTable,
        geocoder: AddressLocator,
        *,
        debounce_seconds: float | None = None,
        policy: DeliveryTimePolicy | None = None,
        on_result: ResultCallback | None = None,
        on_change: ChangeCallback | None = None,
        zone_feed: ZoneSubscription | None = None,
        on_state_change: StateCallback | None = None,
    ) -> None:
        self.geocoder = geocoder
        self.debounce_seconds = debounce_seconds if debounce_seconds is not None else settings.debounce_seconds
        self.policy = policy or DeliveryTimePolicy.from_settings()
        self.on_result = on_result
        self.on_change = on_change
        self.on_state_change = on_state_change
        self._snapshot = SessionSnapshot(storefront=storefront, zone_table=zone_table)
        self._tasks: set[asyncio.Task] = set()
        log_zone_conflicts(zone_table)
        self._unsubscribe = zone_feed.subscribe(self.on_zone_table_changed) if zone_feed else None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    @property
    def result(self) -> Optional[ResolutionResult]:
        return self._snapshot.result

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return self._snapshot.coordinate

    @property
    def current_address(self) -> Optional[Address]:
        return self._snapshot.current_address

    @property
    def request_id(self) -> int:
        return self._snapshot.request_id

    @property
    def is_address_saved(self) -> bool:
        return self._snapshot.is_address_saved

    @property
    def confirmed_quote(self) -> Optional[Resolved]:
        """The fee checkout may charge: only available while the address is saved."""
        if self._snapshot.is_address_saved and isinstance(self._snapshot.result, Resolved):
            return self._snapshot.result
        return None

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------
    def set_address(self, address: Address) -> None:
        snapshot = self._apply(AddressEdited(address))
        if snapshot.state is SessionState.PENDING_GEOCODE:
            self._spawn(self._debounced_geocode(snapshot.request_id, address))

    def set_location(self, coordinate: Coordinate, address: Address | None = None) -> None:
        """Use a coordinate picked on the map or carried by an autocomplete suggestion."""
        snapshot = self._apply(LocationPicked(coordinate, address))
        if snapshot.delivery_option is DeliveryOption.DELIVERY and address is None:
            self._spawn(self._fill_address(snapshot.request_id, coordinate))

    def on_zone_table_changed(self, zone_table: ZoneTable) -> None:
        merchant_id = self._snapshot.storefront.merchant_id
        if zone_table.merchant_id != merchant_id:
            logger.warning(
                f"Ignoring zone table for merchant {zone_table.merchant_id} in session for {merchant_id}"
            )
            return
        log_zone_conflicts(zone_table)
        logger.info(
            f"Zone table for merchant {zone_table.merchant_id} replaced ({len(zone_table)} zones)"
        )
        self._apply_configuration(ZoneTableReplaced(zone_table))

    def on_storefront_changed(self, storefront: Storefront) -> None:
        self._apply_configuration(StorefrontUpdated(storefront))

    def save(self) -> Optional[ResolutionResult]:
        """Confirm the current decision. Only a settled Resolved session becomes saved."""
        snapshot = self._apply(AddressSaved())
        if not snapshot.is_address_saved:
            logger.debug(f"Address not saved; session is {snapshot.state.value}")
        return snapshot.result

    def set_delivery_option(self, option: DeliveryOption | str) -> None:
        self._apply(DeliveryOptionChanged(DeliveryOption(option)))

    def reset(self) -> None:
        self._apply(SessionReset())

    async def wait_idle(self) -> None:
        """Wait until every debounce, geocode and reverse-geocode task has finished."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks))

    def close(self) -> None:
        self.reset()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _apply(self, event: SessionEvent) -> SessionSnapshot:
        previous = self._snapshot
        current = reduce(previous, event, self.policy)
        self._snapshot = current
        if current.result is not None and current.result is not previous.result and self.on_result:
            self.on_result(current.result)
        if self.on_state_change and (
            current.state is not previous.state
            or current.result is not previous.result
            or current.is_address_saved != previous.is_address_saved
        ):
            self.on_state_change(current)
        return current

    def _apply_configuration(self, event: SessionEvent) -> None:
        previous = self._snapshot.result
        current = self._apply(event).result
        if previous is not None and current is not previous and coverage_changed(previous, current):
            logger.info(f"Delivery decision changed after configuration update: {previous} -> {current}")
            if self.on_change:
                self.on_change(previous, current)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current(self, request_id: int) -> bool:
        return request_id == self._snapshot.request_id

    async def _debounced_geocode(self, request_id: int, address: Address) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if not self._is_current(request_id):
            logger.debug(f"Request {request_id} superseded during debounce")
            return
        try:
            outcome = await locate(self.geocoder, address)
        except Exception:
            logger.exception(f"Unexpected geocoder failure for request {request_id}")
            outcome = GeocodeFailed(reason=GeocodeFailureReason.PROVIDER_ERROR)
        if not self._is_current(request_id):
            logger.debug(f"Discarding stale geocode result for request {request_id}")
            return
        self._apply(GeocodeCompleted(request_id, outcome))

    async def _fill_address(self, request_id: int, coordinate: Coordinate) -> None:
        try:
            address = await self.geocoder.reverse_geocode(coordinate)
        except GeocodingError as e:
            logger.warning(f"Reverse geocoding failed for {coordinate.as_tuple()}: {e}")
            return
        except Exception:
            logger.exception(f"Unexpected reverse geocoder failure for {coordinate.as_tuple()}")
            return
        if address is None or not self._is_current(request_id):
            return
        self._apply(ReverseGeocodeCompleted(request_id, address))
