import asyncio
import logging
from decimal import Decimal

from delivery_engine.data.zone_feed import ZoneFeed
from delivery_engine.models.domain import (
    Address,
    Coordinate,
    DeliveryZone,
    GeocodeFailed,
    GeocodeFailureReason,
    Incomplete,
    OutOfCoverage,
    Resolved,
    Storefront,
    ZoneTable,
)
from delivery_engine.services.geocoding import GeocodingError
from delivery_engine.services.session import FeeSession, SessionState

KM_PER_DEGREE = 111.19492664455873

STOREFRONT = Storefront(merchant_id="M1", location=Coordinate(0.0, 0.0))


def _address(street: str) -> Address:
    return Address(street=street, number="100", neighborhood="Centro", city="Recife", postal_code="50000000")


ADDRESS_A = _address("Rua A")
ADDRESS_B = _address("Rua B")


def _point_at(km: float) -> Coordinate:
    return Coordinate(latitude=0.0, longitude=km / KM_PER_DEGREE)


def _table(*tiers: tuple[float, float]) -> ZoneTable:
    return ZoneTable.from_zones(
        "M1",
        [DeliveryZone(zone_id=f"Z{radius}", max_distance_km=radius, fee=fee) for radius, fee in tiers],
    )


TIERS = _table((2, 4.00), (5, 7.00), (10, 12.00))


class ScriptedGeocoder:
    """Answers keyed by street; answers may be held until the test releases them."""

    def __init__(self, answers: dict, reverse: dict | None = None) -> None:
        self.answers = answers
        self.reverse = reverse or {}
        self.calls: list[Address] = []
        self.reverse_calls: list[Coordinate] = []
        self.gates: dict[str, asyncio.Event] = {}

    def hold(self, street: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[street] = gate
        return gate

    async def geocode(self, address: Address):
        self.calls.append(address)
        gate = self.gates.get(address.street)
        if gate is not None:
            await gate.wait()
        answer = self.answers.get(address.street)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def reverse_geocode(self, coordinate: Coordinate):
        self.reverse_calls.append(coordinate)
        return self.reverse.get(coordinate)


def _session(geocoder, **kwargs) -> FeeSession:
    kwargs.setdefault("debounce_seconds", 0)
    return FeeSession(STOREFRONT, kwargs.pop("zone_table", TIERS), geocoder, **kwargs)


def test_address_resolves_to_zone_fee():
    async def scenario():
        published = []
        geocoder = ScriptedGeocoder({"Rua A": _point_at(4.0)})
        session = _session(geocoder, on_result=published.append)
        session.set_address(ADDRESS_A)
        assert session.state is SessionState.PENDING_GEOCODE
        await session.wait_idle()
        return session, published

    session, published = asyncio.run(scenario())
    assert session.state is SessionState.RESOLVED
    assert session.result.fee == Decimal("7.00")
    assert session.coordinate == _point_at(4.0)
    assert published == [session.result]


def test_slow_geocode_for_earlier_address_never_overwrites_later_one():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": _point_at(1.0), "Rua B": _point_at(4.0)})
        gate_a = geocoder.hold("Rua A")
        gate_b = geocoder.hold("Rua B")
        session = _session(geocoder)

        session.set_address(ADDRESS_A)
        await asyncio.sleep(0.01)  # A's geocode is now in flight
        session.set_address(ADDRESS_B)
        await asyncio.sleep(0.01)

        gate_b.set()
        await asyncio.sleep(0.01)
        fee_after_b = session.result.fee

        gate_a.set()
        await session.wait_idle()
        return session, geocoder, fee_after_b

    session, geocoder, fee_after_b = asyncio.run(scenario())
    assert [address.street for address in geocoder.calls] == ["Rua A", "Rua B"]
    assert fee_after_b == Decimal("7.00")
    assert session.state is SessionState.RESOLVED
    assert session.result.fee == Decimal("7.00")
    assert session.coordinate == _point_at(4.0)
    assert session.snapshot.last_resolved_address == ADDRESS_B


def test_rapid_edits_geocode_only_the_last_address():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": _point_at(1.0), "Rua B": _point_at(4.0)})
        session = _session(geocoder, debounce_seconds=0.05)
        session.set_address(ADDRESS_A)
        await asyncio.sleep(0.01)
        session.set_address(ADDRESS_B)
        await session.wait_idle()
        return session, geocoder

    session, geocoder = asyncio.run(scenario())
    assert geocoder.calls == [ADDRESS_B]
    assert session.result.fee == Decimal("7.00")


def test_zone_change_re_resolves_without_geocoding():
    async def scenario():
        notices = []
        geocoder = ScriptedGeocoder({"Rua A": _point_at(4.0)})
        session = _session(geocoder, on_change=lambda before, after: notices.append((before, after)))
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        session.save()

        session.on_zone_table_changed(_table((2, 4.00), (3, 6.00)))
        await session.wait_idle()
        return session, geocoder, notices

    session, geocoder, notices = asyncio.run(scenario())
    assert len(geocoder.calls) == 1
    assert session.state is SessionState.OUT_OF_COVERAGE
    assert isinstance(session.result, OutOfCoverage)
    assert not session.is_address_saved
    assert session.confirmed_quote is None
    assert len(notices) == 1
    before, after = notices[0]
    assert isinstance(before, Resolved) and isinstance(after, OutOfCoverage)


def test_fee_change_from_zone_update_requires_reconfirmation():
    async def scenario():
        notices = []
        session = _session(
            ScriptedGeocoder({"Rua A": _point_at(4.0)}),
            on_change=lambda before, after: notices.append(after),
        )
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        session.save()
        session.on_zone_table_changed(_table((5, 9.50)))
        return session, notices

    session, notices = asyncio.run(scenario())
    assert session.result.fee == Decimal("9.50")
    assert not session.is_address_saved
    assert notices == [session.result]


def test_unchanged_fee_keeps_saved_status():
    async def scenario():
        notices = []
        session = _session(
            ScriptedGeocoder({"Rua A": _point_at(4.0)}),
            on_change=lambda before, after: notices.append(after),
        )
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        session.save()
        session.on_zone_table_changed(_table((6, 7.00)))
        return session, notices

    session, notices = asyncio.run(scenario())
    assert session.is_address_saved
    assert session.confirmed_quote.fee == Decimal("7.00")
    assert notices == []


def test_save_is_idempotent_and_any_edit_revokes_it():
    async def scenario():
        session = _session(ScriptedGeocoder({"Rua A": _point_at(1.0)}))
        session.set_address(ADDRESS_A)
        await session.wait_idle()

        first = session.save()
        second = session.save()
        saved_before_edit = session.is_address_saved

        session.set_address(ADDRESS_A)
        saved_right_after_edit = session.is_address_saved
        await session.wait_idle()
        return session, first, second, saved_before_edit, saved_right_after_edit

    session, first, second, saved_before_edit, saved_right_after_edit = asyncio.run(scenario())
    assert saved_before_edit
    assert first is second
    assert isinstance(first, Resolved)
    assert not saved_right_after_edit
    # Same address, same fee: still needs an explicit save
    assert session.result.fee == Decimal("4.00")
    assert not session.is_address_saved
    assert session.confirmed_quote is None


def test_save_while_pending_does_not_confirm():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": _point_at(1.0)})
        gate = geocoder.hold("Rua A")
        session = _session(geocoder)
        session.set_address(ADDRESS_A)
        await asyncio.sleep(0.01)
        result = session.save()
        saved = session.is_address_saved
        gate.set()
        await session.wait_idle()
        return session, result, saved

    session, result, saved = asyncio.run(scenario())
    assert result is None
    assert not saved
    assert not session.is_address_saved
    assert session.state is SessionState.RESOLVED


def test_reset_then_edit_matches_a_fresh_session():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": _point_at(1.0), "Rua B": _point_at(4.0)})
        reused = _session(geocoder)
        reused.set_address(ADDRESS_A)
        await reused.wait_idle()
        reused.save()
        reused.reset()
        after_reset = reused.snapshot
        reused.set_address(ADDRESS_B)
        await reused.wait_idle()

        fresh = _session(geocoder)
        fresh.set_address(ADDRESS_B)
        await fresh.wait_idle()
        return after_reset, reused.snapshot, fresh.snapshot

    after_reset, reused, fresh = asyncio.run(scenario())
    assert after_reset.state is SessionState.IDLE
    assert after_reset.coordinate is None
    assert after_reset.result is None
    assert after_reset.current_address is None
    assert not after_reset.is_address_saved

    for field in ("state", "result", "coordinate", "current_address", "last_resolved_address", "is_address_saved"):
        assert getattr(reused, field) == getattr(fresh, field), field


def test_geocode_in_flight_during_reset_is_discarded():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": _point_at(1.0)})
        gate = geocoder.hold("Rua A")
        session = _session(geocoder)
        session.set_address(ADDRESS_A)
        await asyncio.sleep(0.01)
        session.reset()
        gate.set()
        await session.wait_idle()
        return session

    session = asyncio.run(scenario())
    assert session.state is SessionState.IDLE
    assert session.result is None


def test_not_found_and_provider_error_are_distinct_failures():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": None, "Rua B": GeocodingError("upstream down")})
        missing = _session(geocoder)
        missing.set_address(ADDRESS_A)
        broken = _session(geocoder)
        broken.set_address(ADDRESS_B)
        await missing.wait_idle()
        await broken.wait_idle()
        return missing, broken, geocoder

    missing, broken, geocoder = asyncio.run(scenario())
    assert missing.state is SessionState.GEOCODE_FAILED
    assert missing.result == GeocodeFailed(reason=GeocodeFailureReason.NOT_FOUND)
    assert broken.state is SessionState.GEOCODE_FAILED
    assert broken.result == GeocodeFailed(reason=GeocodeFailureReason.PROVIDER_ERROR)
    # no automatic retries
    assert len(geocoder.calls) == 2


def test_incomplete_address_is_not_geocoded():
    async def scenario():
        published = []
        geocoder = ScriptedGeocoder({})
        session = _session(geocoder, on_result=published.append)
        session.set_address(Address(street="Rua A", city="Recife"))
        await session.wait_idle()
        return session, geocoder, published

    session, geocoder, published = asyncio.run(scenario())
    assert session.state is SessionState.INCOMPLETE
    assert isinstance(session.result, Incomplete)
    assert session.result.missing_fields == ("number", "neighborhood", "postal_code")
    assert geocoder.calls == []
    assert published == [session.result]


def test_pickup_ignores_address_until_delivery_is_chosen_again():
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": _point_at(1.0)})
        session = _session(geocoder)
        session.set_delivery_option("pickup")
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        idle_during_pickup = session.state

        session.set_delivery_option("delivery")
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        return session, geocoder, idle_during_pickup

    session, geocoder, idle_during_pickup = asyncio.run(scenario())
    assert idle_during_pickup is SessionState.IDLE
    assert len(geocoder.calls) == 1
    assert session.state is SessionState.RESOLVED


def test_map_pick_resolves_immediately_and_fills_address():
    async def scenario():
        pin = _point_at(1.0)
        geocoder = ScriptedGeocoder({}, reverse={pin: ADDRESS_A})
        session = _session(geocoder)
        session.set_location(pin)
        immediate = session.state
        await session.wait_idle()
        return session, geocoder, immediate

    session, geocoder, immediate = asyncio.run(scenario())
    assert immediate is SessionState.RESOLVED
    assert geocoder.calls == []
    assert session.current_address == ADDRESS_A
    assert session.result.fee == Decimal("4.00")


def test_map_pick_with_known_address_skips_reverse_geocode():
    async def scenario():
        geocoder = ScriptedGeocoder({})
        session = _session(geocoder)
        session.set_location(_point_at(7.0), ADDRESS_B)
        await session.wait_idle()
        return session, geocoder

    session, geocoder = asyncio.run(scenario())
    assert geocoder.reverse_calls == []
    assert session.current_address == ADDRESS_B
    assert session.result.fee == Decimal("12.00")


def test_storefront_switching_fees_off_re_resolves():
    async def scenario():
        notices = []
        session = _session(
            ScriptedGeocoder({"Rua A": _point_at(4.0)}),
            on_change=lambda before, after: notices.append(after),
        )
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        session.on_storefront_changed(
            Storefront(merchant_id="M1", location=Coordinate(0.0, 0.0), charges_delivery_fee=False)
        )
        return session, notices

    session, notices = asyncio.run(scenario())
    assert session.result.fee == Decimal("0")
    assert len(notices) == 1


def test_zone_feed_subscription_drives_session_until_closed():
    async def scenario():
        feed = ZoneFeed("M1")
        session = _session(ScriptedGeocoder({"Rua A": _point_at(4.0)}), zone_feed=feed)
        session.set_address(ADDRESS_A)
        await session.wait_idle()

        feed.publish(_table((10, 3.00)))
        fee_after_publish = session.result.fee

        session.close()
        feed.publish(_table((10, 99.00)))
        return session, fee_after_publish

    session, fee_after_publish = asyncio.run(scenario())
    assert fee_after_publish == Decimal("3.00")
    assert session.state is SessionState.IDLE
    assert session.snapshot.zone_table == _table((10, 3.00))


def test_unexpected_geocoder_exception_fails_the_request(caplog):
    async def scenario():
        geocoder = ScriptedGeocoder({"Rua A": RuntimeError("driver bug")})
        session = _session(geocoder)
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        return session

    with caplog.at_level(logging.ERROR):
        session = asyncio.run(scenario())

    assert session.state is SessionState.GEOCODE_FAILED
    assert session.result == GeocodeFailed(reason=GeocodeFailureReason.PROVIDER_ERROR)
    assert "driver bug" in caplog.text


def test_unexpected_reverse_geocode_exception_keeps_pin_result():
    class BrokenReverse(ScriptedGeocoder):
        async def reverse_geocode(self, coordinate):
            raise RuntimeError("driver bug")

    async def scenario():
        session = _session(BrokenReverse({}))
        session.set_location(_point_at(1.0))
        await session.wait_idle()
        return session

    session = asyncio.run(scenario())
    assert session.state is SessionState.RESOLVED
    assert session.result.fee == Decimal("4.00")
    assert session.current_address is None


def test_zone_table_for_another_merchant_is_ignored(caplog):
    async def scenario():
        session = _session(ScriptedGeocoder({"Rua A": _point_at(4.0)}))
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        foreign = ZoneTable.from_zones("M2", [DeliveryZone(zone_id="x", max_distance_km=1, fee=99)])
        with caplog.at_level(logging.WARNING):
            session.on_zone_table_changed(foreign)
        return session

    session = asyncio.run(scenario())
    assert session.snapshot.zone_table == TIERS
    assert session.result.fee == Decimal("7.00")
    assert "M2" in caplog.text


def test_state_listener_sees_cleared_results():
    async def scenario():
        seen = []
        session = _session(ScriptedGeocoder({"Rua A": _point_at(1.0)}), on_state_change=seen.append)
        session.set_address(ADDRESS_A)
        await session.wait_idle()
        session.save()
        session.reset()
        return seen

    seen = asyncio.run(scenario())
    assert [(snapshot.state, snapshot.is_address_saved) for snapshot in seen] == [
        (SessionState.PENDING_GEOCODE, False),
        (SessionState.RESOLVED, False),
        (SessionState.RESOLVED, True),
        (SessionState.IDLE, False),
    ]
    assert seen[0].result is None
    assert seen[-1].result is None
