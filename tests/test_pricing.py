from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select

from conftest import NOW, make_flight, make_passengers
from flight_booking.config import Settings
from flight_booking.database import session_scope
from flight_booking.errors import InvalidStateError, NotFoundError, ValidationError
from flight_booking.models import Booking, Flight, PriceAudit
from flight_booking.pricing import PriceAuditRecorder
from flight_booking.system import ReservationSystem


def _audit_rows(session_factory, flight_id):
    with session_factory() as session:
        return list(session.scalars(select(PriceAudit).where(PriceAudit.flight_id == flight_id)))


def test_same_price_writes_no_audit_and_changed_price_writes_one(system, session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")

    assert system.update_flight_price(flight_id, "100.00", "ops") is None
    assert _audit_rows(session_factory, flight_id) == []

    record = system.update_flight_price(flight_id, Decimal("120.00"), "ops")

    rows = _audit_rows(session_factory, flight_id)
    assert len(rows) == 1
    assert rows[0].audit_id == record.audit_id
    assert rows[0].old_price == Decimal("100.00")
    assert rows[0].new_price == Decimal("120.00")
    assert rows[0].changed_by == "ops"
    assert rows[0].changed_at == NOW
    with session_factory() as session:
        assert session.get(Flight, flight_id).base_price == Decimal("120.00")


def test_equal_price_in_other_forms_is_a_no_op(system, session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")

    assert system.update_flight_price(flight_id, 100) is None
    assert system.update_flight_price(flight_id, 100.0) is None
    assert _audit_rows(session_factory, flight_id) == []


def test_booking_price_is_unaffected_by_later_changes(system, session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")
    (passenger_id,) = make_passengers(session_factory, 1)
    booking_id = system.book_flight(passenger_id, flight_id, "4D")

    system.update_flight_price(flight_id, "150.00", "revenue-mgmt")

    assert system.get_booking(booking_id).total_price == Decimal("100.00")


def test_price_history_lists_every_change_in_order(system, session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")

    for price in ("110.00", "90.50", "90.50", "130.00"):
        system.update_flight_price(flight_id, price, "ops")

    history = system.price_history(flight_id)
    assert [(r.old_price, r.new_price) for r in history] == [
        (Decimal("100.00"), Decimal("110.00")),
        (Decimal("110.00"), Decimal("90.50")),
        (Decimal("90.50"), Decimal("130.00")),
    ]


def test_default_actor_comes_from_settings(session_factory):
    flight_id = make_flight(session_factory)
    recorder = PriceAuditRecorder(session_factory, Settings(default_actor="pricing-bot"), clock=lambda: NOW)

    record = recorder.set_price(flight_id, "101.00")

    assert record.changed_by == "pricing-bot"


@pytest.mark.parametrize("price", ["-1", "abc", "NaN", True, None])
def test_invalid_prices_are_rejected(system, session_factory, price):
    flight_id = make_flight(session_factory)

    with pytest.raises(ValidationError):
        system.update_flight_price(flight_id, price)

    assert _audit_rows(session_factory, flight_id) == []


def test_unknown_flight(system):
    with pytest.raises(NotFoundError):
        system.update_flight_price("NOPE1", "10.00")
    with pytest.raises(NotFoundError):
        system.price_history("NOPE1")


def test_unaudited_price_change_is_refused(session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")

    with pytest.raises(InvalidStateError):
        with session_scope(session_factory) as session:
            session.get(Flight, flight_id).base_price = Decimal("80.00")

    with session_factory() as session:
        assert session.get(Flight, flight_id).base_price == Decimal("100.00")


def test_booking_total_price_cannot_be_rewritten(session_factory):
    flight_id = make_flight(session_factory)
    (passenger_id,) = make_passengers(session_factory, 1)
    booking_id = ReservationSystem(session_factory, clock=lambda: NOW).book_flight(passenger_id, flight_id, "1A")

    with pytest.raises(InvalidStateError):
        with session_scope(session_factory) as session:
            session.get(Booking, booking_id).total_price = Decimal("1.00")


def test_audit_records_cannot_be_edited_or_deleted(system, session_factory):
    flight_id = make_flight(session_factory)
    record = system.update_flight_price(flight_id, "150.00", "ops")

    with pytest.raises(InvalidStateError):
        with session_scope(session_factory) as session:
            session.get(PriceAudit, record.audit_id).changed_by = "someone-else"
    with pytest.raises(InvalidStateError):
        with session_scope(session_factory) as session:
            session.delete(session.get(PriceAudit, record.audit_id))

    assert len(_audit_rows(session_factory, flight_id)) == 1


def test_price_updates_do_not_wait_for_the_booking_scope(system, session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")

    with system.bookings._locks.hold(flight_id):
        record = system.update_flight_price(flight_id, "99.00", "ops", timeout=1)

    assert record.new_price == Decimal("99.00")


def test_recorders_on_one_factory_share_the_price_lock(session_factory):
    first = PriceAuditRecorder(session_factory)
    second = PriceAuditRecorder(session_factory)

    assert first._locks is second._locks


def test_price_change_claims_the_flight_row(system, session_factory):
    flight_id = make_flight(session_factory, base_price="100.00")

    system.update_flight_price(flight_id, "120.00")
    system.update_flight_price(flight_id, "120.00")

    with session_factory() as session:
        flight = session.get(Flight, flight_id)
        assert flight.base_price == Decimal("120.00")
        # the no-op change commits its claim too
        assert flight.inventory_version == 2
