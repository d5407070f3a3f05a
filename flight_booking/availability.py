"""Seat availability calculations.

Everything here except ``claim_flight`` is read-only. Callers that act on the
result must run it inside the flight's exclusive scope (see
``flight_booking.booking``); a number read outside that scope is only advisory.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Subquery, func, select, update
from sqlalchemy.orm import Session

from .errors import NotFoundError
from .models import ACTIVE_BOOKING_STATUSES, Aircraft, Booking, Flight


def active_booking_count(session: Session, flight_id: str) -> int:
    stmt = select(func.count(Booking.booking_id)).where(
        Booking.flight_id == flight_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    )
    return int(session.scalar(stmt) or 0)


def available_seats(session: Session, flight_id: str, *, flight: Optional[Flight] = None) -> int:
    """Return ``aircraft.total_seats`` minus the flight's active bookings."""

    if flight is None:
        flight = session.get(Flight, flight_id)
    if flight is None:
        raise NotFoundError(f"flight {flight_id!r} not found")
    aircraft = session.get(Aircraft, flight.aircraft_id)
    if aircraft is None:
        raise NotFoundError(f"aircraft {flight.aircraft_id!r} for flight {flight_id!r} not found")
    return aircraft.total_seats - active_booking_count(session, flight_id)


def seat_holder(session: Session, flight_id: str, seat_number: str) -> Optional[Booking]:
    """Return the active booking holding ``seat_number`` on the flight, if any."""

    stmt = select(Booking).where(
        Booking.flight_id == flight_id,
        Booking.seat_number == seat_number,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    )
    return session.scalars(stmt).first()


def claim_flight(session: Session, flight_id: str) -> bool:
    """Bump the flight's ``inventory_version`` as the transaction's first write.

    The write takes the database's write lock on the flight (a row lock, or the
    whole file on SQLite) and holds it until commit, so every read that follows
    in the transaction sees the committed state and no other writer can act on
    the flight in between. Returns ``False`` if the flight does not exist.
    """

    stmt = (
        update(Flight)
        .where(Flight.flight_id == flight_id)
        .values(inventory_version=Flight.inventory_version + 1)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount > 0


def active_counts_subquery() -> Subquery:
    """Per-flight active booking counts, for joining into report queries."""

    return (
        select(Booking.flight_id, func.count(Booking.booking_id).label("active_bookings"))
        .where(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .group_by(Booking.flight_id)
        .subquery()
    )


__all__ = [
    "active_booking_count",
    "active_counts_subquery",
    "available_seats",
    "claim_flight",
    "seat_holder",
]
