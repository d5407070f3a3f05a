"""Entity Store helpers for the flight booking system.

These functions create and look up the reference data the booking engine works
against. They flush but never commit; the caller owns the transaction.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import InvalidStateError, NotFoundError, ValidationError
from .identifiers import (
    PriceLike,
    normalize_code,
    validate_capacity,
    validate_price,
    validate_schedule,
)
from .models import (
    Aircraft,
    Airline,
    Airport,
    Booking,
    Flight,
    FlightStatus,
    Passenger,
)

logger = logging.getLogger(__name__)


def _flush(session: Session, what: str) -> None:
    try:
        session.flush()
    except IntegrityError as exc:
        raise ValidationError(f"{what} violates a store constraint: {exc.orig}") from exc


def _required(value: str, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must not be empty")
    return value.strip()


def add_airport(
    session: Session,
    *,
    airport_id: str,
    airport_name: str,
    city: str,
    country: str,
    timezone: str,
) -> Airport:
    airport = Airport(
        airport_id=normalize_code(airport_id, length=3, label="airport code"),
        airport_name=_required(airport_name, "airport name"),
        city=_required(city, "city"),
        country=_required(country, "country"),
        timezone=_required(timezone, "timezone"),
    )
    session.add(airport)
    _flush(session, f"airport {airport.airport_id}")
    return airport


def add_airline(session: Session, *, airline_id: str, airline_name: str, country_of_origin: str) -> Airline:
    airline = Airline(
        airline_id=normalize_code(airline_id, length=2, label="airline code"),
        airline_name=_required(airline_name, "airline name"),
        country_of_origin=_required(country_of_origin, "country of origin"),
    )
    session.add(airline)
    _flush(session, f"airline {airline.airline_id}")
    return airline


def add_aircraft(
    session: Session,
    *,
    aircraft_id: str,
    airline_id: str,
    model: str,
    total_seats: int,
    manufacturing_year: Optional[int] = None,
) -> Aircraft:
    """Register an aircraft; ``total_seats`` is the capacity of every flight it operates."""

    airline_code = normalize_code(airline_id, length=2, label="airline code")
    if session.get(Airline, airline_code) is None:
        raise NotFoundError(f"airline {airline_code!r} not found")
    aircraft = Aircraft(
        aircraft_id=_required(aircraft_id, "aircraft id").upper(),
        airline_id=airline_code,
        model=_required(model, "model"),
        total_seats=validate_capacity(total_seats),
        manufacturing_year=manufacturing_year,
    )
    session.add(aircraft)
    _flush(session, f"aircraft {aircraft.aircraft_id}")
    return aircraft


def add_flight(
    session: Session,
    *,
    flight_id: str,
    airline_id: str,
    aircraft_id: str,
    departure_airport: str,
    arrival_airport: str,
    departure_time: datetime,
    arrival_time: datetime,
    base_price: PriceLike,
    status: FlightStatus = FlightStatus.SCHEDULED,
) -> Flight:
    """Schedule a flight."""

    departure, arrival = validate_schedule(departure_time, arrival_time)
    price = validate_price(base_price)
    airline_code = normalize_code(airline_id, length=2, label="airline code")
    origin = normalize_code(departure_airport, length=3, label="airport code")
    destination = normalize_code(arrival_airport, length=3, label="airport code")
    if origin == destination:
        raise ValidationError("departure and arrival airports must differ")
    if session.get(Airline, airline_code) is None:
        raise NotFoundError(f"airline {airline_code!r} not found")
    aircraft = session.get(Aircraft, aircraft_id)
    if aircraft is None:
        raise NotFoundError(f"aircraft {aircraft_id!r} not found")
    for code in (origin, destination):
        if session.get(Airport, code) is None:
            raise NotFoundError(f"airport {code!r} not found")

    flight = Flight(
        flight_id=_required(flight_id, "flight id").upper(),
        airline_id=airline_code,
        aircraft_id=aircraft.aircraft_id,
        departure_airport=origin,
        arrival_airport=destination,
        departure_time=departure,
        arrival_time=arrival,
        base_price=price,
        status=FlightStatus(status),
    )
    session.add(flight)
    _flush(session, f"flight {flight.flight_id}")
    logger.debug("Scheduled flight %s %s->%s", flight.flight_id, origin, destination)
    return flight


def add_passenger(
    session: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    date_of_birth: date,
    phone: Optional[str] = None,
    passport_number: Optional[str] = None,
) -> Passenger:
    address = _required(email, "email").lower()
    if "@" not in address:
        raise ValidationError(f"invalid email {email!r}")
    passenger = Passenger(
        first_name=_required(first_name, "first name"),
        last_name=_required(last_name, "last name"),
        email=address,
        phone=phone,
        date_of_birth=date_of_birth,
        passport_number=passport_number.strip().upper() if passport_number else None,
    )
    session.add(passenger)
    _flush(session, f"passenger {address}")
    return passenger


def update_flight_status(session: Session, *, flight_id: str, status: FlightStatus) -> Flight:
    """Move a flight to ``status``; a cancelled flight stays cancelled."""

    flight = get_flight(session, flight_id)
    new_status = FlightStatus(status)
    if flight.status == FlightStatus.CANCELLED and new_status != FlightStatus.CANCELLED:
        raise InvalidStateError(f"flight {flight_id!r} is cancelled")
    if flight.status != new_status:
        logger.info("Flight %s status %s -> %s", flight_id, flight.status.value, new_status.value)
        flight.status = new_status
        session.flush()
    return flight


def get_flight(session: Session, flight_id: str) -> Flight:
    flight = session.get(Flight, flight_id)
    if flight is None:
        raise NotFoundError(f"flight {flight_id!r} not found")
    return flight


def get_passenger(session: Session, passenger_id: int) -> Passenger:
    passenger = session.get(Passenger, passenger_id)
    if passenger is None:
        raise NotFoundError(f"passenger {passenger_id!r} not found")
    return passenger


def get_booking(session: Session, booking_id: str) -> Booking:
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"booking {booking_id!r} not found")
    return booking


def find_passenger_by_email(session: Session, email: str) -> Optional[Passenger]:
    return session.scalars(select(Passenger).where(Passenger.email == email.strip().lower())).first()


__all__ = [
    "add_aircraft",
    "add_airline",
    "add_airport",
    "add_flight",
    "add_passenger",
    "find_passenger_by_email",
    "get_booking",
    "get_flight",
    "get_passenger",
    "update_flight_status",
]
