"""Utilities to populate the database with sample data for tests and demos."""
from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, sessionmaker

from .booking import BookingEngine
from .database import session_scope
from .errors import BookingError
from .models import utcnow
from .services import add_aircraft, add_airline, add_airport, add_flight, add_passenger

logger = logging.getLogger(__name__)

AIRPORTS: Sequence[Tuple[str, str, str, str, str]] = (
    ("JFK", "John F. Kennedy International Airport", "New York", "USA", "America/New_York"),
    ("LAX", "Los Angeles International Airport", "Los Angeles", "USA", "America/Los_Angeles"),
    ("LHR", "London Heathrow Airport", "London", "UK", "Europe/London"),
    ("ORD", "O'Hare International Airport", "Chicago", "USA", "America/Chicago"),
    ("CDG", "Charles de Gaulle Airport", "Paris", "France", "Europe/Paris"),
)
AIRLINES: Sequence[Tuple[str, str, str]] = (
    ("AA", "American Airlines", "USA"),
    ("BA", "British Airways", "UK"),
    ("DL", "Delta Air Lines", "USA"),
)
AIRCRAFT_MODELS: Sequence[Tuple[str, int]] = (("A320", 150), ("B737", 160), ("B787", 240), ("E175", 76))
FIRST_NAMES = ("Ava", "Noah", "Liam", "Mia", "Lucas", "Emma", "Ethan", "Isabella")
LAST_NAMES = ("Johnson", "Williams", "Smith", "Brown", "Garcia", "Lee")
SEAT_LETTERS = "ABCDEF"


def _random_departure(now: datetime) -> datetime:
    start = now + timedelta(days=random.randint(1, 10))
    return start.replace(
        hour=random.randint(5, 22),
        minute=random.choice((0, 15, 30, 45)),
        second=0,
        microsecond=0,
    )


def _load_reference_data(session: Session) -> None:
    for airport_id, name, city, country, tz in AIRPORTS:
        add_airport(session, airport_id=airport_id, airport_name=name, city=city, country=country, timezone=tz)
    for airline_id, name, country in AIRLINES:
        add_airline(session, airline_id=airline_id, airline_name=name, country_of_origin=country)
        for index, (model, seats) in enumerate(AIRCRAFT_MODELS):
            add_aircraft(
                session,
                aircraft_id=f"{airline_id}-{model}",
                airline_id=airline_id,
                model=model,
                total_seats=seats,
                manufacturing_year=2010 + index,
            )


def generate_sample_data(
    session_factory: sessionmaker[Session],
    *,
    flights: int = 25,
    passengers: int = 200,
    bookings: int = 500,
    now: Optional[datetime] = None,
    seed: int = 42,
) -> Dict[str, int]:
    """Populate the database with deterministic pseudo-random data."""

    random.seed(seed)
    now = now or utcnow()
    flight_ids = []
    passenger_ids = []
    with session_scope(session_factory) as session:
        _load_reference_data(session)
        codes = [airport[0] for airport in AIRPORTS]
        for index in range(flights):
            origin, destination = random.sample(codes, 2)
            airline_id = random.choice(AIRLINES)[0]
            model = random.choice(AIRCRAFT_MODELS)[0]
            departure = _random_departure(now)
            flight = add_flight(
                session,
                flight_id=f"{airline_id}{100 + index}",
                airline_id=airline_id,
                aircraft_id=f"{airline_id}-{model}",
                departure_airport=origin,
                arrival_airport=destination,
                departure_time=departure,
                arrival_time=departure + timedelta(hours=random.randint(2, 12)),
                base_price=Decimal(random.choice((120, 180, 220, 450))),
            )
            flight_ids.append(flight.flight_id)
        for index in range(passengers):
            passenger = add_passenger(
                session,
                first_name=random.choice(FIRST_NAMES),
                last_name=random.choice(LAST_NAMES),
                email=f"test{index}@example.com",
                phone=f"+1-555-{index:04d}",
                date_of_birth=date(1960, 1, 1) + timedelta(days=random.randint(0, 15000)),
            )
            passenger_ids.append(passenger.passenger_id)

    if not flight_ids or not passenger_ids:
        return {"flights": len(flight_ids), "passengers": len(passenger_ids), "bookings": 0}

    engine = BookingEngine(session_factory, clock=lambda: now)
    successful = 0
    for _ in range(bookings):
        seat = f"{random.randint(1, 30)}{random.choice(SEAT_LETTERS)}"
        try:
            engine.book(random.choice(passenger_ids), random.choice(flight_ids), seat)
        except BookingError as exc:
            logger.debug("Skipped sample booking: %s", exc)
            continue
        successful += 1
    return {"flights": len(flight_ids), "passengers": len(passenger_ids), "bookings": successful}


__all__ = ["generate_sample_data"]
