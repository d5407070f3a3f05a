from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List

import pytest

from flight_booking.database import create_session_factory, session_scope
from flight_booking.models import Base, FlightStatus
from flight_booking.services import add_aircraft, add_airline, add_airport, add_flight, add_passenger
from flight_booking.system import ReservationSystem

NOW = datetime(2030, 1, 1, 12, 0)


def make_session_factory(db_file):
    engine, session_factory = create_session_factory(f"sqlite+pysqlite:///{db_file}", echo=False)
    Base.metadata.create_all(engine)
    return session_factory


def add_reference_data(session_factory) -> None:
    with session_scope(session_factory) as session:
        add_airport(
            session,
            airport_id="JFK",
            airport_name="John F. Kennedy International Airport",
            city="New York",
            country="USA",
            timezone="America/New_York",
        )
        add_airport(
            session,
            airport_id="LHR",
            airport_name="London Heathrow Airport",
            city="London",
            country="UK",
            timezone="Europe/London",
        )
        add_airport(
            session,
            airport_id="LAX",
            airport_name="Los Angeles International Airport",
            city="Los Angeles",
            country="USA",
            timezone="America/Los_Angeles",
        )
        add_airline(session, airline_id="BA", airline_name="British Airways", country_of_origin="UK")


def make_flight(
    session_factory,
    flight_id: str = "BA100",
    *,
    total_seats: int = 2,
    base_price: str = "100.00",
    departure_time: datetime = NOW + timedelta(days=3),
    origin: str = "JFK",
    destination: str = "LHR",
    status: FlightStatus = FlightStatus.SCHEDULED,
) -> str:
    with session_scope(session_factory) as session:
        add_aircraft(
            session,
            aircraft_id=f"AC-{flight_id}",
            airline_id="BA",
            model="A320",
            total_seats=total_seats,
        )
        flight = add_flight(
            session,
            flight_id=flight_id,
            airline_id="BA",
            aircraft_id=f"AC-{flight_id}",
            departure_airport=origin,
            arrival_airport=destination,
            departure_time=departure_time,
            arrival_time=departure_time + timedelta(hours=7),
            base_price=base_price,
            status=status,
        )
        return flight.flight_id


def make_passengers(session_factory, count: int) -> List[int]:
    ids = []
    with session_scope(session_factory) as session:
        for index in range(count):
            passenger = add_passenger(
                session,
                first_name=f"User{index}",
                last_name="Traveler",
                email=f"user{index}@example.com",
                date_of_birth=date(1990, 1, 1),
            )
            ids.append(passenger.passenger_id)
    return ids


@pytest.fixture
def session_factory(tmp_path):
    factory = make_session_factory(tmp_path / "flights.db")
    add_reference_data(factory)
    return factory


@pytest.fixture
def system(session_factory):
    return ReservationSystem(session_factory, clock=lambda: NOW)
