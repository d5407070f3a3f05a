"""Read-only flight search and capacity reports.

Results here are best-effort snapshots taken without the booking scope; a seat
count seen in a search result is never used to decide a booking.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Iterator, List, Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session, aliased, sessionmaker

from .availability import active_counts_subquery
from .errors import ValidationError
from .identifiers import to_utc_naive
from .models import Aircraft, Airline, Airport, Flight, FlightStatus, utcnow


@dataclass(frozen=True)
class FlightAvailability:
    flight_id: str
    airline_name: str
    departure_city: str
    arrival_city: str
    departure_time: datetime
    arrival_time: datetime
    base_price: Decimal
    status: FlightStatus
    available_seats: int

    def as_row(self) -> List[str]:
        return [
            self.flight_id,
            self.airline_name,
            f"{self.departure_city} -> {self.arrival_city}",
            self.departure_time.strftime("%Y-%m-%d %H:%M"),
            self.arrival_time.strftime("%Y-%m-%d %H:%M"),
            f"{self.base_price:.2f}",
            self.status.value,
            str(self.available_seats),
        ]


def _availability_select() -> Tuple[Select, Any, Any]:
    origin = aliased(Airport, name="origin")
    destination = aliased(Airport, name="destination")
    counts = active_counts_subquery()
    remaining = Aircraft.total_seats - func.coalesce(counts.c.active_bookings, 0)
    stmt = (
        select(
            Flight.flight_id,
            Airline.airline_name,
            origin.city.label("departure_city"),
            destination.city.label("arrival_city"),
            Flight.departure_time,
            Flight.arrival_time,
            Flight.base_price,
            Flight.status,
            remaining.label("available_seats"),
        )
        .join(Airline, Flight.airline_id == Airline.airline_id)
        .join(origin, Flight.departure_airport == origin.airport_id)
        .join(destination, Flight.arrival_airport == destination.airport_id)
        .join(Aircraft, Flight.aircraft_id == Aircraft.aircraft_id)
        .outerjoin(counts, counts.c.flight_id == Flight.flight_id)
        .where(Flight.status != FlightStatus.CANCELLED, remaining > 0)
        .order_by(Flight.departure_time, Flight.flight_id)
    )
    return stmt, origin, destination


def _to_availability(row) -> FlightAvailability:
    return FlightAvailability(
        flight_id=row.flight_id,
        airline_name=row.airline_name,
        departure_city=row.departure_city,
        arrival_city=row.arrival_city,
        departure_time=row.departure_time,
        arrival_time=row.arrival_time,
        base_price=row.base_price,
        status=row.status,
        available_seats=int(row.available_seats),
    )


class FlightSearch:
    """Flights between two cities departing on a given (UTC) date.

    Iterating runs the query; iterating again runs it again against current data.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        departure_city: str,
        arrival_city: str,
        departure_date: date,
    ) -> None:
        if not departure_city or not departure_city.strip():
            raise ValidationError("departure city must not be empty")
        if not arrival_city or not arrival_city.strip():
            raise ValidationError("arrival city must not be empty")
        if isinstance(departure_date, datetime):
            departure_date = to_utc_naive(departure_date).date()
        if not isinstance(departure_date, date):
            raise ValidationError("departure date must be a date")
        self._session_factory = session_factory
        self.departure_city = departure_city.strip()
        self.arrival_city = arrival_city.strip()
        self.departure_date = departure_date

    def statement(self) -> Select:
        stmt, origin, destination = _availability_select()
        start = datetime.combine(self.departure_date, time.min)
        end = start + timedelta(days=1)
        return stmt.where(
            func.lower(origin.city) == self.departure_city.lower(),
            func.lower(destination.city) == self.arrival_city.lower(),
            Flight.departure_time >= start,
            Flight.departure_time < end,
        )

    def __iter__(self) -> Iterator[FlightAvailability]:
        with self._session_factory() as session:
            for row in session.execute(self.statement()):
                yield _to_availability(row)


def search_flights(
    session_factory: sessionmaker[Session],
    departure_city: str,
    arrival_city: str,
    departure_date: date,
) -> FlightSearch:
    return FlightSearch(session_factory, departure_city, arrival_city, departure_date)


def list_available_flights(session: Session, *, now: Optional[datetime] = None) -> List[FlightAvailability]:
    """Every bookable flight: departing in the future, not cancelled, seats left."""

    moment = to_utc_naive(now) if now is not None else utcnow()
    stmt, _, _ = _availability_select()
    stmt = stmt.where(Flight.departure_time > moment)
    return [_to_availability(row) for row in session.execute(stmt)]


def summarize_capacity(session: Session) -> List[dict]:
    counts = active_counts_subquery()
    active = func.coalesce(counts.c.active_bookings, 0)
    rows = session.execute(
        select(
            Flight.flight_id,
            Flight.departure_airport,
            Flight.arrival_airport,
            Flight.status,
            Aircraft.total_seats,
            active.label("bookings"),
        )
        .join(Aircraft, Flight.aircraft_id == Aircraft.aircraft_id)
        .outerjoin(counts, counts.c.flight_id == Flight.flight_id)
        .order_by(Flight.flight_id)
    ).all()
    return [
        {
            "flight": row.flight_id,
            "route": f"{row.departure_airport}-{row.arrival_airport}",
            "status": row.status.value,
            "available": row.total_seats - int(row.bookings),
            "capacity": row.total_seats,
            "bookings": int(row.bookings),
        }
        for row in rows
    ]


__all__ = [
    "FlightAvailability",
    "FlightSearch",
    "list_available_flights",
    "search_flights",
    "summarize_capacity",
]
