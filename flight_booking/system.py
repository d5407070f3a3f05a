"""In-process API of the flight booking system."""
from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from .booking import BookingEngine
from .config import Settings
from .database import init_db
from .identifiers import PriceLike, generate_booking_id
from .models import Booking, PriceAudit, utcnow
from .pricing import PriceAuditRecorder
from .search import FlightAvailability, FlightSearch, list_available_flights, summarize_capacity
from .services import get_booking


class ReservationSystem:
    """Facade over the booking engine, the price recorder and flight search.

    Safe to share between threads; every call uses its own session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_booking_id,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or Settings()
        self.bookings = BookingEngine(session_factory, self.settings, clock=clock, id_factory=id_factory)
        self.prices = PriceAuditRecorder(session_factory, self.settings, clock=clock)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ReservationSystem":
        """Create the schema at ``settings.db_url`` if needed and return a system bound to it."""

        settings = settings or Settings.from_env()
        return cls(init_db(settings.db_url, echo=settings.echo_sql), settings)

    def search_flights(self, departure_city: str, arrival_city: str, departure_date: date) -> FlightSearch:
        return FlightSearch(self.session_factory, departure_city, arrival_city, departure_date)

    def book_flight(
        self,
        passenger_id: int,
        flight_id: str,
        seat_number: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        return self.bookings.book(
            passenger_id, flight_id, seat_number, timeout=timeout, cancel_event=cancel_event
        )

    def cancel_booking(
        self,
        booking_id: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.bookings.cancel(booking_id, timeout=timeout, cancel_event=cancel_event)

    def check_in(
        self,
        booking_id: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.bookings.check_in(booking_id, timeout=timeout, cancel_event=cancel_event)

    def update_flight_price(
        self,
        flight_id: str,
        new_price: PriceLike,
        actor: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Optional[PriceAudit]:
        return self.prices.set_price(flight_id, new_price, actor, timeout=timeout)

    def available_seats(self, flight_id: str) -> int:
        return self.bookings.available_seats(flight_id)

    def get_booking(self, booking_id: str) -> Booking:
        with self.session_factory() as session:
            return get_booking(session, booking_id)

    def price_history(self, flight_id: str) -> List[PriceAudit]:
        return self.prices.price_history(flight_id)

    def list_available_flights(self) -> List[FlightAvailability]:
        with self.session_factory() as session:
            return list_available_flights(session, now=self._clock())

    def capacity_summary(self) -> List[dict]:
        with self.session_factory() as session:
            return summarize_capacity(session)


__all__ = ["ReservationSystem"]
