"""The booking engine: seat reservation, cancellation and check-in.

Every operation that changes which seats of a flight are held runs inside the
flight's exclusive scope. Threads sharing a session factory queue on one
in-process lock keyed by ``flight_id``. The transaction itself then opens by
bumping the flight's ``inventory_version`` (see ``claim_flight``), which holds
the database's write lock on the flight until commit, so engines in other
processes or on other factories are excluded as well. Availability is
recomputed after that claim, so two callers can never both take the last seat.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, NoReturn, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .availability import available_seats, claim_flight, seat_holder
from .config import Settings
from .database import session_scope
from .errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    OperationCancelledError,
    SeatsUnavailableError,
    SeatTakenError,
)
from .identifiers import generate_booking_id, to_utc_naive, validate_seat_number
from .locks import KeyedLock, shared_lock
from .models import Booking, BookingStatus, Flight, FlightStatus, Passenger, utcnow
from .services import get_flight, get_passenger

logger = logging.getLogger(__name__)


class _CommitCollision(Exception):
    """A booking id accepted inside the transaction was taken before commit."""


class BookingEngine:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_booking_id,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or Settings()
        self._clock = clock
        self._id_factory = id_factory
        self._locks = locks or shared_lock(session_factory, "booking-lock")

    def _now(self) -> datetime:
        return to_utc_naive(self._clock())

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.settings.lock_timeout if timeout is None else timeout

    @staticmethod
    def _ensure_bookable(flight: Flight, now: datetime) -> None:
        if flight.status == FlightStatus.CANCELLED:
            raise InvalidStateError(f"flight {flight.flight_id!r} is cancelled")
        if flight.departure_time <= now:
            raise InvalidStateError(f"flight {flight.flight_id!r} has already departed")

    def _draw_booking_id(self, session: Session) -> str:
        for attempt in range(1, self.settings.booking_id_attempts + 1):
            candidate = self._id_factory()
            if session.get(Booking, candidate) is None:
                return candidate
            logger.debug("Booking id %s already taken (draw %d)", candidate, attempt)
        raise ConflictError(
            f"could not generate a unique booking id in {self.settings.booking_id_attempts} draws"
        )

    def available_seats(self, flight_id: str, *, consistent: bool = False) -> int:
        """Remaining seats on the flight.

        With ``consistent=True`` the count is taken inside the flight's exclusive
        scope and reflects every booking or cancellation that finished before it.
        """

        if not consistent:
            with self._session_factory() as session:
                return available_seats(session, flight_id)
        with self._locks.hold(flight_id, timeout=self._timeout(None)):
            with self._session_factory() as session:
                return available_seats(session, flight_id)

    def book(
        self,
        passenger_id: int,
        flight_id: str,
        seat_number: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Reserve ``seat_number`` on the flight for the passenger.

        Returns the new booking id. On any error nothing is written.
        """

        seat = validate_seat_number(seat_number)
        with self._session_factory() as session:
            get_passenger(session, passenger_id)
            self._ensure_bookable(get_flight(session, flight_id), self._now())

        with self._locks.hold(flight_id, timeout=self._timeout(timeout), cancel_event=cancel_event):
            for attempt in range(1, self.settings.booking_id_attempts + 1):
                try:
                    booking = self._reserve(passenger_id, flight_id, seat, cancel_event)
                except _CommitCollision:
                    logger.warning("Booking id collided at commit on %s, retrying (attempt %d)", flight_id, attempt)
                    continue
                logger.info(
                    "Booked %s: passenger %s seat %s on %s at %s",
                    booking.booking_id,
                    passenger_id,
                    seat,
                    flight_id,
                    booking.total_price,
                )
                return booking.booking_id
        raise ConflictError(f"could not store a unique booking id for flight {flight_id!r}")

    def _reserve(
        self,
        passenger_id: int,
        flight_id: str,
        seat: str,
        cancel_event: Optional[threading.Event],
    ) -> Booking:
        booking_id: Optional[str] = None
        try:
            with session_scope(self._session_factory) as session:
                if not claim_flight(session, flight_id):
                    raise NotFoundError(f"flight {flight_id!r} not found")
                flight = get_flight(session, flight_id)
                now = self._now()
                self._ensure_bookable(flight, now)
                if available_seats(session, flight_id, flight=flight) <= 0:
                    raise SeatsUnavailableError(f"no seats available on flight {flight_id!r}")
                if seat_holder(session, flight_id, seat) is not None:
                    raise SeatTakenError(f"seat {seat} on flight {flight_id!r} is already taken")
                booking_id = self._draw_booking_id(session)
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError(f"booking on flight {flight_id!r} cancelled by caller")
                booking = Booking(
                    booking_id=booking_id,
                    passenger_id=passenger_id,
                    flight_id=flight_id,
                    seat_number=seat,
                    booking_date=now,
                    status=BookingStatus.CONFIRMED,
                    total_price=flight.base_price,
                )
                session.add(booking)
                session.flush()
        except IntegrityError as exc:
            self._classify_integrity_error(exc, booking_id, flight_id, seat, passenger_id)
        return booking

    def _classify_integrity_error(
        self,
        exc: IntegrityError,
        booking_id: Optional[str],
        flight_id: str,
        seat: str,
        passenger_id: int,
    ) -> NoReturn:
        with self._session_factory() as session:
            if booking_id is not None and session.get(Booking, booking_id) is not None:
                raise _CommitCollision(booking_id) from exc
            if seat_holder(session, flight_id, seat) is not None:
                raise SeatTakenError(f"seat {seat} on flight {flight_id!r} is already taken") from exc
            if session.get(Passenger, passenger_id) is None:
                raise NotFoundError(f"passenger {passenger_id!r} not found") from exc
        raise ConflictError(f"booking on flight {flight_id!r} violated a store constraint") from exc

    def _flight_of(self, booking_id: str) -> str:
        with self._session_factory() as session:
            booking = session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError(f"booking {booking_id!r} not found")
            return booking.flight_id

    def cancel(
        self,
        booking_id: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Cancel an active booking and free its seat. Cancelling twice is a no-op."""

        flight_id = self._flight_of(booking_id)
        with self._locks.hold(flight_id, timeout=self._timeout(timeout), cancel_event=cancel_event):
            with session_scope(self._session_factory) as session:
                claim_flight(session, flight_id)
                booking = session.get(Booking, booking_id)
                if booking is None:
                    raise NotFoundError(f"booking {booking_id!r} not found")
                if booking.status == BookingStatus.CANCELLED:
                    logger.debug("Booking %s already cancelled", booking_id)
                    return
                previous = booking.status
                booking.status = BookingStatus.CANCELLED
        logger.info("Cancelled %s (%s) on %s", booking_id, previous.value, flight_id)

    def check_in(
        self,
        booking_id: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Check in a confirmed booking."""

        flight_id = self._flight_of(booking_id)
        with self._locks.hold(flight_id, timeout=self._timeout(timeout), cancel_event=cancel_event):
            with session_scope(self._session_factory) as session:
                claim_flight(session, flight_id)
                booking = session.get(Booking, booking_id)
                if booking is None:
                    raise NotFoundError(f"booking {booking_id!r} not found")
                if booking.status != BookingStatus.CONFIRMED:
                    raise InvalidStateError(
                        f"booking {booking_id!r} cannot be checked in from {booking.status.value}"
                    )
                booking.status = BookingStatus.CHECKED_IN
        logger.info("Checked in %s on %s", booking_id, flight_id)


__all__ = ["BookingEngine"]
