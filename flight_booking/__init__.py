"""Flight inventory and booking engine."""
from typing import Any

from .booking import BookingEngine
from .config import Settings
from .database import create_session_factory, init_db, session_scope
from .dataset import generate_sample_data
from .errors import (
    BookingError,
    ConflictError,
    InvalidStateError,
    LockTimeoutError,
    NotFoundError,
    OperationCancelledError,
    SeatsUnavailableError,
    SeatTakenError,
    ValidationError,
)
from .pricing import PriceAuditRecorder
from .search import FlightAvailability, FlightSearch, search_flights
from .services import (
    add_aircraft,
    add_airline,
    add_airport,
    add_flight,
    add_passenger,
    update_flight_status,
)
from .system import ReservationSystem


def create_app(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    from .web import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "BookingEngine",
    "BookingError",
    "ConflictError",
    "FlightAvailability",
    "FlightSearch",
    "InvalidStateError",
    "LockTimeoutError",
    "NotFoundError",
    "OperationCancelledError",
    "PriceAuditRecorder",
    "ReservationSystem",
    "SeatTakenError",
    "SeatsUnavailableError",
    "Settings",
    "ValidationError",
    "add_aircraft",
    "add_airline",
    "add_airport",
    "add_flight",
    "add_passenger",
    "create_app",
    "create_session_factory",
    "generate_sample_data",
    "init_db",
    "search_flights",
    "session_scope",
    "update_flight_status",
]
