"""Exceptions raised by the flight booking engine."""
from __future__ import annotations


class BookingError(RuntimeError):
    """Base class for every failure the booking engine reports to callers."""

    code = "booking_error"


class NotFoundError(BookingError):
    """Raised when a referenced airport, flight, passenger or booking does not exist."""

    code = "not_found"


class InvalidStateError(BookingError):
    """Raised when an operation is not allowed for the entity's current state."""

    code = "invalid_state"


class SeatsUnavailableError(BookingError):
    """Raised when a flight has no remaining capacity."""

    code = "seats_unavailable"


class SeatTakenError(BookingError):
    """Raised when the requested seat is already held by an active booking."""

    code = "seat_taken"


class ConflictError(BookingError):
    """Raised when a generated identifier keeps colliding with stored ones."""

    code = "conflict"


class ValidationError(BookingError, ValueError):
    """Raised for malformed input such as negative prices or bad seat tokens."""

    code = "validation_error"


class LockTimeoutError(BookingError, TimeoutError):
    """Raised when a flight's exclusive scope could not be entered in time."""

    code = "lock_timeout"


class OperationCancelledError(BookingError):
    """Raised when the caller cancelled an operation before it wrote anything."""

    code = "cancelled"


__all__ = [
    "BookingError",
    "NotFoundError",
    "InvalidStateError",
    "SeatsUnavailableError",
    "SeatTakenError",
    "ConflictError",
    "ValidationError",
    "LockTimeoutError",
    "OperationCancelledError",
]
