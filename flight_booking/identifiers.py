"""Booking identifier generation and input validation."""
from __future__ import annotations

import re
import secrets
import string
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Tuple, Union

from .errors import ValidationError

BOOKING_ID_PREFIX = "BK"
BOOKING_ID_ALPHABET = string.ascii_uppercase + string.digits
BOOKING_ID_LENGTH = 6

_SEAT_PATTERN = re.compile(r"^[1-9][0-9]{0,2}[A-Z]$")
_CENTS = Decimal("0.01")
_MAX_PRICE = Decimal("99999999.99")

PriceLike = Union[Decimal, int, float, str]


def generate_booking_id() -> str:
    """Draw a candidate booking identifier such as ``BK7Q2M9X``.

    A draw is only a candidate: callers must check it against the store before use.
    """

    body = "".join(secrets.choice(BOOKING_ID_ALPHABET) for _ in range(BOOKING_ID_LENGTH))
    return f"{BOOKING_ID_PREFIX}{body}"


def validate_seat_number(seat_number: str) -> str:
    """Return the normalized seat token (``"12a"`` -> ``"12A"``)."""

    if not isinstance(seat_number, str):
        raise ValidationError("seat number must be a string")
    token = seat_number.strip().upper()
    if not _SEAT_PATTERN.match(token):
        raise ValidationError(f"invalid seat number {seat_number!r}")
    return token


def validate_price(value: PriceLike) -> Decimal:
    """Return ``value`` as a non-negative amount rounded to cents."""

    if isinstance(value, bool):
        raise ValidationError("price must be numeric")
    try:
        # floats go through str() so 0.1 stays 0.1 rather than its binary expansion
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"invalid price {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"invalid price {value!r}")
    if amount < 0:
        raise ValidationError("price must not be negative")
    amount = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if amount > _MAX_PRICE:
        raise ValidationError("price exceeds the supported range")
    return amount


def validate_capacity(total_seats: int) -> int:
    if isinstance(total_seats, bool) or not isinstance(total_seats, int):
        raise ValidationError("seat capacity must be an integer")
    if total_seats <= 0:
        raise ValidationError("seat capacity must be positive")
    return total_seats


def to_utc_naive(moment: datetime) -> datetime:
    """Convert ``moment`` to the naive UTC form used for storage.

    Naive inputs are taken to already be UTC.
    """

    if not isinstance(moment, datetime):
        raise ValidationError("expected a datetime")
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def validate_schedule(departure_time: datetime, arrival_time: datetime) -> Tuple[datetime, datetime]:
    departure = to_utc_naive(departure_time)
    arrival = to_utc_naive(arrival_time)
    if arrival <= departure:
        raise ValidationError("arrival time must be after departure time")
    return departure, arrival


def normalize_code(value: str, *, length: int, label: str) -> str:
    """Normalize an airport/airline code, e.g. ``" jfk "`` -> ``"JFK"``."""

    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    code = value.strip().upper()
    if len(code) != length or not code.isalnum():
        raise ValidationError(f"{label} must be {length} alphanumeric characters")
    return code


__all__ = [
    "BOOKING_ID_PREFIX",
    "generate_booking_id",
    "normalize_code",
    "to_utc_naive",
    "validate_capacity",
    "validate_price",
    "validate_schedule",
    "validate_seat_number",
]
