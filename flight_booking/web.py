"""FastAPI application exposing the reservation system over HTTP."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

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
from .models import Booking, PriceAudit
from .search import FlightAvailability
from .system import ReservationSystem


_ERROR_STATUS: Dict[type, int] = {
    NotFoundError: 404,
    InvalidStateError: 409,
    SeatsUnavailableError: 409,
    SeatTakenError: 409,
    ValidationError: 422,
    ConflictError: 503,
    LockTimeoutError: 503,
    OperationCancelledError: 503,
}


class BookingRequest(BaseModel):
    passenger_id: int
    flight_id: str = Field(min_length=1, max_length=10)
    seat_number: str = Field(min_length=1, max_length=4)


class PriceUpdateRequest(BaseModel):
    new_price: Decimal
    actor: Optional[str] = None


def _status_for(exc: BookingError) -> int:
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            return _ERROR_STATUS[cls]
    return 500


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _flight_payload(item: FlightAvailability) -> Dict[str, Any]:
    return {
        "flight_id": item.flight_id,
        "airline_name": item.airline_name,
        "departure_city": item.departure_city,
        "arrival_city": item.arrival_city,
        "departure_time": item.departure_time.isoformat(),
        "arrival_time": item.arrival_time.isoformat(),
        "base_price": _money(item.base_price),
        "status": item.status.value,
        "available_seats": item.available_seats,
    }


def _booking_payload(booking: Booking) -> Dict[str, Any]:
    return {
        "booking_id": booking.booking_id,
        "passenger_id": booking.passenger_id,
        "flight_id": booking.flight_id,
        "seat_number": booking.seat_number,
        "status": booking.status.value,
        "total_price": _money(booking.total_price),
        "booking_date": booking.booking_date.isoformat(),
    }


def _audit_payload(record: PriceAudit) -> Dict[str, Any]:
    return {
        "audit_id": record.audit_id,
        "flight_id": record.flight_id,
        "old_price": _money(record.old_price),
        "new_price": _money(record.new_price),
        "changed_at": record.changed_at.isoformat(),
        "changed_by": record.changed_by,
    }


def create_app(system: Optional[ReservationSystem] = None) -> FastAPI:
    """Return an application serving ``system`` (built from the environment by default)."""

    reservations = system or ReservationSystem.from_settings()
    app = FastAPI(title="Flight Booking", description="Flight inventory and bookings")
    app.state.reservations = reservations

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": exc.code, "detail": str(exc)},
        )

    @app.get("/flights/search")
    def search(
        departure_city: str = Query(..., description="City of the departure airport"),
        arrival_city: str = Query(..., description="City of the arrival airport"),
        departure_date: date = Query(..., alias="date", description="Departure date (UTC)"),
    ) -> List[Dict[str, Any]]:
        results = reservations.search_flights(departure_city, arrival_city, departure_date)
        return [_flight_payload(item) for item in results]

    @app.get("/flights/{flight_id}/availability")
    def availability(flight_id: str) -> Dict[str, Any]:
        return {"flight_id": flight_id, "available_seats": reservations.available_seats(flight_id)}

    @app.put("/flights/{flight_id}/price")
    def update_price(flight_id: str, payload: PriceUpdateRequest) -> Dict[str, Any]:
        record = reservations.update_flight_price(flight_id, payload.new_price, payload.actor)
        return {
            "flight_id": flight_id,
            "audited": record is not None,
            "audit": _audit_payload(record) if record is not None else None,
        }

    @app.get("/flights/{flight_id}/price-history")
    def price_history(flight_id: str) -> List[Dict[str, Any]]:
        return [_audit_payload(record) for record in reservations.price_history(flight_id)]

    @app.post("/bookings", status_code=201)
    def create_booking(payload: BookingRequest) -> Dict[str, Any]:
        booking_id = reservations.book_flight(payload.passenger_id, payload.flight_id, payload.seat_number)
        return {"booking_id": booking_id}

    @app.get("/bookings/{booking_id}")
    def read_booking(booking_id: str) -> Dict[str, Any]:
        return _booking_payload(reservations.get_booking(booking_id))

    @app.post("/bookings/{booking_id}/cancel")
    def cancel_booking(booking_id: str) -> Dict[str, Any]:
        reservations.cancel_booking(booking_id)
        return _booking_payload(reservations.get_booking(booking_id))

    @app.post("/bookings/{booking_id}/check-in")
    def check_in(booking_id: str) -> Dict[str, Any]:
        reservations.check_in(booking_id)
        return _booking_payload(reservations.get_booking(booking_id))

    return app


__all__ = ["create_app"]
