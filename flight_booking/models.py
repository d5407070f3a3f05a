"""SQLAlchemy models for the flight booking system."""
from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current time as a naive UTC timestamp, the form every column stores."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class FlightStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    DELAYED = "Delayed"
    BOARDING = "Boarding"
    IN_AIR = "In Air"
    LANDED = "Landed"
    CANCELLED = "Cancelled"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    CHECKED_IN = "Checked-in"


ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)


def _enum_values(enum_cls: type[enum.Enum]) -> List[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class Airport(Base):
    __tablename__ = "airports"

    airport_id: Mapped[str] = mapped_column(String(3), primary_key=True)
    airport_name: Mapped[str] = mapped_column(String(100), nullable=False)
    city: Mapped[str] = mapped_column(String(50), nullable=False)
    country: Mapped[str] = mapped_column(String(50), nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), nullable=False)


class Airline(Base):
    __tablename__ = "airlines"

    airline_id: Mapped[str] = mapped_column(String(2), primary_key=True)
    airline_name: Mapped[str] = mapped_column(String(100), nullable=False)
    country_of_origin: Mapped[str] = mapped_column(String(50), nullable=False)

    aircraft: Mapped[List["Aircraft"]] = relationship(back_populates="airline")


class Aircraft(Base):
    __tablename__ = "aircraft"
    __table_args__ = (CheckConstraint("total_seats > 0", name="ck_total_seats_positive"),)

    aircraft_id: Mapped[str] = mapped_column(String(10), primary_key=True)
    airline_id: Mapped[str] = mapped_column(ForeignKey("airlines.airline_id"), nullable=False)
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    manufacturing_year: Mapped[Optional[int]] = mapped_column(Integer)

    airline: Mapped[Airline] = relationship(back_populates="aircraft")


class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        CheckConstraint("arrival_time > departure_time", name="ck_arrival_after_departure"),
        CheckConstraint("base_price >= 0", name="ck_base_price_non_negative"),
        Index("idx_flight_search", "departure_airport", "arrival_airport", "departure_time"),
    )

    flight_id: Mapped[str] = mapped_column(String(10), primary_key=True)
    airline_id: Mapped[str] = mapped_column(ForeignKey("airlines.airline_id"), nullable=False)
    aircraft_id: Mapped[str] = mapped_column(ForeignKey("aircraft.aircraft_id"), nullable=False)
    departure_airport: Mapped[str] = mapped_column(ForeignKey("airports.airport_id"), nullable=False)
    arrival_airport: Mapped[str] = mapped_column(ForeignKey("airports.airport_id"), nullable=False)
    departure_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    arrival_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, active_history=True)
    status: Mapped[FlightStatus] = mapped_column(
        Enum(FlightStatus, name="flight_status", values_callable=_enum_values),
        default=FlightStatus.SCHEDULED,
        nullable=False,
    )
    # Bumped as the first write of every booking, cancellation and check-in so
    # the database serializes seat changes on a flight across processes.
    inventory_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    airline: Mapped[Airline] = relationship()
    aircraft: Mapped[Aircraft] = relationship()
    origin: Mapped[Airport] = relationship(foreign_keys=[departure_airport])
    destination: Mapped[Airport] = relationship(foreign_keys=[arrival_airport])
    bookings: Mapped[List["Booking"]] = relationship(back_populates="flight")
    price_changes: Mapped[List["PriceAudit"]] = relationship(
        back_populates="flight", order_by="PriceAudit.audit_id"
    )


class Passenger(Base):
    __tablename__ = "passengers"

    passenger_id: Mapped[int] = mapped_column(primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    passport_number: Mapped[Optional[str]] = mapped_column(String(20), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    bookings: Mapped[List["Booking"]] = relationship(back_populates="passenger")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("total_price >= 0", name="ck_total_price_non_negative"),
        # Seats are unique per flight among active bookings only, so a cancelled
        # seat can be sold again.
        Index(
            "uq_active_flight_seat",
            "flight_id",
            "seat_number",
            unique=True,
            sqlite_where=text("booking_status != 'Cancelled'"),
            postgresql_where=text("booking_status != 'Cancelled'"),
        ),
        Index("idx_booking_status", "booking_status"),
    )

    booking_id: Mapped[str] = mapped_column(String(10), primary_key=True)
    passenger_id: Mapped[int] = mapped_column(ForeignKey("passengers.passenger_id"), nullable=False)
    flight_id: Mapped[str] = mapped_column(ForeignKey("flights.flight_id"), nullable=False)
    seat_number: Mapped[str] = mapped_column(String(4), nullable=False)
    booking_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        "booking_status",
        Enum(BookingStatus, name="booking_status", values_callable=_enum_values),
        default=BookingStatus.CONFIRMED,
        nullable=False,
    )
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, active_history=True)

    flight: Mapped[Flight] = relationship(back_populates="bookings")
    passenger: Mapped[Passenger] = relationship(back_populates="bookings")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES


class PriceAudit(Base):
    __tablename__ = "price_changes_audit"

    audit_id: Mapped[int] = mapped_column(primary_key=True)
    flight_id: Mapped[str] = mapped_column(ForeignKey("flights.flight_id"), nullable=False)
    old_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    new_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    changed_by: Mapped[str] = mapped_column(String(50), nullable=False)

    flight: Mapped[Flight] = relationship(back_populates="price_changes")
