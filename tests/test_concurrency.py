from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import event, func, select

import flight_booking.booking as booking_module
from conftest import NOW, add_reference_data, make_flight, make_passengers, make_session_factory
from flight_booking.booking import BookingEngine
from flight_booking.database import create_session_factory
from flight_booking.errors import SeatsUnavailableError, SeatTakenError
from flight_booking.models import ACTIVE_BOOKING_STATUSES, Base, Booking, Flight


def _run_together(count, fn):
    barrier = threading.Barrier(count)

    def attempt(index):
        barrier.wait()
        try:
            return fn(index)
        except Exception as exc:  # collected for assertions
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(attempt, range(count)))


def _active_bookings(session_factory, flight_id):
    with session_factory() as session:
        return session.scalar(
            select(func.count(Booking.booking_id)).where(
                Booking.flight_id == flight_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )


def test_concurrent_bookings_never_oversell(session_factory):
    capacity, callers = 4, 10
    flight_id = make_flight(session_factory, total_seats=capacity)
    passengers = make_passengers(session_factory, callers)
    engine = BookingEngine(session_factory, clock=lambda: NOW)

    results = _run_together(
        callers, lambda i: engine.book(passengers[i], flight_id, f"{i + 1}A")
    )

    booked = [r for r in results if isinstance(r, str)]
    refused = [r for r in results if isinstance(r, SeatsUnavailableError)]
    assert len(booked) == capacity
    assert len(refused) == callers - capacity
    assert _active_bookings(session_factory, flight_id) == capacity
    assert engine.available_seats(flight_id) == 0


def test_concurrent_requests_for_one_seat_yield_one_winner(session_factory):
    flight_id = make_flight(session_factory, total_seats=5)
    passengers = make_passengers(session_factory, 2)
    engine = BookingEngine(session_factory, clock=lambda: NOW)

    results = _run_together(2, lambda i: engine.book(passengers[i], flight_id, "12A"))

    assert sum(isinstance(r, str) for r in results) == 1
    assert sum(isinstance(r, SeatTakenError) for r in results) == 1
    assert _active_bookings(session_factory, flight_id) == 1


def test_flights_do_not_block_each_other(session_factory):
    first = make_flight(session_factory, "BA100", total_seats=1)
    second = make_flight(session_factory, "BA200", total_seats=1)
    passengers = make_passengers(session_factory, 2)
    engine = BookingEngine(session_factory, clock=lambda: NOW)

    with engine._locks.hold(first):
        # the first flight's scope is held, yet the second flight books normally
        booking_id = engine.book(passengers[0], second, "1A", timeout=1)

    assert booking_id
    assert engine.book(passengers[1], first, "1A", timeout=1)


def test_concurrent_cancel_and_book_keep_counts_consistent(session_factory):
    flight_id = make_flight(session_factory, total_seats=2)
    passengers = make_passengers(session_factory, 4)
    engine = BookingEngine(session_factory, clock=lambda: NOW)
    existing = [engine.book(passengers[0], flight_id, "1A"), engine.book(passengers[1], flight_id, "1B")]

    def work(index):
        if index < 2:
            return engine.cancel(existing[index])
        return engine.book(passengers[index], flight_id, f"2{'AB'[index - 2]}")

    _run_together(4, work)

    active = _active_bookings(session_factory, flight_id)
    assert active <= 2
    assert engine.available_seats(flight_id) == 2 - active


def test_engines_on_separate_factories_never_oversell(tmp_path, monkeypatch):
    # Two factories on one database file stand in for two processes: they
    # share no in-process lock, only the database.
    first_factory = make_session_factory(tmp_path / "shared.db")
    add_reference_data(first_factory)
    second_factory = make_session_factory(tmp_path / "shared.db")
    flight_id = make_flight(first_factory, total_seats=1)
    passengers = make_passengers(first_factory, 2)
    engines = [
        BookingEngine(first_factory, clock=lambda: NOW),
        BookingEngine(second_factory, clock=lambda: NOW),
    ]
    assert engines[0]._locks is not engines[1]._locks

    real_available_seats = booking_module.available_seats
    rendezvous = threading.Barrier(2, timeout=0.5)

    def available_then_wait(*args, **kwargs):
        remaining = real_available_seats(*args, **kwargs)
        # give the other engine every chance to read the same count
        try:
            rendezvous.wait()
        except threading.BrokenBarrierError:
            pass
        return remaining

    monkeypatch.setattr(booking_module, "available_seats", available_then_wait)

    results = _run_together(2, lambda i: engines[i].book(passengers[i], flight_id, f"1{'AB'[i]}"))

    assert sum(isinstance(r, str) for r in results) == 1
    assert sum(isinstance(r, SeatsUnavailableError) for r in results) == 1
    assert _active_bookings(first_factory, flight_id) == 1
    with first_factory() as session:
        assert session.get(Flight, flight_id).inventory_version == 1


def test_engines_on_one_factory_share_the_flight_lock(session_factory):
    first = BookingEngine(session_factory, clock=lambda: NOW)
    second = BookingEngine(session_factory, clock=lambda: NOW)

    assert first._locks is second._locks


@pytest.fixture
def memory_factory():
    engine, factory = create_session_factory("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    add_reference_data(factory)
    yield factory
    engine.dispose()


def test_in_memory_store_keeps_bookings_read_mid_transaction(memory_factory):
    flight_id = make_flight(memory_factory, total_seats=2)
    (passenger_id,) = make_passengers(memory_factory, 1)
    engine = BookingEngine(memory_factory, clock=lambda: NOW)
    flushed = threading.Event()

    def pause_after_booking_flush(session, flush_context):
        if any(isinstance(obj, Booking) for obj in session.new):
            flushed.set()
            time.sleep(0.3)

    event.listen(memory_factory, "after_flush", pause_after_booking_flush)
    try:
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(engine.book, passenger_id, flight_id, "1A")
            assert flushed.wait(5)
            # a reader on another thread while the booking is still uncommitted
            with memory_factory() as session:
                seen = list(session.scalars(select(Booking.booking_id)))
            booking_id = future.result(timeout=5)
    finally:
        event.remove(memory_factory, "after_flush", pause_after_booking_flush)

    assert seen == [booking_id]
    with memory_factory() as session:
        stored = session.get(Booking, booking_id)
        assert stored is not None and stored.seat_number == "1A"
    assert engine.available_seats(flight_id) == 1


def test_in_memory_store_never_oversells(memory_factory):
    capacity, callers = 3, 8
    flight_id = make_flight(memory_factory, total_seats=capacity)
    passengers = make_passengers(memory_factory, callers)
    engine = BookingEngine(memory_factory, clock=lambda: NOW)

    results = _run_together(callers, lambda i: engine.book(passengers[i], flight_id, f"{i + 1}C"))

    booked = [r for r in results if isinstance(r, str)]
    assert len(booked) == capacity
    assert all(isinstance(r, SeatsUnavailableError) for r in results if not isinstance(r, str))
    with memory_factory() as session:
        stored = set(session.scalars(select(Booking.booking_id)))
    assert stored == set(booked)
    assert engine.available_seats(flight_id) == 0
