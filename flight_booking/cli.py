"""Command line interface for the flight booking system."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Sequence

from tabulate import tabulate

from .config import Settings
from .dataset import generate_sample_data
from .errors import BookingError
from .system import ReservationSystem

_FLIGHT_HEADERS = ["Flight", "Airline", "Route", "Departs (UTC)", "Arrives (UTC)", "Price", "Status", "Seats"]


def _render_table(rows: Iterable[Sequence[object]], headers: List[str]) -> str:
    return tabulate(list(rows), headers=headers, tablefmt="github")


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage flight inventory and passenger bookings.")
    parser.add_argument("--db-url", help="Database URL (default: $FLIGHT_BOOKING_DB_URL).")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the database schema.")

    seed = commands.add_parser("seed", help="Load deterministic sample data.")
    seed.add_argument("--flights", type=int, default=25)
    seed.add_argument("--passengers", type=int, default=200)
    seed.add_argument("--bookings", type=int, default=500)

    search = commands.add_parser("search", help="Find flights between two cities on a date.")
    search.add_argument("departure_city")
    search.add_argument("arrival_city")
    search.add_argument("date", type=date.fromisoformat, help="Departure date, YYYY-MM-DD (UTC).")

    commands.add_parser("available", help="List every bookable flight.")

    availability = commands.add_parser("availability", help="Show remaining seats on a flight.")
    availability.add_argument("flight_id")

    book = commands.add_parser("book", help="Book a seat for a passenger.")
    book.add_argument("passenger_id", type=int)
    book.add_argument("flight_id")
    book.add_argument("seat_number")

    cancel = commands.add_parser("cancel", help="Cancel a booking.")
    cancel.add_argument("booking_id")

    check_in = commands.add_parser("check-in", help="Check in a confirmed booking.")
    check_in.add_argument("booking_id")

    set_price = commands.add_parser("set-price", help="Change a flight's base price.")
    set_price.add_argument("flight_id")
    set_price.add_argument("price")
    set_price.add_argument("--actor", help="Who is making the change (default: $FLIGHT_BOOKING_ACTOR).")

    history = commands.add_parser("price-history", help="Show the audited price changes of a flight.")
    history.add_argument("flight_id")

    commands.add_parser("capacity", help="Summarize bookings against capacity for every flight.")

    return parser.parse_args(list(argv))


def _run(args: argparse.Namespace, system: ReservationSystem) -> None:
    if args.command == "init-db":
        print(f"Schema ready at {system.settings.db_url}")
    elif args.command == "seed":
        summary = generate_sample_data(
            system.session_factory,
            flights=args.flights,
            passengers=args.passengers,
            bookings=args.bookings,
        )
        print(_render_table([list(summary.values())], list(summary.keys())))
    elif args.command == "search":
        results = system.search_flights(args.departure_city, args.arrival_city, args.date)
        print(_render_table((item.as_row() for item in results), _FLIGHT_HEADERS))
    elif args.command == "available":
        print(_render_table((item.as_row() for item in system.list_available_flights()), _FLIGHT_HEADERS))
    elif args.command == "availability":
        print(f"{args.flight_id}: {system.available_seats(args.flight_id)} seats available")
    elif args.command == "book":
        booking_id = system.book_flight(args.passenger_id, args.flight_id, args.seat_number)
        print(f"Booking confirmed: {booking_id}")
    elif args.command == "cancel":
        system.cancel_booking(args.booking_id)
        print(f"Booking {args.booking_id} cancelled")
    elif args.command == "check-in":
        system.check_in(args.booking_id)
        print(f"Booking {args.booking_id} checked in")
    elif args.command == "set-price":
        record = system.update_flight_price(args.flight_id, args.price, args.actor)
        if record is None:
            print(f"Price of {args.flight_id} unchanged")
        else:
            print(f"Price of {args.flight_id} changed {record.old_price} -> {record.new_price}")
    elif args.command == "price-history":
        rows = [
            [r.audit_id, r.changed_at.strftime("%Y-%m-%d %H:%M:%S"), r.old_price, r.new_price, r.changed_by]
            for r in system.price_history(args.flight_id)
        ]
        print(_render_table(rows, ["Audit", "Changed at (UTC)", "Old", "New", "By"]))
    elif args.command == "capacity":
        summary = system.capacity_summary()
        headers = ["Flight", "Route", "Status", "Available", "Capacity", "Bookings"]
        print(_render_table((list(row.values()) for row in summary), headers))


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = Settings.from_env()
    if args.db_url:
        settings = replace(settings, db_url=args.db_url)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        _run(args, ReservationSystem.from_settings(settings))
    except BookingError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
