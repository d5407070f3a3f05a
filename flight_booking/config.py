"""Runtime configuration read from ``FLIGHT_BOOKING_*`` environment variables."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_DB_URL = "sqlite+pysqlite:///flight_booking.db"
DEFAULT_ID_ATTEMPTS = 10
DEFAULT_ACTOR = "system"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_url: str = DEFAULT_DB_URL
    echo_sql: bool = False
    booking_id_attempts: int = DEFAULT_ID_ATTEMPTS
    default_actor: str = DEFAULT_ACTOR
    lock_timeout: Optional[float] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (``os.environ`` by default)."""

        env = os.environ if environ is None else environ
        attempts = int(env.get("FLIGHT_BOOKING_ID_ATTEMPTS", DEFAULT_ID_ATTEMPTS))
        if attempts < 1:
            raise ValueError("FLIGHT_BOOKING_ID_ATTEMPTS must be at least 1")
        raw_timeout = env.get("FLIGHT_BOOKING_LOCK_TIMEOUT", "").strip()
        return cls(
            db_url=env.get("FLIGHT_BOOKING_DB_URL", DEFAULT_DB_URL),
            echo_sql=env.get("FLIGHT_BOOKING_ECHO_SQL", "").strip().lower() in _TRUTHY,
            booking_id_attempts=attempts,
            default_actor=env.get("FLIGHT_BOOKING_ACTOR", DEFAULT_ACTOR),
            lock_timeout=float(raw_timeout) if raw_timeout else None,
            log_level=env.get("FLIGHT_BOOKING_LOG_LEVEL", "INFO").upper(),
        )


__all__ = ["DEFAULT_DB_URL", "Settings"]
