from __future__ import annotations

import pytest

from flight_booking.config import DEFAULT_DB_URL, Settings


def test_defaults_without_environment():
    settings = Settings.from_env({})

    assert settings.db_url == DEFAULT_DB_URL
    assert settings.booking_id_attempts == 10
    assert settings.default_actor == "system"
    assert settings.lock_timeout is None
    assert settings.echo_sql is False


def test_values_are_read_from_environment(monkeypatch):
    monkeypatch.setenv("FLIGHT_BOOKING_DB_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("FLIGHT_BOOKING_ID_ATTEMPTS", "3")
    monkeypatch.setenv("FLIGHT_BOOKING_ACTOR", "ops-team")
    monkeypatch.setenv("FLIGHT_BOOKING_LOCK_TIMEOUT", "2.5")
    monkeypatch.setenv("FLIGHT_BOOKING_ECHO_SQL", "yes")
    monkeypatch.setenv("FLIGHT_BOOKING_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.db_url.endswith(":memory:")
    assert settings.booking_id_attempts == 3
    assert settings.default_actor == "ops-team"
    assert settings.lock_timeout == 2.5
    assert settings.echo_sql is True
    assert settings.log_level == "DEBUG"


def test_id_attempts_must_be_positive():
    with pytest.raises(ValueError):
        Settings.from_env({"FLIGHT_BOOKING_ID_ATTEMPTS": "0"})
