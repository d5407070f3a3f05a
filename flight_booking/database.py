"""Database helpers for the flight booking system."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DEFAULT_DB_URL
from .models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _serialize_checkouts(engine: Engine) -> None:
    """Give one checkout at a time the single connection of a ``:memory:`` pool.

    ``StaticPool`` hands the same connection to every session, so without this
    a session returned by one thread would roll back work another thread has
    flushed but not yet committed.
    """

    guard = threading.RLock()

    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:
        guard.acquire()

    def _on_checkin(dbapi_connection, connection_record) -> None:
        guard.release()

    event.listen(engine, "checkout", _on_checkout)
    event.listen(engine, "checkin", _on_checkin)


def create_session_factory(
    db_url: str = DEFAULT_DB_URL,
    *,
    echo: bool = False,
    connect_args: Dict[str, object] | None = None,
) -> Tuple[Engine, sessionmaker[Session]]:
    """Return an engine/session factory pair configured for SQLite by default."""

    from .pricing import install_audit_guards

    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        final_connect_args = {"check_same_thread": False, "timeout": 30}
        if connect_args:
            final_connect_args.update(connect_args)
    else:
        final_connect_args = connect_args or {}

    if db_url.endswith(":memory:"):
        engine = create_engine(
            db_url,
            echo=echo,
            connect_args=final_connect_args,
            poolclass=StaticPool,
        )
        _serialize_checkouts(engine)
    else:
        engine = create_engine(
            db_url,
            echo=echo,
            connect_args=final_connect_args,
        )
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    install_audit_guards(session_factory)
    logger.debug("Created session factory for %s", engine.url.render_as_string(hide_password=True))
    return engine, session_factory


def init_db(db_url: str = DEFAULT_DB_URL, *, echo: bool = False) -> sessionmaker[Session]:
    """Create all tables and return a session factory."""

    engine, session_factory = create_session_factory(db_url, echo=echo)
    Base.metadata.create_all(engine)
    return session_factory


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
