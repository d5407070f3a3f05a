"""Price changes and their audit trail.

``PriceAuditRecorder.set_price`` is the only supported way to change a flight's
base price: the new price and its ``PriceAudit`` row are written in the same
transaction. ``install_audit_guards`` makes every session from a factory refuse
to flush a price change that lacks its audit row, a rewritten booking price, or
an edited or deleted audit row.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from sqlalchemy import event, select
from sqlalchemy.orm import Session, attributes, sessionmaker

from .availability import claim_flight
from .config import Settings
from .database import session_scope
from .errors import InvalidStateError, NotFoundError, ValidationError
from .identifiers import PriceLike, validate_price
from .locks import KeyedLock, shared_lock
from .models import Booking, Flight, PriceAudit, utcnow

logger = logging.getLogger(__name__)

_MAX_ACTOR_LENGTH = 50


def _changed_value(obj: object, key: str):
    """Return ``(old, new)`` if ``key`` really changed on ``obj``, else ``None``."""

    history = attributes.get_history(obj, key)
    if not history.added:
        return None
    old = history.deleted[0] if history.deleted else None
    new = history.added[0]
    if old == new:
        return None
    return old, new


def _check_audit_invariants(session: Session, flush_context, instances) -> None:
    pending_audits = [obj for obj in session.new if isinstance(obj, PriceAudit)]

    for obj in session.dirty:
        if isinstance(obj, Flight):
            change = _changed_value(obj, "base_price")
            if change is None:
                continue
            old, new = change
            audited = any(
                audit.flight_id == obj.flight_id
                and audit.old_price == old
                and audit.new_price == new
                for audit in pending_audits
            )
            if not audited:
                raise InvalidStateError(
                    f"price of flight {obj.flight_id!r} changed without an audit record"
                )
        elif isinstance(obj, Booking):
            if _changed_value(obj, "total_price") is not None:
                raise InvalidStateError(f"total price of booking {obj.booking_id!r} is immutable")
        elif isinstance(obj, PriceAudit):
            if session.is_modified(obj, include_collections=False):
                raise InvalidStateError("price audit records are immutable")

    for obj in session.deleted:
        if isinstance(obj, PriceAudit):
            raise InvalidStateError("price audit records cannot be deleted")


def install_audit_guards(session_factory: sessionmaker[Session]) -> None:
    """Attach the audit invariants to every session ``session_factory`` creates."""

    if not event.contains(session_factory, "before_flush", _check_audit_invariants):
        event.listen(session_factory, "before_flush", _check_audit_invariants)


class PriceAuditRecorder:
    """Apply flight price changes together with their audit records.

    Price changes take their own per-flight lock, separate from the booking
    scope, since they never change seat counts. The flight row is still claimed
    first in the transaction, so the recorded old price is the committed one
    even when another process changes the price concurrently.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], object] = utcnow,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings or Settings()
        self._clock = clock
        self._locks = locks or shared_lock(session_factory, "price-lock")

    def _resolve_actor(self, actor: Optional[str]) -> str:
        name = (actor if actor is not None else self.settings.default_actor).strip()
        if not name:
            raise ValidationError("actor must not be empty")
        if len(name) > _MAX_ACTOR_LENGTH:
            raise ValidationError(f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
        return name

    def set_price(
        self,
        flight_id: str,
        new_price: PriceLike,
        actor: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[PriceAudit]:
        """Change the flight's base price and record the change.

        Returns the new audit record, or ``None`` when ``new_price`` equals the
        current price (nothing is written in that case).
        """

        price = validate_price(new_price)
        changed_by = self._resolve_actor(actor)
        if timeout is None:
            timeout = self.settings.lock_timeout

        with self._locks.hold(flight_id, timeout=timeout, cancel_event=cancel_event):
            with session_scope(self._session_factory) as session:
                if not claim_flight(session, flight_id):
                    raise NotFoundError(f"flight {flight_id!r} not found")
                flight = session.get(Flight, flight_id, populate_existing=True)
                old_price = flight.base_price
                if old_price == price:
                    logger.debug("Price of %s already %s; nothing to record", flight_id, price)
                    return None
                flight.base_price = price
                record = PriceAudit(
                    flight_id=flight_id,
                    old_price=old_price,
                    new_price=price,
                    changed_at=self._clock(),
                    changed_by=changed_by,
                )
                session.add(record)
                session.flush()

        logger.info("Price of %s changed %s -> %s by %s", flight_id, old_price, price, changed_by)
        return record

    def price_history(self, flight_id: str) -> List[PriceAudit]:
        """Return the flight's audit records, oldest first."""

        with self._session_factory() as session:
            if session.get(Flight, flight_id) is None:
                raise NotFoundError(f"flight {flight_id!r} not found")
            stmt = (
                select(PriceAudit)
                .where(PriceAudit.flight_id == flight_id)
                .order_by(PriceAudit.audit_id)
            )
            return list(session.scalars(stmt))


__all__ = ["PriceAuditRecorder", "install_audit_guards"]
