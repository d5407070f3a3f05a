"""Per-key exclusive scopes used to serialize work on a single flight."""
from __future__ import annotations

import logging
import threading
import time
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterator, MutableMapping, Optional

from .errors import LockTimeoutError, OperationCancelledError

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class KeyedLock:
    """A registry of mutexes, one per key, created on demand.

    Work under different keys never contends. Entries are reference counted and
    dropped once no caller holds or waits on them.
    """

    def __init__(self, name: str = "keyed-lock", *, poll_interval: float = 0.05) -> None:
        self.name = name
        self.poll_interval = poll_interval
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: Hashable) -> _LockEntry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.holders += 1
            return entry

    def _checkin(self, key: Hashable, entry: _LockEntry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._entries[key]

    def _acquire(
        self,
        entry: _LockEntry,
        key: Hashable,
        timeout: Optional[float],
        cancel_event: Optional[threading.Event],
    ) -> None:
        if cancel_event is None:
            if entry.lock.acquire(timeout=-1 if timeout is None else max(timeout, 0)):
                return
            raise LockTimeoutError(f"timed out waiting for {self.name} on {key!r}")

        deadline = None if timeout is None else time.monotonic() + max(timeout, 0)
        while True:
            if cancel_event.is_set():
                raise OperationCancelledError(f"cancelled while waiting for {self.name} on {key!r}")
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockTimeoutError(f"timed out waiting for {self.name} on {key!r}")
                wait = min(wait, remaining)
            if entry.lock.acquire(timeout=wait):
                if cancel_event.is_set():
                    entry.lock.release()
                    raise OperationCancelledError(f"cancelled while waiting for {self.name} on {key!r}")
                return

    @contextmanager
    def hold(
        self,
        key: Hashable,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[None]:
        """Run the body while holding the lock for ``key``.

        Raises ``LockTimeoutError`` if ``timeout`` seconds pass first and
        ``OperationCancelledError`` if ``cancel_event`` is set while waiting.
        """

        entry = self._checkout(key)
        try:
            self._acquire(entry, key, timeout, cancel_event)
            logger.debug("%s acquired for %r", self.name, key)
            try:
                yield
            finally:
                entry.lock.release()
                logger.debug("%s released for %r", self.name, key)
        finally:
            self._checkin(key, entry)


_registry_guard = threading.Lock()
_registries: MutableMapping[Any, Dict[str, KeyedLock]] = weakref.WeakKeyDictionary()


def shared_lock(owner: Any, name: str) -> KeyedLock:
    """Return the ``name`` lock registry shared by everything built on ``owner``.

    Engines created from the same session factory must agree on one registry,
    otherwise their per-flight scopes would not exclude each other.
    """

    with _registry_guard:
        locks = _registries.setdefault(owner, {})
        if name not in locks:
            locks[name] = KeyedLock(name)
        return locks[name]


__all__ = ["KeyedLock", "shared_lock"]
