"""
In-memory expiring cache shared by the permission cache, the token allow-list and
the debounce guard.

Entries carry their own deadline. Expired entries are treated as absent on read and
physically removed by a sweep that runs at most once per ``cleanup_interval`` (piggy
backed on normal traffic, so no background thread is needed).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

NO_EXPIRATION = -1.0


class ExpiringCache(Generic[V]):
    """
    Thread-safe key/value store with per-entry TTL.

    ``default_ttl`` is used when ``set`` is called without an explicit ttl. A ttl of
    ``NO_EXPIRATION`` keeps the entry until it is deleted.
    """

    def __init__(
        self,
        default_ttl: float,
        cleanup_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._items: dict[str, tuple[Any, float | None]] = {}
        self._last_sweep = clock()

    def set(self, key: str, value: V, ttl: float | None = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock()
        expires_at = None if ttl == NO_EXPIRATION else now + ttl
        with self._lock:
            self._items[key] = (value, expires_at)
            self._maybe_sweep(now)

    def add(self, key: str, value: V, ttl: float | None = None) -> bool:
        """Store ``value`` only if ``key`` is absent (or expired). Returns True when stored."""
        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock()
        with self._lock:
            entry = self._items.get(key)
            if entry is not None and not _expired(entry, now):
                return False
            self._items[key] = (value, None if ttl == NO_EXPIRATION else now + ttl)
            self._maybe_sweep(now)
            return True

    def get(self, key: str) -> tuple[V | None, bool]:
        now = self._clock()
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None, False
            if _expired(entry, now):
                del self._items[key]
                return None, False
            return entry[0], True

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key)[1]

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for entry in self._items.values() if not _expired(entry, now))

    def delete_expired(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def _maybe_sweep(self, now: float) -> None:
        # Caller holds the lock.
        if now - self._last_sweep >= self._cleanup_interval:
            removed = self._sweep(now)
            if removed:
                logger.debug("Expired cache entries purged count=%s", removed)

    def _sweep(self, now: float) -> int:
        stale = [key for key, entry in self._items.items() if _expired(entry, now)]
        for key in stale:
            del self._items[key]
        self._last_sweep = now
        return len(stale)


def _expired(entry: tuple[Any, float | None], now: float) -> bool:
    expires_at = entry[1]
    return expires_at is not None and now >= expires_at
