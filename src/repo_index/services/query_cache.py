"""Short-lived cache for hot read queries."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Hashable, TypeVar

from src.shared.constants import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Stands in for an omitted optional argument inside a cache key.
NO_FILTER = "<none>"


def make_key(operation: str, *args: Any) -> tuple[Hashable, ...]:
    """Build a cache key from the operation name and its full argument tuple."""
    return (operation, *(NO_FILTER if arg is None else arg for arg in args))


class QueryCache:
    """Key to (value, expiry) map with a fixed TTL.

    Expired entries are recomputed on access and purged on every write;
    past ``max_entries`` the oldest entries are evicted first.  Two threads
    missing on the same key may both compute it; the later write wins.

    :meth:`invalidate` drops everything and starts a new generation.  A
    value computed under an older generation is never stored, so a reader
    that started before a scan cannot repopulate the cache with pre-scan
    rows once the scan has invalidated it.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = CACHE_MAX_ENTRIES,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                return None
        logger.debug("Cache hit for %s", key)
        return value

    def put(self, key: Hashable, value: Any, generation: int | None = None) -> bool:
        """Store *value* under *key*.

        When *generation* is given and the cache has been invalidated since
        it was read, the value is dropped.  Returns whether it was stored.
        """
        now = self._clock()
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Dropped stale result for %s", key)
                return False
            self._purge_expired(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self._max_entries:
                del self._entries[next(iter(self._entries))]
            self._entries[key] = (value, now + self._ttl)
        return True

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        generation = self.generation
        value = compute()
        self.put(key, value, generation)
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1
        logger.debug("Query cache invalidated")

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


class NullQueryCache(QueryCache):
    """A cache that never stores anything."""

    def __init__(self) -> None:
        super().__init__(ttl_seconds=0.0)

    def get(self, key: Hashable) -> Any | None:
        return None

    def put(self, key: Hashable, value: Any, generation: int | None = None) -> bool:
        return False
