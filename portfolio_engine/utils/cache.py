"""In-memory TTL cache for provider responses."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and the clock reading at which it was stored."""

    value: T
    stored_at: float


class TTLCache:
    """
    Key -> (value, stored_at) cache with an injectable clock.

    Entries older than ``ttl_seconds`` are treated as missing. The clock is
    any zero-argument callable returning seconds, so tests can drive time
    explicitly instead of sleeping.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            ttl_seconds: How long an entry stays fresh
            clock: Time source in seconds (defaults to time.monotonic)
        """
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at < self.ttl_seconds

    def get(self, key: str) -> Any | None:
        """Return the fresh value for *key*, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_fresh(entry, self.clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self.clock())

    def get_or_fetch(self, key: str, fetch: Callable[[], T]) -> T:
        """
        Return the cached value for *key*, calling *fetch* on a miss.

        Exceptions from *fetch* propagate and nothing is stored.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetch()
        self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)
