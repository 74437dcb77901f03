"""Thread-safe in-memory TTL cache."""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class CacheEntry:
    """A cached value and the instant it was stored."""

    value: Any
    stored_at: float

    def age(self, now: float) -> float:
        """Seconds elapsed since the entry was stored."""
        return now - self.stored_at


class TTLCache:
    """
    Read-through TTL cache keyed by exact string.

    Entries are served while younger than ``ttl``. Entries older than
    ``ttl * purge_factor`` are removed by a sweep that runs on every write;
    there is no background timer. Concurrent writers to one key follow a
    last-writer-wins policy.
    """

    def __init__(
        self,
        ttl: float,
        purge_factor: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl: Seconds an entry stays usable
            purge_factor: Multiple of ttl after which entries are swept
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl = ttl
        self.purge_age = ttl * purge_factor
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the value for ``key`` if present and still within TTL."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry.age(now) >= self.ttl:
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and sweep long-expired entries."""
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=now)
            self._purge(now)

    def _purge(self, now: float) -> int:
        """
        Remove entries older than the purge age.

        Note: Must be called within the lock context.
        """
        stale = [key for key, entry in self._entries.items() if entry.age(now) > self.purge_age]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
