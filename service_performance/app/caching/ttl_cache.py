"""
In-process TTL cache for the Performance Optimization service.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.logging import get_logger


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics."""

    count: int
    hits: int
    misses: int
    expired: int
    evictions: int
    max_entries: Optional[int]
    default_ttl_seconds: float

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["hit_ratio"] = round(self.hit_ratio, 4)
        return payload


class TTLCache:
    """Key/value store with per-entry expiry and optional LRU bound.

    Entries are checked for expiry on every read, so a stale entry is never
    returned even if ``purge_expired`` has not run yet. When ``max_entries``
    is set, writing past the bound evicts the least recently used entry.
    """

    def __init__(
        self,
        default_ttl_seconds: float = 300.0,
        *,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self.logger = get_logger("performance.cache")

        # key -> (expires_at, value)
        self._store: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._expired = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None."""
        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                return None

            expires_at, value = item
            if expires_at <= self._clock():
                del self._store[key]
                self._expired += 1
                self._misses += 1
                return None

            self._store.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key``, replacing any existing entry.

        None is reserved for "absent" on reads and cannot be stored.
        """
        if value is None:
            raise ValueError("Cannot cache None")
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")

        with self._lock:
            self._store[key] = (self._clock() + ttl, value)
            self._store.move_to_end(key)

            while self.max_entries is not None and len(self._store) > self.max_entries:
                evicted_key, _ = self._store.popitem(last=False)
                self._evictions += 1
                self.logger.debug("Evicted cache entry", key=evicted_key, max_entries=self.max_entries)

        self.logger.debug("Cached value", key=key, ttl=ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> int:
        """Drop every entry and return how many were held."""
        with self._lock:
            count = len(self._store)
            self._store.clear()
        if count:
            self.logger.info("Cleared cache", entries=count)
        return count

    def purge_expired(self) -> int:
        """Physically remove entries whose TTL has elapsed."""
        with self._lock:
            now = self._clock()
            stale = [key for key, (expires_at, _) in self._store.items() if expires_at <= now]
            for key in stale:
                del self._store[key]
            self._expired += len(stale)

        if stale:
            self.logger.debug("Purged expired cache entries", count=len(stale))
        return len(stale)

    def keys(self) -> List[str]:
        """Keys of live entries, least recently used first."""
        with self._lock:
            now = self._clock()
            return [key for key, (expires_at, _) in self._store.items() if expires_at > now]

    def ttl_remaining(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when absent."""
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            remaining = item[0] - self._clock()
            return remaining if remaining > 0 else None

    def stats(self) -> CacheStats:
        return CacheStats(
            count=len(self),
            hits=self._hits,
            misses=self._misses,
            expired=self._expired,
            evictions=self._evictions,
            max_entries=self.max_entries,
            default_ttl_seconds=self.default_ttl_seconds,
        )

    def __contains__(self, key: object) -> bool:
        with self._lock:
            item = self._store.get(key)  # type: ignore[arg-type]
            return item is not None and item[0] > self._clock()

    def __len__(self) -> int:
        return len(self.keys())
