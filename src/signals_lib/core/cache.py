"""
Time-boxed in-memory cache for slowly changing reference data.

Broker instrument masters (the full list of option / future contracts on an
exchange) change a few times a day at most, but they are large and slow to
download.  Adapters that need one receive a ``TTLCache`` instance instead of
reaching for module-level state, so the refresh policy is explicit and tests
can drive expiry with a fake clock.

Usage:
    from src.signals_lib.core.cache import TTLCache, TTL_INSTRUMENTS

    instruments = TTLCache(ttl=TTL_INSTRUMENTS)
    rows = instruments.get_or_load("MCX", lambda: fetch_instrument_master("MCX"))
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger("cache")

T = TypeVar("T")

# Default TTLs in seconds
TTL_INSTRUMENTS = 6 * 60 * 60  # instrument / scrip master
TTL_GREEKS = 60  # public greeks snapshots


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    value: T
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return (now - self.fetched_at) < self.ttl


class TTLCache(Generic[T]):
    """Keyed cache whose entries expire ``ttl`` seconds after they were loaded.

    ``now_fn`` returns the current time in epoch seconds; inject a fake in
    tests.  The cache is safe to share between threads.
    """

    def __init__(
        self,
        ttl: float = TTL_INSTRUMENTS,
        now_fn: Optional[Callable[[], float]] = None,
    ):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = float(ttl)
        self._now = now_fn or time.time
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None when missing or expired."""
        entry = self.entry(key)
        return entry.value if entry is not None else None

    def entry(self, key: str) -> Optional[CacheEntry[T]]:
        now = self._now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(now):
                del self._entries[key]
                return None
            return entry

    def set(self, key: str, value: T) -> CacheEntry[T]:
        entry = CacheEntry(key=key, value=value, fetched_at=self._now(), ttl=self.ttl)
        with self._lock:
            self._entries[key] = entry
        return entry

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        """Return the fresh cached value or call ``loader`` and store its result.

        Loader exceptions propagate and leave the cache untouched.
        """
        cached = self.entry(key)
        if cached is not None:
            return cached.value
        value = loader()
        self.set(key, value)
        logger.debug("Cache refreshed for %s (ttl=%ss)", key, self.ttl)
        return value

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or the whole cache when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and self.entry(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
