"""Advisory cache for derived travel-time averages.

The estimator only ever stores idempotent values computed from fixed inputs,
so concurrent writers may race freely (last write wins) and a cold or missing
cache changes performance only.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, Optional, Protocol

from train_tracker.config import get_settings


class TravelTimeCache(Protocol):
    """Storage capability needed by the travel-time estimator."""

    def get(self, key: str) -> Optional[timedelta]: ...

    def set(self, key: str, value: timedelta, ttl: timedelta) -> None: ...


class InMemoryTTLCache:
    """Process-local cache whose entries expire after their TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, timedelta]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[timedelta]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: timedelta, ttl: timedelta) -> None:
        if ttl.total_seconds() <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock() + ttl.total_seconds(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_cache_instance: InMemoryTTLCache | None = None


def get_travel_time_cache() -> InMemoryTTLCache:
    """Get or create the process-wide travel-time cache."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = InMemoryTTLCache()
    return _cache_instance


def reset_travel_time_cache() -> None:
    """Drop the process-wide cache (for testing)."""
    global _cache_instance
    _cache_instance = None


def default_cache_ttl() -> timedelta:
    return timedelta(seconds=get_settings().travel_time_cache_ttl_sec)
