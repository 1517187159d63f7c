"""
Steward TTL Cache

In-memory cache with a fixed time-to-live. Each resolver or
builder owns its own instance; there is no module-level cache.

Entries are replaced wholesale on every ``set`` and never mutated in
place, so concurrent readers always see either the old or the new entry.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CachedEntry(Generic[T]):
    """A cached value with its absolute expiry (monotonic seconds)."""

    value: T
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache(Generic[T]):
    """Minimal get/set/invalidate cache.

    Keys are any hashable value: a tenant id, or a tuple when one tenant
    owns several entries.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, CachedEntry[T]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> T | None:
        """Return the cached value, or None if missing or expired.

        Expired entries are evicted on read.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            # Only evict the entry we inspected; a concurrent set may have replaced it
            if self._entries.get(key) is entry:
                del self._entries[key]
            return None
        return entry.value

    def set(self, key: Hashable, value: T) -> CachedEntry[T]:
        entry = CachedEntry(value=value, expires_at=self._clock() + self._ttl)
        self._entries[key] = entry
        return entry

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
