"""TTL cache for fetched module metadata."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with TTL."""

    value: T
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


class TTLCache(Generic[T]):
    """Small in-memory cache keyed by string with per-entry expiry.

    Holds ``None`` values too, so "not found" lookups are not repeated.
    """

    def __init__(self, default_ttl: float = 600, max_entries: int = 5000):
        """Initialize the cache.

        Args:
            default_ttl: Default time-to-live in seconds.
            max_entries: Entries kept before the oldest are evicted.
        """
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._cache: Dict[str, CacheEntry[Optional[T]]] = {}

    def __contains__(self, key: str) -> bool:
        entry = self._cache.get(key)
        if entry is None:
            return False
        if entry.is_expired():
            del self._cache[key]
            return False
        return True

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str) -> Optional[T]:
        """Return a cached value, or None if missing or expired."""
        if key not in self:
            return None
        return self._cache[key].value

    def set(self, key: str, value: Optional[T], ttl: Optional[float] = None) -> None:
        """Cache a value.

        Args:
            key: Cache key.
            value: Value to cache (None records a negative lookup).
            ttl: Optional TTL override in seconds.
        """
        effective_ttl = ttl if ttl is not None else self._default_ttl
        self._cache[key] = CacheEntry(value=value, expires_at=time.time() + effective_ttl)
        if len(self._cache) > self._max_entries:
            self._cleanup()
        if len(self._cache) > self._max_entries:
            self._evict_oldest(max(1, self._max_entries // 10))

    def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()

    def _cleanup(self) -> None:
        """Remove expired entries."""
        expired = [key for key, entry in self._cache.items() if entry.is_expired()]
        for key in expired:
            del self._cache[key]

    def _evict_oldest(self, count: int) -> None:
        oldest = sorted(self._cache.items(), key=lambda item: item[1].created_at)[:count]
        for key, _ in oldest:
            del self._cache[key]
