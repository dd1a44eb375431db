"""In-memory LRU cache with time-to-live expiry.

Used by provider adapters for bulk endpoints and by the agent response cache.
All access happens on the event loop thread, so no locking is performed.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Hashable, TypeVar

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "ExpiringCache",
]

LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


# -----------------------------------------------------------------------------
# Cache Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Configuration for an :class:`ExpiringCache`.

    Attributes:
        max_entries: Maximum number of entries kept.
        ttl_seconds: Time-to-live for entries in seconds (0 = no expiry).
        track_stats: Whether to track cache statistics.
    """

    max_entries: int = 64
    ttl_seconds: float = 600.0  # 10 minutes
    track_stats: bool = True


# -----------------------------------------------------------------------------
# Cache Entry
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class CacheEntry(Generic[V]):
    value: V
    created_at: float
    accessed_at: float
    access_count: int = 0

    def touch(self, now: float) -> None:
        self.accessed_at = now
        self.access_count += 1

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        if ttl_seconds <= 0:
            return False
        return now - self.created_at >= ttl_seconds


# -----------------------------------------------------------------------------
# Cache Statistics
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
        }


# -----------------------------------------------------------------------------
# Expiring Cache
# -----------------------------------------------------------------------------


class ExpiringCache(Generic[K, V]):
    """LRU cache whose entries expire after a fixed time-to-live.

    Example:
        >>> cache: ExpiringCache[str, list[dict]] = ExpiringCache(CacheConfig(ttl_seconds=600))
        >>> cache.set("경기", stations)
        >>> cache.get("경기")
    """

    def __init__(self, config: CacheConfig | None = None, *, clock: Clock | None = None) -> None:
        self._config = config or CacheConfig()
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._stats = CacheStats() if self._config.track_stats else None

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def stats(self) -> CacheStats | None:
        return self._stats

    def get(self, key: K) -> V | None:
        """Return the cached value, or ``None`` when missing or expired."""

        entry = self._entries.get(key)
        if entry is None:
            if self._stats:
                self._stats.misses += 1
            return None

        now = self._clock()
        if entry.is_expired(self._config.ttl_seconds, now):
            del self._entries[key]
            if self._stats:
                self._stats.expirations += 1
                self._stats.misses += 1
            LOGGER.debug("Cache entry expired for key %r", key)
            return None

        entry.touch(now)
        self._entries.move_to_end(key)
        if self._stats:
            self._stats.hits += 1
        return entry.value

    def set(self, key: K, value: V) -> None:
        """Store ``value``; the least recently used entry is evicted when full."""

        now = self._clock()
        if key in self._entries:
            self._entries[key] = CacheEntry(value=value, created_at=now, accessed_at=now)
            self._entries.move_to_end(key)
            return

        while self._entries and len(self._entries) >= max(1, self._config.max_entries):
            evicted, _ = self._entries.popitem(last=False)
            if self._stats:
                self._stats.evictions += 1
            LOGGER.debug("Evicted cache entry for key %r", evicted)

        self._entries[key] = CacheEntry(value=value, created_at=now, accessed_at=now)

    def invalidate(self, key: K) -> bool:
        if key in self._entries:
            del self._entries[key]
            if self._stats:
                self._stats.invalidations += 1
            return True
        return False

    def invalidate_all(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        if self._stats:
            self._stats.invalidations += count
        if count:
            LOGGER.debug("Invalidated all %d cache entries", count)
        return count

    def __contains__(self, key: object) -> bool:
        """Membership check that ignores expiry and does not touch the entry."""
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
