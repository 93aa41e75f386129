"""
Bounded TTL-based in-memory cache for GitHub responses and computed stats.

Two namespaces share one store: raw endpoint entries (keyed by their path,
e.g. ``/users/octocat``) and stats entries (keyed ``stats_<username>``), each
with its own TTL.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

STATS_PREFIX = "stats_"
ENDPOINT_NAMESPACE = "endpoint"
STATS_NAMESPACE = "stats"

# Eviction trims down to this share of max_entries
EVICTION_TARGET_RATIO = 0.8


@dataclass
class CacheEntry:
    """A stored payload, the time it was written and its serialized size."""
    key: str
    value: Any
    stored_at: float
    size: int = 0


def serialized_size(value: Any) -> int:
    """Length of value as JSON, the unit of the cache's byte limit."""
    return len(json.dumps(value, default=str))


def _format_duration(seconds: int) -> str:
    if seconds % 86400 == 0:
        return f"{seconds // 86400} days"
    if seconds % 3600 == 0:
        return f"{seconds // 3600} hours"
    return f"{seconds} seconds"


class ResponseCache:
    """
    Time-to-live cache with size and entry-count eviction.

    Expiry is lazy: an expired entry reads as absent but stays in the store
    until ``clear_expired`` or an eviction pass removes it. Eviction runs
    after every write, deferred to the event loop when one is running.
    """

    def __init__(
        self,
        ttl_seconds: int = 60 * 60 * 24 * 14,
        stats_ttl_seconds: int = 60 * 60 * 6,
        max_entries: int = 1000,
        max_bytes: int = 50 * 1024 * 1024,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache with per-namespace TTLs and eviction limits.

        Args:
            ttl_seconds: Time-to-live for raw endpoint entries
            stats_ttl_seconds: Time-to-live for ``stats_`` entries
            max_entries: Entry count above which eviction kicks in
            max_bytes: Serialized size above which eviction kicks in
            clock: Source of the current time in seconds
        """
        self._cache: dict[str, CacheEntry] = {}
        self._total_bytes = 0
        self._ttl = ttl_seconds
        self._stats_ttl = stats_ttl_seconds
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._clock = clock

    @staticmethod
    def namespace(key: str) -> str:
        return STATS_NAMESPACE if key.startswith(STATS_PREFIX) else ENDPOINT_NAMESPACE

    def ttl_for(self, key: str) -> int:
        return self._stats_ttl if key.startswith(STATS_PREFIX) else self._ttl

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at >= self.ttl_for(entry.key)

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, or None if unknown or expired."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """
        Get value from cache if it exists and hasn't expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def age_of(self, entry: CacheEntry) -> int:
        """Whole seconds since entry was stored."""
        return int(self._clock() - entry.stored_at)

    def set(self, key: str, value: Any) -> None:
        """
        Store value in cache and schedule an eviction pass.

        Args:
            key: Cache key
            value: JSON-serializable payload
        """
        entry = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            size=serialized_size(value),
        )
        replaced = self._cache.get(key)
        if replaced is not None:
            self._total_bytes -= replaced.size
        self._cache[key] = entry
        self._total_bytes += entry.size

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.evict()
        else:
            loop.call_soon(self.evict)

    def evict(self) -> int:
        """
        Remove the oldest entries when the cache is over its limits.

        Expired entries are dropped first. If the cache is still over a
        limit, it is trimmed to 80% of max_entries in a single pass; size is
        not re-checked afterwards.

        Returns:
            Number of entries removed, expired ones included
        """
        expired = self.clear_expired()
        if len(self._cache) <= self.max_entries and self._total_bytes <= self.max_bytes:
            return expired

        target = int(self.max_entries * EVICTION_TARGET_RATIO)
        oldest_first = sorted(self._cache.values(), key=lambda e: e.stored_at)
        removed = 0
        for entry in oldest_first:
            if len(self._cache) <= target:
                break
            self._remove(entry.key)
            removed += 1

        logger.info("Cache eviction removed %d entries (%d remaining)", removed, len(self._cache))
        return expired + removed

    def _remove(self, key: str) -> None:
        entry = self._cache.pop(key)
        self._total_bytes -= entry.size

    @staticmethod
    def normalize_key(key: str) -> str:
        """Stats keys pass through, anything else is treated as a path."""
        if key.startswith(STATS_PREFIX) or key.startswith("/"):
            return key
        return f"/{key}"

    def delete(self, key: str) -> bool:
        """
        Remove key from cache.

        Args:
            key: Cache key, a path with or without its leading ``/``

        Returns:
            True if key was removed, False if it didn't exist
        """
        key = self.normalize_key(key)
        if key in self._cache:
            self._remove(key)
            return True
        return False

    def clear(self) -> int:
        """Clear all entries from cache and return how many were removed."""
        count = len(self._cache)
        self._cache.clear()
        self._total_bytes = 0
        return count

    def clear_expired(self) -> int:
        """
        Remove all expired entries from cache.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._cache.items()
            if self._is_expired(entry, now)
        ]

        for key in expired_keys:
            self._remove(key)

        return len(expired_keys)

    def size_bytes(self) -> int:
        """Sum of the entries' serialized sizes, kept as a running total."""
        return self._total_bytes

    def status(self) -> dict[str, Any]:
        """Summary of the cache contents for the admin endpoint."""
        now = self._clock()
        total_size = self.size_bytes()
        namespaces = {ENDPOINT_NAMESPACE: 0, STATS_NAMESPACE: 0}
        ages = []
        expired = 0

        for key, entry in self._cache.items():
            namespaces[self.namespace(key)] += 1
            ages.append(int(now - entry.stored_at))
            if self._is_expired(entry, now):
                expired += 1

        return {
            "entries": len(self._cache),
            "totalSizeBytes": total_size,
            "totalSize": f"{total_size / 1024:.2f} KB",
            "namespaces": namespaces,
            "endpoints": list(self._cache.keys()),
            "oldestEntryAge": max(ages) if ages else None,
            "newestEntryAge": min(ages) if ages else None,
            "expiredEntries": expired,
            "maxEntries": self.max_entries,
            "cacheDuration": _format_duration(self._ttl),
            "statsCacheDuration": _format_duration(self._stats_ttl),
        }

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.get_entry(key) is not None
