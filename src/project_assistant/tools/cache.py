"""TTL cache for read-only tool results.

Entries are keyed by a SHA-256 digest of the canonical serialization of
``(tool_name, args, scope)`` and expire after a fixed TTL. The map is
unbounded; expired entries are evicted lazily on lookup or by an explicit
``purge_expired()`` sweep. Reads never extend an entry's lifetime.
"""

import copy
import hashlib
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import orjson

from project_assistant.governance.models import Scope
from project_assistant.telemetry import (
    TOOL_CACHE_HIT,
    TOOL_CACHE_INVALIDATED,
    TOOL_CACHE_MISS,
    get_logger,
)

log = get_logger(__name__)


def canonical_hash(*parts: Any) -> str:
    """SHA-256 hex digest of the parts serialized with sorted keys.

    Two argument dicts that differ only in key order hash identically.
    """
    payload = orjson.dumps(list(parts), option=orjson.OPT_SORT_KEYS, default=str)
    return hashlib.sha256(payload).hexdigest()


@dataclass
class CacheEntry:
    """One memoized tool result."""

    key: str
    value: Any
    expires_at: float
    partition: str

    def is_expired(self, now: float) -> bool:
        """Whether the entry's TTL has elapsed at ``now``."""
        return now >= self.expires_at


class ToolResultCache:
    """Process-wide cache for cacheable tool results.

    Safe under concurrent use; the lock guards only the in-memory map and is
    never held across an await.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of every entry.
            clock: Monotonic time source (injected in tests).
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(tool_name: str, args: dict[str, Any], scope: Scope) -> str:
        """Deterministic cache key for a tool call in a scope."""
        return canonical_hash(tool_name, args, scope.to_dict())

    def lookup(self, tool_name: str, args: dict[str, Any], scope: Scope) -> CacheEntry | None:
        """Return a live entry for the call, or None.

        Expired entries found here are removed.
        """
        key = self.make_key(tool_name, args, scope)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                entry = None
            if entry is None:
                self.misses += 1
            else:
                self.hits += 1

        if entry is None:
            log.debug(TOOL_CACHE_MISS, tool_name=tool_name)
            return None

        log.debug(TOOL_CACHE_HIT, tool_name=tool_name, ttl_remaining=entry.expires_at - now)
        return CacheEntry(
            key=entry.key,
            value=copy.deepcopy(entry.value),
            expires_at=entry.expires_at,
            partition=entry.partition,
        )

    def store(self, tool_name: str, args: dict[str, Any], scope: Scope, value: Any) -> CacheEntry:
        """Store a successful result with the fixed TTL."""
        entry = CacheEntry(
            key=self.make_key(tool_name, args, scope),
            value=copy.deepcopy(value),
            expires_at=self._clock() + self.ttl_seconds,
            partition=scope.partition,
        )
        with self._lock:
            self._entries[entry.key] = entry
        return entry

    def invalidate_partition(self, partition: str) -> int:
        """Drop every entry cached for a ``tenant:project`` partition.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.partition == partition]
            for key in stale:
                del self._entries[key]
        if stale:
            log.info(TOOL_CACHE_INVALIDATED, partition=partition, entries=len(stale))
        return len(stale)

    def purge_expired(self) -> int:
        """Remove all expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        """Drop everything and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> dict[str, int]:
        """Entry count and hit/miss counters."""
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:  # noqa: D105
        with self._lock:
            return len(self._entries)
