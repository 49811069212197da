"""
In-memory content cache keyed by normalised URL.

Capacity is bounded with least-recently-used eviction, every entry expires
after a fixed TTL, and hit/miss counters are kept for ``stats()``. All
operations take one coarse lock, so concurrent fetches may share an instance.
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from link_scout.logger import logger
from link_scout.urls.classifier import normalize

__all__ = ["CacheEntry", "CacheStats", "ContentCache"]


@dataclass(slots=True)
class CacheEntry:
    """Cached content of one URL."""

    content: str
    created_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CacheStats:
    size: int
    capacity: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ContentCache:
    """LRU + TTL store. ``get`` never raises; a missing or stale key is simply absent."""

    def __init__(
        self,
        capacity: int = 100,
        ttl: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        key = normalize(url)
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._expired(entry, self._clock())

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl

    def get(self, url: str) -> Optional[CacheEntry]:
        key = normalize(url)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    def set(self, url: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        key = normalize(url)
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache full, evicted %s", evicted)
            self._entries[key] = CacheEntry(
                content=content,
                created_at=self._clock(),
                metadata=dict(metadata or {}),
            )
            self._entries.move_to_end(key)

    def clear_expired(self) -> int:
        """Drop every stale entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if self._expired(e, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Cache sweep removed %d expired entries", len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                capacity=self.capacity,
                hits=self._hits,
                misses=self._misses,
            )
