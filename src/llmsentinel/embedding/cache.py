# src/llmsentinel/embedding/cache.py
"""
Embedding Cache Implementation.

In-memory LRU cache for response embeddings with a per-entry time-to-live.
Identical responses are common on busy endpoints (canned refusals, templated
answers), so caching avoids redundant embedding calls.

Cache Key: SHA256(text)
Cache Value: List[float] (the embedding vector)

When the cache grows past capacity the oldest 10% of entries are evicted in
one pass. Expired entries are dropped lazily on lookup.

Usage:
    cache = EmbeddingCache(max_size=1000, ttl_seconds=3600)
    vector = cache.get(text)
    if vector is None:
        vector = await model.generate_embedding(text)
        cache.set(text, vector)
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Snapshot of cache counters."""

    size: int = Field(default=0, ge=0)
    max_size: int = Field(default=0, ge=0)
    hits: int = Field(default=0, ge=0)
    misses: int = Field(default=0, ge=0)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class EmbeddingCache:
    """Thread-safe LRU cache with TTL for embedding vectors.

    Attributes:
        max_size: Maximum number of entries. 0 disables caching.
        ttl_seconds: Lifetime of an entry.
        hits: Total cache hits.
        misses: Total cache misses.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, Tuple[List[float], float]] = OrderedDict()
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, text: str) -> Optional[List[float]]:
        """Return the cached vector for ``text`` or None, updating hit/miss counters."""
        key = self.make_key(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            vector, stored_at = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return vector

    def set(self, text: str, vector: List[float]) -> None:
        if self.max_size == 0:
            return
        key = self.make_key(text)
        with self._lock:
            self._entries[key] = (list(vector), self._clock())
            self._entries.move_to_end(key)
            if len(self._entries) > self.max_size:
                self._evict()

    def _evict(self) -> None:
        # Drop the oldest 10% (at least one entry)
        to_remove = max(1, len(self._entries) // 10)
        for _ in range(to_remove):
            self._entries.popitem(last=False)

    def clear(self) -> None:
        """Clear all entries and reset statistics."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                hits=self.hits,
                misses=self.misses,
            )
