"""
In-process, bounded, TTL-based cache for document and query results.

Keys are tuples: `(collection, doc_id)` for documents and
`(collection, "query:<fingerprint>")` for query pages. Expiry is checked
lazily on read; capacity is enforced on write by evicting the entry that was
inserted longest ago. There is no locking: all access happens on the event
loop thread, and no method awaits.

Reads that go to the backend take a `generation()` token first and pass it to
`set(..., since=token)`. If the key (or, for a query page, its collection) was
invalidated in between, the set is dropped, so a read that overlapped a write
never puts pre-write data back into the cache.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from coachstore.domain.results import CacheStats

CacheKey = Tuple[str, str]

_QUERY_PREFIX = "query:"
# Marks a collection-wide invalidation; fingerprints are hex, so no page key collides
_ALL_PAGES = f"{_QUERY_PREFIX}*"


def document_key(collection: str, doc_id: str) -> CacheKey:
    return (collection, doc_id)


def query_key(collection: str, fingerprint: str) -> CacheKey:
    return (collection, f"{_QUERY_PREFIX}{fingerprint}")


def _is_query_key(key: Hashable) -> bool:
    return isinstance(key, tuple) and len(key) == 2 and str(key[1]).startswith(_QUERY_PREFIX)


@dataclass
class CacheEntry:
    key: Hashable
    value: Any
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class CacheManager:
    """
    Bounded TTL cache.

    Parameters
    ----------
    max_size : int
        Maximum number of live entries.
    default_ttl : float
        TTL in seconds used when `set` is called without one.
    clock : callable
        Monotonic time source in seconds; injectable for tests.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        # dicts keep insertion order: the first key is always the oldest insert
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        # generation at which each key was last invalidated, oldest first
        self._generation = 0
        self._invalidated: Dict[Hashable, int] = {}
        self._max_invalidations = max_size * 4
        # tokens older than this cannot be checked any more and count as stale
        self._floor = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.expired(self._clock())

    def generation(self) -> int:
        """Token to take before loading a value that will be passed to `set`."""
        return self._generation

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return copy.deepcopy(entry.value)

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None, since: Optional[int] = None) -> bool:
        """
        Store `value` under `key`.

        With `since` (a `generation()` token), nothing is stored when the key
        was invalidated after the token was taken. Returns whether it was stored.
        """
        if since is not None and self._invalidated_since(key, since):
            return False
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._evict_oldest()
        self._entries[key] = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            inserted_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        return True

    def invalidate(self, key: Hashable) -> bool:
        self._mark(key)
        return self._entries.pop(key, None) is not None

    def invalidate_collection(self, collection: str) -> int:
        """Drop every cached query page of `collection`; document entries stay."""
        self._mark((collection, _ALL_PAGES))
        stale = [key for key in self._entries if _is_query_key(key) and key[0] == collection]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._generation += 1
        self._floor = self._generation
        self._invalidated.clear()

    def stats(self) -> CacheStats:
        lookups = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / lookups if lookups else 0.0,
        )

    def _mark(self, marker: Hashable) -> None:
        self._generation += 1
        self._invalidated.pop(marker, None)
        self._invalidated[marker] = self._generation
        if len(self._invalidated) > self._max_invalidations:
            oldest = next(iter(self._invalidated))
            self._floor = self._invalidated.pop(oldest)

    def _invalidated_since(self, key: Hashable, since: int) -> bool:
        if since < self._floor:
            return True
        if self._invalidated.get(key, 0) > since:
            return True
        return _is_query_key(key) and self._invalidated.get((key[0], _ALL_PAGES), 0) > since

    def _evict_oldest(self) -> None:
        oldest = next(iter(self._entries), None)
        if oldest is not None:
            del self._entries[oldest]


__all__ = ["CacheEntry", "CacheKey", "CacheManager", "document_key", "query_key"]
