"""LRU cache with TTL for scrape outcomes, keyed by target username."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from ig_scraper.models.post import ScrapeOutcome


class ResultCache:
    """In-memory LRU cache of recent ``ScrapeOutcome`` values.

    Keys are lower-cased usernames. Each entry remembers the post limit it
    was fetched with; a full list cannot answer a larger limit and reads as
    a miss. Expired entries are dropped lazily on read, or in bulk with
    ``cleanup_expired``. All access happens on the event loop, so no
    locking is needed.

    Example:
        cache = ResultCache(ttl_seconds=600)

        cached = cache.get("NASA", limit=50)
        if cached is None:
            cache.put("nasa", await executor.scrape_profile("nasa", 50), limit=50)
    """

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry.
            max_size: When exceeded, least recently used entries are evicted.
            clock: Monotonic time source, injectable for tests.
        """
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._cache: OrderedDict[str, tuple[float, ScrapeOutcome, int | None]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _key(target: str) -> str:
        return target.strip().lower()

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at >= self._ttl

    def get(self, target: str, limit: int | None = None) -> ScrapeOutcome | None:
        """Return the cached outcome if it is still fresh and covers ``limit``."""
        key = self._key(target)
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        stored_at, outcome, stored_limit = entry
        if self._expired(stored_at):
            del self._cache[key]
            self._misses += 1
            return None

        if not self._covers(outcome, stored_limit, limit):
            self._misses += 1
            return None

        self._cache.move_to_end(key)
        self._hits += 1
        return outcome

    @staticmethod
    def _covers(outcome: ScrapeOutcome, stored_limit: int | None, limit: int | None) -> bool:
        if limit is None or stored_limit is None or limit <= stored_limit:
            return True
        return len(outcome.posts) < stored_limit

    def has(self, target: str, limit: int | None = None) -> bool:
        entry = self._cache.get(self._key(target))
        if entry is None or self._expired(entry[0]):
            return False
        return self._covers(entry[1], entry[2], limit)

    def put(self, target: str, outcome: ScrapeOutcome, limit: int | None = None) -> None:
        """Store an outcome fetched with ``limit`` posts at most.

        Evicts least recently used entries at capacity.
        """
        key = self._key(target)
        if key in self._cache:
            self._cache.move_to_end(key)
        else:
            while len(self._cache) >= self._max_size:
                self._cache.popitem(last=False)
        self._cache[key] = (self._clock(), outcome, limit)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        """Number of entries (including possibly expired ones)."""
        return len(self._cache)

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns number removed."""
        expired = [k for k, (stored_at, _, _) in self._cache.items() if self._expired(stored_at)]
        for key in expired:
            del self._cache[key]
        return len(expired)

    @property
    def stats(self) -> dict[str, Any]:
        expired = sum(1 for stored_at, _, _ in self._cache.values() if self._expired(stored_at))
        return {
            "size": len(self._cache),
            "maxSize": self._max_size,
            "ttlSeconds": self._ttl,
            "expiredCount": expired,
            "hits": self._hits,
            "misses": self._misses,
            "keys": list(self._cache),
        }
