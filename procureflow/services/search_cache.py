"""Catalog search result caches.

CatalogService takes a SearchCache as a constructor dependency. The
in-memory LRU implementation is the runtime default; NullSearchCache
disables caching (useful in tests that assert on fresh queries).
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_SECONDS = 300.0


def build_search_key(
    query: str | None,
    limit: int | None = None,
    max_price: Decimal | float | None = None,
    include_archived: bool = False,
    category: str | None = None,
) -> str:
    """Build the normalized cache key for a search.

    Queries are lowercased and whitespace-collapsed so "Office  Chair"
    and "office chair" share an entry.
    """
    normalized = " ".join((query or "").lower().split()) or "all"
    price = "noprice" if max_price is None else str(Decimal(str(max_price)).normalize())
    key = f"search:{normalized}:{limit or 10}:{price}:{include_archived}"
    if category:
        key += f":cat:{category.strip().lower()}"
    return key


@runtime_checkable
class SearchCache(Protocol):
    """Protocol for search result caches."""

    def get(self, key: str) -> list[dict[str, Any]] | None:
        ...

    def set(self, key: str, value: list[dict[str, Any]]) -> None:
        ...

    def invalidate(self) -> None:
        """Drop every cached entry."""
        ...


class NullSearchCache:
    """SearchCache that never stores anything."""

    def get(self, key: str) -> list[dict[str, Any]] | None:
        return None

    def set(self, key: str, value: list[dict[str, Any]]) -> None:
        return None

    def invalidate(self) -> None:
        return None


class InMemorySearchCache:
    """Thread-safe LRU cache with per-entry TTL.

    Attributes:
        max_size: Entry ceiling; the least recently used entry is evicted.
        ttl_seconds: Entry lifetime; expired entries count as misses.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, list[dict[str, Any]]]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> list[dict[str, Any]] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return [dict(row) for row in value]

    def set(self, key: str, value: list[dict[str, Any]]) -> None:
        if self.max_size <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock(), [dict(row) for row in value])
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def invalidate(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
        if dropped:
            logger.debug("Search cache invalidated (%d entries)", dropped)

    def stats(self) -> dict[str, Any]:
        """Size and hit-rate counters for monitoring."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": (self._hits / total) if total else 0.0,
            }
