# src/async_search_query/base/cache.py
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Tuple

from .settings import SearchSettings

log = logging.getLogger(__name__)


class ResultCache:
    """
    Bounded in-memory cache with a time-to-live per entry.

    Expired entries are dropped when read. When the cache is full, setting a
    new key evicts the oldest entries first. Not shared between processes.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()

    @classmethod
    def from_settings(
        cls, settings: SearchSettings, clock: Callable[[], float] = time.monotonic
    ) -> "ResultCache":
        """Cache sized by `cache_max_entries` and `cache_ttl_seconds`."""
        return cls(
            max_entries=settings.cache_max_entries,
            ttl_seconds=settings.cache_ttl_seconds,
            clock=clock,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            log.debug(f"Cache entry expired: {key!r}")
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.max_entries:
            oldest, _ = self._entries.popitem(last=False)
            log.debug(f"Cache full; evicted {oldest!r}")
        self._entries[key] = (self._clock(), value)

    def evict(self, key: Hashable) -> bool:
        """Remove `key`; returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
