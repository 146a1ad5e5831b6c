# linkmeta/services/result_cache.py
# Responsibility: Bounded in-memory store of finished metadata, evicting least-recently-used entries.

from collections import OrderedDict
from typing import Any, Dict, Generic, Optional, TypeVar

from linkmeta.config.settings import settings

V = TypeVar("V")


class ResultCache(Generic[V]):
    """
    LRU cache keyed by normalized URL.
    Reads refresh recency. Statistics are cumulative since the last clear().
    """

    def __init__(self, max_size: int = settings.FETCHER.RESULT_CACHE_MAX_SIZE):
        self._entries: "OrderedDict[str, V]" = OrderedDict()
        self.max_size = max(1, max_size)
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        # Bumped by clear(); writers holding an older generation are ignored
        self.generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[V]:
        """
        Returns the cached value, or None on a miss.
        A hit moves the entry to the most-recently-used position.
        """
        if key not in self._entries:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return self._entries[key]

    def set(self, key: str, value: V, generation: Optional[int] = None) -> bool:
        """
        Stores a value. When a generation is given and the cache has been cleared
        since it was read, the write is dropped and False is returned.
        """
        if generation is not None and generation != self.generation:
            return False
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self.max_size:
            self._evict_oldest()
        self._entries[key] = value
        return True

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.generation += 1

    def set_max_size(self, max_size: int) -> None:
        """Changes capacity, evicting oldest entries until the cache fits."""
        self.max_size = max(1, max_size)
        while len(self._entries) > self.max_size:
            self._evict_oldest()

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        hit_rate = round(self.hits / total * 100, 2) if total else 0.0
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": hit_rate,
        }

    def _evict_oldest(self) -> None:
        self._entries.popitem(last=False)
        self.evictions += 1
