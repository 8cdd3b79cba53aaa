"""
In-memory TTL cache for TMDb metadata.

Search results are keyed by the normalized query and movie details by the
TMDb id. Entries expire after a TTL and the least recently used entry is
evicted once the cache is full.

Usage Example:
    >>> cache = MetadataCache(ttl=60)
    >>> cache.set("tmdb_search", "Blade Runner", {"status": "success", "results": []})
    >>> cache.get("tmdb_search", "  blade   runner ")
    {'status': 'success', 'results': []}
"""

import os
import time
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

from watchme.metrics import track_cache_operation

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Dict[str, Any]
    timestamp: float
    ttl: float
    source: str
    hits: int = 0


@dataclass
class CacheStats:
    total_requests: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_ratio(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests


class MetadataCache:
    """
    TTL + LRU cache, one instance shared per process.

    Configuration (via environment variables):
        METADATA_CACHE_TTL: Default TTL in seconds (default: 86400)
        METADATA_CACHE_MAX_SIZE: Maximum number of entries (default: 500)
        METADATA_CACHE_ENABLED: Set to 0 to disable (default: 1)
    """

    def __init__(
        self,
        ttl: Optional[int] = None,
        max_size: Optional[int] = None,
        enabled: Optional[bool] = None
    ):
        self.ttl = ttl if ttl is not None else int(os.getenv("METADATA_CACHE_TTL", "86400"))
        self.max_size = max_size if max_size is not None else int(os.getenv("METADATA_CACHE_MAX_SIZE", "500"))
        self.enabled = enabled if enabled is not None else (os.getenv("METADATA_CACHE_ENABLED", "1") != "0")

        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._stats = CacheStats()

        logger.info(
            f"MetadataCache initialized: enabled={self.enabled}, ttl={self.ttl}s, "
            f"max_size={self.max_size}"
        )

    @staticmethod
    def make_key(source: str, key: Any) -> str:
        """
        Build the storage key. String keys are case and whitespace
        insensitive.

        >>> MetadataCache.make_key("tmdb_search", "  The  Thing ")
        'tmdb_search:the thing'
        >>> MetadataCache.make_key("tmdb_details", 1091)
        'tmdb_details:1091'
        """
        if isinstance(key, str):
            key = " ".join(key.lower().split())
        return f"{source}:{key}"

    def get(self, source: str, key: Any) -> Optional[Dict[str, Any]]:
        """Return the cached value, or None on a miss or an expired entry."""
        if not self.enabled:
            return None

        cache_key = self.make_key(source, key)
        self._stats.total_requests += 1
        entry = self._cache.get(cache_key)

        if entry is None:
            self._stats.misses += 1
            track_cache_operation(source, hit=False)
            return None

        age = time.time() - entry.timestamp
        if age > entry.ttl:
            del self._cache[cache_key]
            self._stats.misses += 1
            self._stats.evictions += 1
            track_cache_operation(source, hit=False)
            logger.debug(f"Cache expired: {cache_key} (age: {age:.1f}s)")
            return None

        self._cache.move_to_end(cache_key)
        entry.hits += 1
        self._stats.hits += 1
        track_cache_operation(source, hit=True)
        return entry.value

    def set(self, source: str, key: Any, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        """Store `value`, evicting the least recently used entry when full."""
        if not self.enabled:
            return

        cache_key = self.make_key(source, key)
        if cache_key not in self._cache and len(self._cache) >= self.max_size:
            oldest_key, _ = self._cache.popitem(last=False)
            self._stats.evictions += 1
            logger.debug(f"Cache LRU eviction: {oldest_key}")

        self._cache[cache_key] = CacheEntry(
            value=value,
            timestamp=time.time(),
            ttl=ttl if ttl is not None else self.ttl,
            source=source,
        )
        self._cache.move_to_end(cache_key)

    def evict(self, source: str, key: Any) -> bool:
        cache_key = self.make_key(source, key)
        if cache_key in self._cache:
            del self._cache[cache_key]
            self._stats.evictions += 1
            return True
        return False

    def clear(self, source: Optional[str] = None) -> int:
        """Drop all entries, or only those from `source`. Returns the count."""
        if source is None:
            count = len(self._cache)
            self._cache.clear()
        else:
            keys = [k for k, entry in self._cache.items() if entry.source == source]
            for k in keys:
                del self._cache[k]
            count = len(keys)
        logger.info(f"Cache cleared: {count} entries")
        return count

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_requests": self._stats.total_requests,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "evictions": self._stats.evictions,
            "current_size": len(self._cache),
            "max_size": self.max_size,
            "hit_ratio": self._stats.hit_ratio,
            "enabled": self.enabled,
        }


_global_cache: Optional[MetadataCache] = None


def get_cache() -> MetadataCache:
    """Get or create the process wide cache."""
    global _global_cache
    if _global_cache is None:
        _global_cache = MetadataCache()
    return _global_cache


def reset_global_cache():
    """Forget the process wide cache (used by tests)."""
    global _global_cache
    _global_cache = None
