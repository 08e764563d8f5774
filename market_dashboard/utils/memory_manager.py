import asyncio
import time
import logging
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

class BoundedLRUCache:
    """LRU map of encoded values with per-entry expiry and memory limits.

    Used as the in-process fallback when the primary store is unreachable.
    Values are kept as encoded strings so callers always get a fresh copy.
    """

    def __init__(self, max_items: int = 10000, max_memory_mb: int = 500,
                 clock: Callable[[], float] = time.time):
        self.cache: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self.max_items = max_items
        self.max_memory_bytes = max_memory_mb * 1024 * 1024
        self.current_size_bytes = 0
        self.clock = clock
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.cache)

    def __contains__(self, key: str) -> bool:
        entry = self.cache.get(key)
        return entry is not None and entry[1] > self.clock()

    def _pop(self, key: str):
        encoded, _ = self.cache.pop(key)
        self.current_size_bytes -= len(encoded)

    async def get(self, key: str) -> Optional[str]:
        """Get item and move to end (most recently used); expired entries are misses"""
        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                return None

            encoded, expires_at = entry
            if self.clock() >= expires_at:
                self._pop(key)
                return None

            self.cache.move_to_end(key)
            return encoded

    async def set(self, key: str, encoded: str, ttl: int = 3600):
        """Set item with automatic eviction if needed"""
        async with self._lock:
            if key in self.cache:
                self._pop(key)

            if ttl <= 0:
                return

            size = len(encoded)
            while (len(self.cache) >= self.max_items or
                   self.current_size_bytes + size > self.max_memory_bytes):
                if not self.cache:
                    break

                oldest_key, _ = next(iter(self.cache.items()))
                self._pop(oldest_key)
                logger.debug(f"Evicted cache key: {oldest_key}")

            self.cache[key] = (encoded, self.clock() + ttl)
            self.current_size_bytes += size

            if self.current_size_bytes > self.max_memory_bytes * 0.8:
                logger.warning(f"Memory cache using {self.current_size_bytes / 1024 / 1024:.1f}MB (80% of limit)")

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key not in self.cache:
                return False
            self._pop(key)
            return True

    async def delete_matching(self, pattern: str) -> int:
        """Remove keys matching a glob-style prefix pattern ("*" matches everything)"""
        prefix = pattern.split("*", 1)[0]
        async with self._lock:
            doomed = [k for k in self.cache if k.startswith(prefix)]
            for key in doomed:
                self._pop(key)
            return len(doomed)

    async def clear_expired(self) -> int:
        """Remove expired entries"""
        async with self._lock:
            now = self.clock()
            expired_keys: List[str] = [
                key for key, (_, expires_at) in self.cache.items() if expires_at <= now
            ]
            for key in expired_keys:
                self._pop(key)
            return len(expired_keys)

    def get_stats(self) -> dict:
        """Get cache statistics"""
        stats = {
            "items_count": len(self.cache),
            "size_bytes": self.current_size_bytes,
            "size_mb": self.current_size_bytes / 1024 / 1024,
            "max_items": self.max_items,
            "max_memory_mb": self.max_memory_bytes / 1024 / 1024,
        }

        try:
            process = psutil.Process()
            stats["process_memory_mb"] = process.memory_info().rss / 1024 / 1024
        except psutil.Error:
            stats["process_memory_mb"] = "unavailable"

        return stats
