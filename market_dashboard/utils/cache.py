import json
import time
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from market_dashboard.utils.memory_manager import BoundedLRUCache

logger = logging.getLogger(__name__)

STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


@dataclass
class CacheMetrics:
    """Process-local hit/miss/error counters"""

    hits: int = 0
    misses: int = 0
    errors: int = 0

    def reset(self):
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total * 100 if self.total else 0.0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "total": self.total,
            "hit_rate": round(self.hit_rate, 2),
            "hitRate": f"{self.hit_rate:.2f}%",
        }


class KeyValueStore:
    """Redis-backed JSON store that degrades to a bounded memory map.

    No operation raises on transport errors: the failure is logged, counted
    and the memory map answers instead.
    """

    def __init__(self, settings, metrics: Optional[CacheMetrics] = None,
                 clock: Callable[[], float] = time.time, redis_client=None):
        self.settings = settings
        self.metrics = metrics or CacheMetrics()
        self.memory_cache = BoundedLRUCache(
            max_items=settings.cache_max_items,
            max_memory_mb=settings.cache_max_memory_mb,
            clock=clock,
        )
        self.redis_client = redis_client
        self._redis_ready = False
        self._ever_connected = False
        self._maintenance_task: Optional[asyncio.Task] = None

        if self.redis_client is None and settings.redis_url:
            self.redis_client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )

    @property
    def redis_available(self) -> bool:
        return self.redis_client is not None and self._redis_ready

    def _mark_redis(self, ready: bool, reason: Optional[BaseException] = None):
        if ready and not self._redis_ready:
            if self._ever_connected:
                logger.info("Redis connection restored")
            else:
                logger.info("Redis cache connected")
            self._ever_connected = True
        elif not ready and self._redis_ready:
            logger.warning(f"Redis connection lost ({reason}), using memory cache")
        self._redis_ready = ready

    def _on_store_error(self, operation: str, key: str, error: BaseException):
        self.metrics.errors += 1
        logger.error(f"Redis {operation} failed for {key[:50]}: {error}")
        self._mark_redis(False, error)

    def _encode(self, key: str, value: Any) -> Optional[str]:
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            self.metrics.errors += 1
            logger.error(f"Cannot serialize value for {key[:50]}: {e}")
            return None

    def _decode(self, key: str, raw: str) -> Optional[Any]:
        try:
            return json.loads(raw)
        except ValueError as e:
            self.metrics.errors += 1
            logger.error(f"Corrupt cache entry {key[:50]}: {e}")
            return None

    async def connect(self) -> bool:
        """Initial connectivity check"""
        if self.redis_client is None:
            logger.info("No Redis URL configured, using memory cache")
            return False
        return await self.ping()

    async def ping(self) -> bool:
        if self.redis_client is None:
            return False
        try:
            await self.redis_client.ping()
        except STORE_ERRORS as e:
            if self._redis_ready:
                self._mark_redis(False, e)
            else:
                logger.debug(f"Redis still unavailable: {e}")
            return False

        self._mark_redis(True)
        return True

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if self.redis_available:
            try:
                raw = await self.redis_client.get(key)
                if raw is not None:
                    return self._decode(key, raw)
            except STORE_ERRORS as e:
                self._on_store_error("get", key, e)

        raw = await self.memory_cache.get(key)
        return self._decode(key, raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache; False when the value could not reach the primary store"""
        if ttl is None:
            ttl = self.settings.cache_ttl
        if ttl <= 0:
            # Already expired: drop any previous value instead of storing
            await self.delete(key)
            return True
        encoded = self._encode(key, value)
        if encoded is None:
            return False

        stored = True
        if self.redis_available:
            try:
                await self.redis_client.setex(key, ttl, encoded)
            except STORE_ERRORS as e:
                self._on_store_error("set", key, e)
                stored = False

        await self.memory_cache.set(key, encoded, ttl)
        return stored

    async def delete(self, key: str) -> bool:
        """Delete from cache"""
        deleted = False
        if self.redis_available:
            try:
                deleted = bool(await self.redis_client.delete(key))
            except STORE_ERRORS as e:
                self._on_store_error("delete", key, e)

        return await self.memory_cache.delete(key) or deleted

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        """Batch get; each key is decoded and falls back independently"""
        if not keys:
            return []

        raws: List[Optional[str]] = [None] * len(keys)
        if self.redis_available:
            try:
                raws = list(await self.redis_client.mget(list(keys)))
            except STORE_ERRORS as e:
                self._on_store_error("mget", ",".join(keys), e)

        results: List[Optional[Any]] = []
        for key, raw in zip(keys, raws):
            if raw is None:
                raw = await self.memory_cache.get(key)
            results.append(self._decode(key, raw) if raw is not None else None)
        return results

    async def mset(self, pairs: Sequence[Tuple[str, Any]], ttl: Optional[int] = None) -> bool:
        """Batch set through a pipeline; unencodable values skip only their own key"""
        if ttl is None:
            ttl = self.settings.cache_ttl
        if ttl <= 0:
            for key, _ in pairs:
                await self.delete(key)
            return True
        encoded_pairs = []
        ok = True
        for key, value in pairs:
            encoded = self._encode(key, value)
            if encoded is None:
                ok = False
                continue
            encoded_pairs.append((key, encoded))

        if encoded_pairs and self.redis_available:
            try:
                pipe = self.redis_client.pipeline(transaction=False)
                for key, encoded in encoded_pairs:
                    pipe.setex(key, ttl, encoded)
                await pipe.execute()
            except STORE_ERRORS as e:
                self._on_store_error("mset", ",".join(k for k, _ in encoded_pairs), e)
                ok = False

        for key, encoded in encoded_pairs:
            await self.memory_cache.set(key, encoded, ttl)
        return ok

    async def clear_pattern(self, pattern: str = "*") -> int:
        """Clear all keys matching pattern"""
        removed = 0
        if self.redis_available:
            try:
                cursor = 0
                while True:
                    cursor, keys = await self.redis_client.scan(cursor, match=pattern, count=500)
                    if keys:
                        removed += await self.redis_client.delete(*keys)
                    if cursor == 0:
                        break
            except STORE_ERRORS as e:
                self._on_store_error("scan", pattern, e)

        memory_removed = await self.memory_cache.delete_matching(pattern)
        return max(removed, memory_removed)

    async def info(self) -> Dict[str, Any]:
        """Store-level stats for the health endpoints"""
        info: Dict[str, Any] = {
            "type": "redis" if self.redis_available else "memory",
            "memory": self.memory_cache.get_stats(),
        }
        if self.redis_available:
            try:
                redis_info = await self.redis_client.info("memory")
                info["redis"] = {
                    "used_memory_human": redis_info.get("used_memory_human"),
                    "keys": await self.redis_client.dbsize(),
                }
            except STORE_ERRORS as e:
                self._on_store_error("info", "*", e)
        return info

    def start_maintenance(self):
        """Start the health/cleanup loop if not already running"""
        if self._maintenance_task is None or self._maintenance_task.done():
            self._maintenance_task = asyncio.create_task(self._periodic_maintenance())

    async def _periodic_maintenance(self):
        """Ping Redis and purge expired memory entries"""
        while True:
            await asyncio.sleep(self.settings.cache_health_interval)
            try:
                await self.ping()
                purged = await self.memory_cache.clear_expired()
                stats = self.memory_cache.get_stats()
                if purged:
                    logger.info(f"Memory cache purged {purged} expired entries: {stats}")
                else:
                    logger.debug(f"Memory cache maintenance completed: {stats}")
            except Exception as e:
                logger.error(f"Cache maintenance error: {e}")

    async def close(self):
        if self._maintenance_task:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None

        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
            except STORE_ERRORS as e:
                logger.warning(f"Error closing Redis connection: {e}")
