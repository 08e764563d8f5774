# market_dashboard/services/cache_service.py
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from market_dashboard.models.golden import GoldenTier
from market_dashboard.services.golden_dataset import GoldenDatasetService
from market_dashboard.services.resolution import Resolution, ResolutionChain
from market_dashboard.utils.cache import KeyValueStore

logger = logging.getLogger(__name__)


class CacheTier(str, Enum):
    """Freshness buckets, each mapped to a TTL from settings"""
    REALTIME = "realtime"
    FREQUENT = "frequent"
    STABLE = "stable"
    HISTORICAL = "historical"


TtlOrTier = Union[int, CacheTier, str]
Compute = Callable[[], Awaitable[Any]]

FRESH_GOLDEN_TIERS = (GoldenTier.FRESH, GoldenTier.STALE)
WIDE_GOLDEN_TIERS = (GoldenTier.ARCHIVED, GoldenTier.FALLBACK)


class TieredCacheService:
    """Cache service with tiered TTLs and golden dataset fallback

    Lookup order for get_or_fetch_with_fallback:
    1. Cache (Redis, or the memory map when Redis is down)
    2. Golden dataset, fresh or stale entries (promoted back into the cache)
    3. Live compute, written through to cache and golden dataset
    4. Golden dataset, archived or fallback entries
    """

    def __init__(self, store: KeyValueStore, settings, golden: Optional[GoldenDatasetService] = None):
        self.store = store
        self.settings = settings
        self.golden = golden
        self.metrics = store.metrics
        self.tiers: Dict[CacheTier, int] = {
            CacheTier.REALTIME: settings.cache_ttl_realtime,
            CacheTier.FREQUENT: settings.cache_ttl_frequent,
            CacheTier.STABLE: settings.cache_ttl_stable,
            CacheTier.HISTORICAL: settings.cache_ttl_historical,
        }

    def ttl_for(self, ttl_or_tier: Optional[TtlOrTier]) -> int:
        """Resolve an explicit TTL or a tier name; unknown tiers use the frequent TTL"""
        if ttl_or_tier is None:
            return self.settings.cache_ttl
        if isinstance(ttl_or_tier, int) and not isinstance(ttl_or_tier, bool):
            return ttl_or_tier
        try:
            return self.tiers[CacheTier(ttl_or_tier)]
        except ValueError:
            logger.warning(f"Unknown cache tier {ttl_or_tier!r}, using frequent")
            return self.tiers[CacheTier.FREQUENT]

    # ===========================
    # Basic operations
    # ===========================

    async def get(self, key: str) -> Optional[Any]:
        value = await self.store.get(key)
        if value is None:
            self.metrics.misses += 1
            logger.debug(f"Cache miss: {key[:60]}")
        else:
            self.metrics.hits += 1
            logger.debug(f"Cache hit: {key[:60]}")
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return await self.store.set(key, value, ttl)

    async def set_tiered(self, key: str, value: Any, tier: TtlOrTier = CacheTier.FREQUENT) -> bool:
        return await self.set(key, value, self.ttl_for(tier))

    async def set_realtime(self, key: str, value: Any) -> bool:
        return await self.set_tiered(key, value, CacheTier.REALTIME)

    async def set_frequent(self, key: str, value: Any) -> bool:
        return await self.set_tiered(key, value, CacheTier.FREQUENT)

    async def set_stable(self, key: str, value: Any) -> bool:
        return await self.set_tiered(key, value, CacheTier.STABLE)

    async def set_historical(self, key: str, value: Any) -> bool:
        return await self.set_tiered(key, value, CacheTier.HISTORICAL)

    async def delete(self, key: str) -> bool:
        return await self.store.delete(key)

    async def flush(self, pattern: str = "*") -> int:
        removed = await self.store.clear_pattern(pattern)
        logger.info(f"Flushed {removed} cache keys matching {pattern}")
        return removed

    # ===========================
    # Batch operations
    # ===========================

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        values = await self.store.mget(keys)
        for value in values:
            if value is None:
                self.metrics.misses += 1
            else:
                self.metrics.hits += 1
        return values

    async def mset(self, pairs: Iterable[Tuple[str, Any]], ttl_or_tier: TtlOrTier = CacheTier.FREQUENT) -> bool:
        return await self.store.mset(list(pairs), self.ttl_for(ttl_or_tier))

    async def warm_cache(self, entries: Dict[str, Tuple[Any, TtlOrTier]]) -> bool:
        """Pre-populate keys, grouped into one pipelined write per TTL"""
        by_ttl: Dict[int, List[Tuple[str, Any]]] = {}
        for key, (value, tier) in entries.items():
            by_ttl.setdefault(self.ttl_for(tier), []).append((key, value))

        ok = True
        for ttl, pairs in by_ttl.items():
            ok = await self.store.mset(pairs, ttl) and ok
        logger.info(f"Cache warmed with {len(entries)} entries")
        return ok

    # ===========================
    # Cache-aside
    # ===========================

    async def get_or_fetch(self, key: str, compute: Compute, ttl_or_tier: TtlOrTier = CacheTier.FREQUENT) -> Any:
        """Cached value, or compute and store it. Errors from compute propagate."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await compute()
        if value is not None:
            await self.set(key, value, self.ttl_for(ttl_or_tier))
        return value

    async def get_or_fetch_with_fallback(
        self,
        key: str,
        compute: Compute,
        data_type: str,
        ttl_or_tier: TtlOrTier = CacheTier.FREQUENT,
    ) -> Resolution:
        """Layered lookup; raises the compute error only when every layer misses"""
        ttl = self.ttl_for(ttl_or_tier)

        async def from_cache() -> Resolution:
            value = await self.get(key)
            if value is None:
                return Resolution.miss("not cached")
            return Resolution.hit(value, "cache")

        async def from_golden(tiers) -> Resolution:
            if self.golden is None:
                return Resolution.miss("golden dataset disabled")
            record = await self.golden.retrieve(data_type, tiers)
            if record is None:
                return Resolution.miss(f"no golden {'/'.join(t.value for t in tiers)} entry")
            tier = record["metadata"]["tier"]
            if tier == GoldenTier.FRESH.value:
                # Promote briefly so the next request skips the disk read
                await self.set(key, record["data"], self.tiers[CacheTier.REALTIME])
            logger.info(f"Golden hit for {data_type} (tier {tier})")
            return Resolution.hit(record["data"], "golden", **record["metadata"])

        async def from_live() -> Resolution:
            try:
                value = await compute()
            except Exception as e:
                logger.warning(f"Live fetch failed for {key[:60]}: {e}")
                return Resolution.miss("live fetch failed", error=e)
            if value is None:
                return Resolution.miss("live fetch returned nothing")

            await self.set(key, value, ttl)
            if self.golden is not None:
                await self.golden.store(data_type, value)
            return Resolution.hit(value, "live")

        chain = ResolutionChain([
            ("cache", from_cache),
            ("golden", lambda: from_golden(FRESH_GOLDEN_TIERS)),
            ("live", from_live),
            ("golden_archive", lambda: from_golden(WIDE_GOLDEN_TIERS)),
        ], label=key[:60])

        resolution = await chain.run()
        if not resolution.ok:
            if resolution.error is not None:
                raise resolution.error
            raise LookupError(f"No data for {key}: {resolution.reason}")
        return resolution

    # ===========================
    # Metrics and health
    # ===========================

    def get_metrics(self) -> Dict[str, Any]:
        metrics = self.metrics.snapshot()
        metrics["memoryEntries"] = len(self.store.memory_cache)
        metrics["redisAvailable"] = self.store.redis_available
        return metrics

    def reset_metrics(self):
        self.metrics.reset()
        logger.info("Cache metrics reset")

    async def health_check(self) -> Dict[str, Any]:
        reachable = await self.store.ping()
        return {
            "status": "healthy" if reachable else "degraded",
            "type": "redis" if reachable else "memory",
            "metrics": self.get_metrics(),
        }

    async def get_comprehensive_stats(self) -> Dict[str, Any]:
        """Cache and golden dataset statistics for the ops endpoints"""
        stats: Dict[str, Any] = {
            "cache": await self.store.info(),
            "metrics": self.get_metrics(),
            "tiers": {tier.value: ttl for tier, ttl in self.tiers.items()},
        }
        if self.golden is not None:
            stats["golden"] = await self.golden.get_stats()
        return stats
