"""
Shared shape of the market data orchestrators.

An orchestrator builds a deterministic cache key, asks the tiered cache for a
layered lookup (cache, golden, live, golden archive) and, when all of that
fails, falls back to synthetic data so the dashboard always gets a payload.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from market_dashboard.core.exceptions import AllProvidersFailedError
from market_dashboard.models.golden import GoldenTier
from market_dashboard.models.responses import ApiResponse, ResponseMetadata
from market_dashboard.services.cache_service import CacheTier, TieredCacheService, TtlOrTier
from market_dashboard.services.resolution import Resolution, ResolutionChain
from market_dashboard.services.synthetic import SyntheticMarketData
from market_dashboard.utils.cache_utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

SYNTHETIC_WARNING = "Live providers unavailable, showing synthetic data"
ARCHIVE_WARNING = "Live providers unavailable, showing archived data from {timestamp}"
PARTIAL_WARNING = "Some live data unavailable, results include synthetic or archived data"


class MarketOrchestrator:
    """Base class for the per-domain orchestrators"""

    domain = "market"

    def __init__(self, cache: TieredCacheService, synthetic: SyntheticMarketData, settings,
                 clock: Callable[[], float] = time.time):
        self.cache = cache
        self.synthetic = synthetic
        self.settings = settings
        self.clock = clock

    def now_iso(self) -> str:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat()

    def today(self):
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).date()

    def time_bucket(self, hours: int) -> int:
        return CacheKeyGenerator.time_bucket(self.clock(), hours)

    async def gather_best_effort(self, calls: Dict[str, Awaitable[Any]]) -> Dict[str, Any]:
        """Run provider calls concurrently; keep whatever succeeded.

        Raises AllProvidersFailedError only when every call failed.
        """
        names = list(calls)
        results = await asyncio.gather(*calls.values(), return_exceptions=True)

        succeeded: Dict[str, Any] = {}
        failures: Dict[str, BaseException] = {}
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                failures[name] = result
                logger.warning(f"{self.domain} provider {name} failed: {result}")
            else:
                succeeded[name] = result

        if not succeeded:
            raise AllProvidersFailedError(self.domain, failures)
        if failures:
            logger.info(f"{self.domain}: partial data from {', '.join(succeeded)} ({len(failures)} failed)")
        return succeeded

    async def resolve(
        self,
        *,
        cache_key: str,
        data_type: str,
        model: Type[BaseModel],
        compute: Callable[[], Awaitable[BaseModel]],
        synthesize: Callable[[], Awaitable[BaseModel]],
        ttl_or_tier: TtlOrTier = CacheTier.FREQUENT,
    ) -> ApiResponse:
        """Layered lookup with synthetic data as the last strategy"""

        async def live_payload():
            payload = await compute()
            return payload.model_dump(mode="json", by_alias=True)

        async def layered() -> Resolution:
            try:
                resolution = await self.cache.get_or_fetch_with_fallback(
                    cache_key, live_payload, data_type=data_type, ttl_or_tier=ttl_or_tier,
                )
            except Exception as e:
                return Resolution.miss(f"all layers failed: {e}", error=e)

            try:
                payload = model.model_validate(resolution.value)
            except ValidationError as e:
                logger.error(f"Discarding malformed {data_type} payload from {resolution.source}: {e.error_count()} errors")
                await self.cache.delete(cache_key)
                return Resolution.miss("malformed payload", error=e)
            return Resolution.hit(payload, resolution.source, **resolution.metadata)

        async def synthetic() -> Resolution:
            payload = await synthesize()
            # Short TTL so providers are retried soon
            await self.cache.set_tiered(cache_key, payload.model_dump(mode="json", by_alias=True), CacheTier.REALTIME)
            logger.warning(f"Serving synthetic {data_type} data")
            return Resolution.hit(payload, "synthetic")

        resolution = await ResolutionChain(
            [("layered", layered), ("synthetic", synthetic)], label=data_type,
        ).run()
        if not resolution.ok:
            raise resolution.error or LookupError(resolution.reason)
        return self.envelope(resolution, cache_key)

    def envelope(self, resolution: Resolution, cache_key: Optional[str]) -> ApiResponse:
        payload = resolution.value
        data_source = payload.metadata.data_source
        golden_tier = resolution.metadata.get("tier")
        # Aggregates list the parts that came from older golden entries
        stale_parts = getattr(payload, "stale_parts", None) or []

        fresh = resolution.source in ("cache", "live", "aggregate") or golden_tier == GoldenTier.FRESH.value
        warning = None
        if data_source == "synthetic":
            warning = SYNTHETIC_WARNING
            fresh = False
        elif golden_tier in (GoldenTier.ARCHIVED.value, GoldenTier.FALLBACK.value):
            warning = ARCHIVE_WARNING.format(timestamp=resolution.metadata.get("timestamp"))
        elif data_source == "mixed" or stale_parts:
            warning = PARTIAL_WARNING
            fresh = False

        return ApiResponse(
            data=payload,
            metadata=ResponseMetadata(
                data_source=data_source,
                served_from=resolution.source,
                cache_key=cache_key,
                fresh=fresh,
                golden_tier=golden_tier,
                age_minutes=resolution.metadata.get("age"),
                resolved_at=self.now_iso(),
            ),
            warning=warning,
        )
