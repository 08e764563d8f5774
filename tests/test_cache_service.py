import pytest

from market_dashboard.core.exceptions import ProviderError
from market_dashboard.models.golden import GoldenTier
from market_dashboard.services.cache_service import CacheTier, TieredCacheService
from market_dashboard.utils.cache import KeyValueStore
from tests.helpers.fakes import FakeRedis


class CountingCompute:
    def __init__(self, value=None, error=None):
        self.calls = 0
        self.value = value
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value


@pytest.mark.asyncio
async def test_realtime_tier_expires_after_sixty_seconds(cache, clock):
    await cache.set_tiered("x", {"v": 1}, "realtime")

    clock.advance(30)
    assert await cache.get("x") == {"v": 1}

    clock.advance(31)
    assert await cache.get("x") is None


def test_ttl_for_tiers_and_explicit_values(cache, settings):
    assert cache.ttl_for(CacheTier.REALTIME) == settings.cache_ttl_realtime
    assert cache.ttl_for("historical") == settings.cache_ttl_historical
    assert cache.ttl_for(42) == 42
    assert cache.ttl_for(None) == settings.cache_ttl
    assert cache.ttl_for("bogus") == settings.cache_ttl_frequent


@pytest.mark.asyncio
async def test_tier_ttls_come_from_settings(tmp_path, clock):
    from tests.helpers.fakes import make_settings

    settings = make_settings(tmp_path, cache_ttl_realtime=5)
    cache = TieredCacheService(KeyValueStore(settings, clock=clock), settings)
    await cache.set_realtime("x", 1)
    clock.advance(6)
    assert await cache.get("x") is None


@pytest.mark.asyncio
async def test_get_or_fetch_computes_once(cache, clock):
    compute = CountingCompute(value={"price": 100})

    first = await cache.get_or_fetch("k", compute, CacheTier.FREQUENT)
    clock.advance(60)
    second = await cache.get_or_fetch("k", compute, CacheTier.FREQUENT)

    assert first == second == {"price": 100}
    assert compute.calls == 1


@pytest.mark.asyncio
async def test_get_or_fetch_propagates_compute_errors(cache):
    compute = CountingCompute(error=ProviderError("bybit", "down"))
    with pytest.raises(ProviderError):
        await cache.get_or_fetch("k", compute)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_metrics_count_hits_and_misses(cache):
    await cache.get("missing")
    await cache.set_frequent("k", 1)
    await cache.get("k")
    await cache.mget(["k", "other"])

    metrics = cache.get_metrics()
    assert metrics["hits"] == 2
    assert metrics["misses"] == 2
    assert metrics["redisAvailable"] is False

    cache.reset_metrics()
    assert cache.get_metrics()["total"] == 0


@pytest.mark.asyncio
async def test_warm_cache_groups_by_ttl(settings, clock):
    redis = FakeRedis()
    store = KeyValueStore(settings, clock=clock, redis_client=redis)
    await store.connect()
    cache = TieredCacheService(store, settings)

    assert await cache.warm_cache({
        "a": (1, CacheTier.REALTIME),
        "b": (2, CacheTier.STABLE),
        "c": (3, 99),
    })
    assert redis.ttls == {"a": settings.cache_ttl_realtime, "b": settings.cache_ttl_stable, "c": 99}


@pytest.mark.asyncio
async def test_fallback_prefers_cache(cache):
    await cache.set_frequent("k", {"v": "cached"})
    compute = CountingCompute(value={"v": "live"})

    resolution = await cache.get_or_fetch_with_fallback("k", compute, data_type="dt")
    assert resolution.source == "cache"
    assert resolution.value == {"v": "cached"}
    assert compute.calls == 0


@pytest.mark.asyncio
async def test_fallback_uses_fresh_golden_before_live(cache, golden, clock):
    await golden.store("dt", {"v": "golden"})
    compute = CountingCompute(value={"v": "live"})

    resolution = await cache.get_or_fetch_with_fallback("k", compute, data_type="dt")
    assert resolution.source == "golden"
    assert resolution.metadata["tier"] == "fresh"
    assert compute.calls == 0

    # Promoted into the cache for the realtime window only
    assert await cache.get("k") == {"v": "golden"}
    clock.advance(61)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_fallback_live_result_is_written_through(cache, golden):
    compute = CountingCompute(value={"v": "live"})

    resolution = await cache.get_or_fetch_with_fallback("k", compute, data_type="dt")
    assert resolution.source == "live"
    assert await cache.get("k") == {"v": "live"}

    record = await golden.retrieve("dt", [GoldenTier.FRESH])
    assert record["data"] == {"v": "live"}


@pytest.mark.asyncio
async def test_fallback_reaches_archived_golden_when_live_fails(cache, golden, clock):
    await golden.store("dt", {"v": "old"})
    clock.advance(301)
    await golden.retrieve("dt")  # fresh -> stale
    clock.advance(3601)

    compute = CountingCompute(error=ProviderError("fred", "HTTP 500"))
    resolution = await cache.get_or_fetch_with_fallback("k", compute, data_type="dt")

    assert compute.calls == 1
    assert resolution.source == "golden"
    assert resolution.metadata["tier"] == "archived"
    assert resolution.value == {"v": "old"}


@pytest.mark.asyncio
async def test_fallback_raises_compute_error_when_everything_misses(cache):
    error = ProviderError("okx", "HTTP 503")
    with pytest.raises(ProviderError) as excinfo:
        await cache.get_or_fetch_with_fallback("k", CountingCompute(error=error), data_type="dt")
    assert excinfo.value is error


@pytest.mark.asyncio
async def test_health_check_reports_memory_mode(cache):
    health = await cache.health_check()
    assert health["status"] == "degraded"
    assert health["type"] == "memory"

    stats = await cache.get_comprehensive_stats()
    assert stats["tiers"]["realtime"] == 60
    assert stats["golden"]["totalEntries"] == 0


@pytest.mark.asyncio
async def test_stale_golden_hit_is_not_promoted(cache, golden, clock):
    await golden.store("dt", {"v": "golden"})
    clock.advance(301)

    resolution = await cache.get_or_fetch_with_fallback("k", CountingCompute(value={"v": "live"}), data_type="dt")
    assert resolution.source == "golden"
    assert resolution.metadata["tier"] == "stale"
    assert resolution.metadata["source"] == "api_success"
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_invalid_golden_timestamp_does_not_block_live(cache, golden):
    assert await golden.import_dataset({"dataset": {"dt": {
        "dataType": "dt", "data": {"v": "bad"}, "timestamp": "2025-10-09T08:00:00+00:00",
        "tier": "fresh", "expiresAt": "soon",
    }}})
    compute = CountingCompute(value={"v": "live"})

    resolution = await cache.get_or_fetch_with_fallback("k", compute, data_type="dt")
    assert resolution.source == "live"
    assert compute.calls == 1


@pytest.mark.asyncio
async def test_zero_ttl_is_not_replaced_by_default(cache):
    await cache.set_frequent("k", 1)
    await cache.set("k", 2, ttl=0)
    assert await cache.get("k") is None
