import asyncio
from datetime import date

import httpx
import pytest

from market_dashboard.clients.base import ProviderClient
from market_dashboard.clients.exchanges import BybitClient, OkxClient
from market_dashboard.clients.fred import FredClient
from market_dashboard.core.exceptions import (
    ProviderError,
    ProviderUnavailableError,
    RateLimitedError,
)
from market_dashboard.services.resolution import Resolution, ResolutionChain
from market_dashboard.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from market_dashboard.utils.rate_limiter import ProviderRateLimiter, RateLimitConfig, RateLimiterRegistry
from tests.helpers.fakes import bybit_handler


# ===========================
# Resolution chain
# ===========================

@pytest.mark.asyncio
async def test_chain_returns_first_hit_in_order():
    calls = []

    def strategy(name, result):
        async def run():
            calls.append(name)
            return result
        return name, run

    chain = ResolutionChain([
        strategy("cache", Resolution.miss("not cached")),
        strategy("golden", Resolution.hit({"v": 1}, "golden", tier="stale")),
        strategy("live", Resolution.hit({"v": 2}, "live")),
    ])
    result = await chain.run()

    assert result.ok
    assert result.value == {"v": 1}
    assert result.metadata == {"tier": "stale"}
    assert calls == ["cache", "golden"]


@pytest.mark.asyncio
async def test_hit_metadata_may_carry_its_own_source():
    hit = Resolution.hit({"v": 1}, "golden", source="api_success", value="ignored", tier="fresh")
    assert hit.source == "golden"
    assert hit.value == {"v": 1}
    assert hit.metadata == {"source": "api_success", "value": "ignored", "tier": "fresh"}


@pytest.mark.asyncio
async def test_chain_miss_keeps_last_error_and_reasons():
    error = ProviderError("fred", "HTTP 500")

    async def cache():
        return Resolution.miss("not cached")

    async def live():
        return Resolution.miss("live fetch failed", error=error)

    result = await ResolutionChain([("cache", cache), ("live", live)]).run()
    assert not result.ok
    assert result.error is error
    assert "cache: not cached" in result.reason
    assert "live: live fetch failed" in result.reason


# ===========================
# Circuit breaker
# ===========================

def test_circuit_opens_after_threshold_and_recovers(clock):
    breaker = CircuitBreaker("okx", CircuitBreakerConfig(failure_threshold=2, recovery_timeout=60), clock=clock)

    breaker.record_failure()
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()

    clock.advance(60)
    assert breaker.allow_request()
    assert breaker.state == CircuitState.HALF_OPEN
    # Only one trial call in half-open
    assert not breaker.allow_request()

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.get_status()["failureCount"] == 0


def test_half_open_failure_reopens(clock):
    breaker = CircuitBreaker("fred", CircuitBreakerConfig(failure_threshold=1, recovery_timeout=10), clock=clock)
    breaker.record_failure()
    clock.advance(10)
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert breaker.next_attempt_time == clock() + 10


def test_registry_uses_default_policy_and_resets(clock):
    registry = CircuitBreakerRegistry(
        {"bybit": {"failure_threshold": 4, "recovery_timeout": 180},
         "default": {"failure_threshold": 2, "recovery_timeout": 30}},
        clock=clock,
    )
    assert registry.get("bybit").config.failure_threshold == 4
    assert registry.get("polygon").config.failure_threshold == 2

    registry.get("polygon").record_failure()
    registry.get("polygon").record_failure()
    assert registry.get_status()["polygon"]["state"] == "open"
    assert registry.reset("polygon") is True
    assert registry.get_status()["polygon"]["state"] == "closed"
    assert registry.reset("unknown") is False


# ===========================
# Rate limiter
# ===========================

@pytest.mark.asyncio
async def test_limiter_bounds_concurrency():
    limiter = ProviderRateLimiter("coingecko", RateLimitConfig(reservoir=100, max_concurrent=2))
    active = 0
    peak = 0

    async def call():
        nonlocal active, peak
        async with limiter:
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(call() for _ in range(6)))
    assert peak == 2
    assert limiter.get_stats()["tokens"] == 94
    assert limiter.get_stats()["running"] == 0


def test_limiter_registry_builds_from_settings():
    registry = RateLimiterRegistry({"alpha_vantage": {"reservoir": 5, "refresh_interval": 60,
                                                      "max_concurrent": 1, "min_time": 12.0}})
    assert registry.get("alpha_vantage").config.min_time == 12.0
    assert registry.get("okx").config.reservoir == 60
    assert set(registry.get_stats()) == {"alpha_vantage", "okx"}


# ===========================
# Provider clients
# ===========================

def client_for(cls, handler, **kwargs):
    return cls("https://provider.test", 5, transport=httpx.MockTransport(handler), max_retries=0, **kwargs)


@pytest.mark.asyncio
async def test_client_maps_http_errors():
    client = client_for(ProviderClient, lambda request: httpx.Response(500))
    with pytest.raises(ProviderError) as excinfo:
        await client.get_json("/x")
    assert excinfo.value.status_code == 500
    assert not excinfo.value.retryable
    await client.aclose()


@pytest.mark.asyncio
async def test_client_rate_limit_is_retryable():
    client = client_for(ProviderClient, lambda request: httpx.Response(429))
    with pytest.raises(RateLimitedError) as excinfo:
        await client.get_json("/x")
    assert excinfo.value.retryable
    await client.aclose()


@pytest.mark.asyncio
async def test_client_connection_error():
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    client = client_for(ProviderClient, refuse)
    with pytest.raises(ProviderError) as excinfo:
        await client.get_json("/x")
    assert excinfo.value.retryable
    await client.aclose()


@pytest.mark.asyncio
async def test_client_skips_calls_while_circuit_open(clock):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(503)

    breaker = CircuitBreaker("provider", CircuitBreakerConfig(failure_threshold=1, recovery_timeout=60), clock=clock)
    client = client_for(ProviderClient, handler, breaker=breaker)

    with pytest.raises(ProviderError):
        await client.get_json("/x")
    with pytest.raises(ProviderUnavailableError):
        await client.get_json("/x")
    assert calls == ["/x"]
    await client.aclose()


@pytest.mark.asyncio
async def test_bybit_open_interest_and_funding():
    client = client_for(BybitClient, bybit_handler)

    oi = await client.open_interest("BTCUSDT")
    assert oi["oi_usd"] == 9e9
    assert oi["change_24h"] == pytest.approx(1.0)
    assert oi["change_7d"] == pytest.approx(10.0, abs=0.01)

    funding = await client.funding_rate("BTCUSDT")
    assert funding["funding_rate"] == 0.0001
    assert funding["mark_price"] == 116000.5
    assert funding["next_funding_time"].startswith("2025-10-09")
    await client.aclose()


@pytest.mark.asyncio
async def test_okx_rejects_error_codes():
    client = client_for(OkxClient, lambda request: httpx.Response(200, json={"code": "51001", "msg": "bad inst", "data": []}))
    with pytest.raises(ProviderError, match="51001"):
        await client.open_interest()
    await client.aclose()


@pytest.mark.asyncio
async def test_fred_drops_missing_values_and_orders_oldest_first(clock):
    def handler(request):
        assert request.url.params["sort_order"] == "desc"
        return httpx.Response(200, json={"observations": [
            {"date": "2025-10-08", "value": "3.55"},
            {"date": "2025-10-07", "value": "."},
            {"date": "2025-10-06", "value": "3.60"},
        ]})

    client = client_for(FredClient, handler, api_key="key")

    observations = await client.observations("DGS2", 10, date(2025, 10, 9))
    assert observations == [{"date": "2025-10-06", "yield": 3.6}, {"date": "2025-10-08", "yield": 3.55}]
    await client.aclose()


@pytest.mark.asyncio
async def test_fred_requires_api_key():
    client = client_for(FredClient, lambda request: httpx.Response(200, json={}))

    with pytest.raises(ProviderError, match="API key"):
        await client.observations("DGS2", 10, date(2025, 10, 9))
    await client.aclose()
