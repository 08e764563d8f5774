"""
Dependency injection for FastAPI routes.

The ServiceContainer is the composition root: it is built once per app in the
lifespan and stored on app.state, routes pull services out of it.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Callable, List, Optional

import httpx
from fastapi import Depends, Request

from market_dashboard.clients import (
    AlphaVantageClient,
    BinanceFuturesClient,
    BinancePriceClient,
    BybitClient,
    CoinGeckoClient,
    FredClient,
    OkxClient,
    PolygonClient,
    ProviderClient,
)
from market_dashboard.core.config import Settings
from market_dashboard.core.timeouts import TIMEOUTS
from market_dashboard.services.cache_service import TieredCacheService
from market_dashboard.services.etf_flows import EtfFlowsOrchestrator
from market_dashboard.services.funding import FundingOrchestrator
from market_dashboard.services.golden_dataset import GoldenDatasetService
from market_dashboard.services.leverage import LeverageOrchestrator
from market_dashboard.services.liquidity import LiquidityOrchestrator
from market_dashboard.services.rsi import RsiOrchestrator
from market_dashboard.services.synthetic import SyntheticMarketData
from market_dashboard.utils.cache import KeyValueStore
from market_dashboard.utils.circuit_breaker import CircuitBreakerRegistry
from market_dashboard.utils.rate_limiter import RateLimiterRegistry

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: KeyValueStore
    golden: GoldenDatasetService
    cache: TieredCacheService
    synthetic: SyntheticMarketData
    limiters: RateLimiterRegistry
    breakers: CircuitBreakerRegistry
    leverage: LeverageOrchestrator
    funding: FundingOrchestrator
    etf_flows: EtfFlowsOrchestrator
    liquidity: LiquidityOrchestrator
    rsi: RsiOrchestrator
    clients: List[ProviderClient] = field(default_factory=list)
    clock: Callable[[], float] = time.time

    def now_iso(self) -> str:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat()

    async def startup(self):
        """Connect the store, start its maintenance loop and load the golden dataset"""
        await self.store.connect()
        self.store.start_maintenance()
        await self.golden.initialize()

    async def aclose(self):
        for client in self.clients:
            try:
                await client.aclose()
            except httpx.HTTPError as e:
                logger.warning(f"Error closing {client.name} client: {e}")
        await self.store.close()


def build_container(settings: Settings, clock: Callable[[], float] = time.time,
                    transport: Optional[httpx.AsyncBaseTransport] = None,
                    redis_client=None) -> ServiceContainer:
    """Wire every service from settings; `transport` and `redis_client` are injectable for tests"""
    store = KeyValueStore(settings, clock=clock, redis_client=redis_client)
    golden = GoldenDatasetService(settings, clock=clock)
    cache = TieredCacheService(store, settings, golden=golden)
    synthetic = SyntheticMarketData(seed=settings.synthetic_seed, clock=clock)
    limiters = RateLimiterRegistry(settings.provider_rate_limits)
    breakers = CircuitBreakerRegistry(settings.provider_circuits, clock=clock)

    def client(cls, base_url, timeout, **kwargs):
        return cls(
            base_url,
            timeout,
            limiter=limiters.get(cls.name),
            breaker=breakers.get(cls.name),
            max_retries=settings.provider_max_retries,
            transport=transport,
            **kwargs,
        )

    coingecko_headers = {"x-cg-demo-api-key": settings.coingecko_api_key} if settings.coingecko_api_key else None

    bybit = client(BybitClient, settings.bybit_base_url, TIMEOUTS.exchange)
    okx = client(OkxClient, settings.okx_base_url, TIMEOUTS.exchange)
    binance_futures = client(BinanceFuturesClient, settings.binance_futures_base_url, TIMEOUTS.exchange)
    binance_prices = client(BinancePriceClient, settings.binance_base_url, TIMEOUTS.exchange)
    coingecko = client(CoinGeckoClient, settings.coingecko_base_url, TIMEOUTS.coingecko, headers=coingecko_headers)
    fred = client(FredClient, settings.fred_base_url, TIMEOUTS.fred, api_key=settings.fred_api_key)
    polygon = client(PolygonClient, settings.polygon_base_url, TIMEOUTS.etf, api_key=settings.polygon_api_key)
    alpha_vantage = client(AlphaVantageClient, settings.alpha_vantage_base_url, TIMEOUTS.etf,
                           api_key=settings.alpha_vantage_api_key)

    shared = dict(cache=cache, synthetic=synthetic, settings=settings, clock=clock)
    return ServiceContainer(
        settings=settings,
        store=store,
        golden=golden,
        cache=cache,
        synthetic=synthetic,
        limiters=limiters,
        breakers=breakers,
        leverage=LeverageOrchestrator(bybit=bybit, okx=okx, **shared),
        funding=FundingOrchestrator(binance=binance_futures, bybit=bybit, okx=okx, **shared),
        etf_flows=EtfFlowsOrchestrator(polygon=polygon, alpha_vantage=alpha_vantage, **shared),
        liquidity=LiquidityOrchestrator(fred=fred, **shared),
        rsi=RsiOrchestrator(coingecko=coingecko, binance=binance_prices, **shared),
        clients=[bybit, okx, binance_futures, binance_prices, coingecko, fred, polygon, alpha_vantage],
        clock=clock,
    )


# ===========================
# Dependency injection functions
# ===========================

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container

Container = Annotated[ServiceContainer, Depends(get_container)]

def get_cache_service(container: Container) -> TieredCacheService:
    return container.cache

def get_golden_dataset(container: Container) -> GoldenDatasetService:
    return container.golden

def get_leverage(container: Container) -> LeverageOrchestrator:
    return container.leverage

def get_funding(container: Container) -> FundingOrchestrator:
    return container.funding

def get_etf_flows(container: Container) -> EtfFlowsOrchestrator:
    return container.etf_flows

def get_liquidity(container: Container) -> LiquidityOrchestrator:
    return container.liquidity

def get_rsi(container: Container) -> RsiOrchestrator:
    return container.rsi
