"""
Market Dashboard API
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from market_dashboard.api.dependencies import ServiceContainer, build_container
from market_dashboard.api.errors import register_error_handlers
from market_dashboard.api.routes import (
    health,
    market,
    rsi
)
from market_dashboard.core.config import Settings, get_settings
from market_dashboard.services.rsi import SUMMARY_PERIOD, SUMMARY_TIMEFRAME

logger = logging.getLogger(__name__)

WARM_SYMBOLS = ["BTC", "ETH", "SOL"]


# ===========================
# Application Lifespan
# ===========================

async def periodic_golden_cleanup(container: ServiceContainer):
    """Walk the golden dataset down its tier ladder on an interval"""
    while True:
        try:
            await asyncio.sleep(container.settings.golden_cleanup_interval)
            await container.golden.cleanup()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Golden dataset cleanup failed: {e}")

async def warm_rsi_cache(container: ServiceContainer):
    try:
        warmed = await container.rsi.warm_cache(WARM_SYMBOLS, [SUMMARY_PERIOD], SUMMARY_TIMEFRAME)
        logger.info(f"RSI cache warmed with {warmed} entries")
    except Exception as e:
        logger.error(f"RSI cache warm-up failed: {e}")

def create_app(container: Optional[ServiceContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app; a prebuilt container (e.g. with fake transports) can be injected"""
    settings = container.settings if container is not None else (settings or get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info(f"Starting {settings.app_name} {settings.version}...")
        services = container or build_container(settings)
        app.state.container = services
        await services.startup()

        cleanup_task = asyncio.create_task(periodic_golden_cleanup(services))
        logger.info(f"Started golden dataset cleanup ({settings.golden_cleanup_interval}s intervals)")

        warm_task = None
        if settings.warm_rsi_cache:
            warm_task = asyncio.create_task(warm_rsi_cache(services))

        yield

        # Shutdown
        cleanup_task.cancel()
        if warm_task is not None:
            warm_task.cancel()
        await asyncio.gather(cleanup_task, *([warm_task] if warm_task else []), return_exceptions=True)

        logger.info("Closing provider clients and cache...")
        await services.aclose()

    app = FastAPI(
        title=settings.app_name,
        description="Crypto and macro market data with layered caching and fallbacks",
        version=settings.version,
        lifespan=lifespan
    )

    # CORS middleware for the dashboard frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(market.router, prefix=settings.api_prefix, tags=["market"])
    app.include_router(rsi.router, prefix=settings.api_prefix, tags=["rsi"])

    return app


# ===========================
# Application Setup
# ===========================

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = create_app()


# ===========================
# Run the application
# ===========================

if __name__ == "__main__":
    uvicorn.run(
        "market_dashboard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info"
    )
