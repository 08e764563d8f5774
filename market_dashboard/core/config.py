from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Dict, List, Optional

class Settings(BaseSettings):
    """Application settings using Pydantic BaseSettings for validation"""

    # Application
    app_name: str = "Market Dashboard API"
    version: str = "2.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Primary cache (Redis), memory map is used when unset or unreachable
    redis_url: Optional[str] = None
    cache_ttl: int = 300  # 5 minutes
    cache_max_items: int = 5000
    cache_max_memory_mb: int = 200
    cache_health_interval: int = 30

    # Cache tiers
    cache_ttl_realtime: int = 60
    cache_ttl_frequent: int = 1800
    cache_ttl_stable: int = 14400
    cache_ttl_historical: int = 86400

    # Per-domain TTL policies and key time buckets
    leverage_ttl: int = 10800
    leverage_bucket_hours: int = 3
    liquidity_ttl: int = 72000
    liquidity_bucket_hours: int = 20
    etf_flows_ttl: int = 14400
    etf_flows_bucket_hours: int = 4
    funding_bucket_hours: int = 1

    # Golden dataset
    data_dir: str = "data"
    golden_ttl_fresh: int = 300
    golden_ttl_stale: int = 3600
    golden_ttl_archived: int = 86400
    golden_ttl_fallback: int = 604800
    golden_cleanup_interval: int = 3600

    # Provider credentials
    fred_api_key: Optional[str] = None
    polygon_api_key: Optional[str] = None
    alpha_vantage_api_key: Optional[str] = None
    coingecko_api_key: Optional[str] = None

    # Provider endpoints
    bybit_base_url: str = "https://api.bybit.com"
    okx_base_url: str = "https://www.okx.com"
    binance_base_url: str = "https://api.binance.com"
    binance_futures_base_url: str = "https://fapi.binance.com"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    fred_base_url: str = "https://api.stlouisfed.org/fred"
    polygon_base_url: str = "https://api.polygon.io"
    alpha_vantage_base_url: str = "https://www.alphavantage.co"

    # Provider throttling: reservoir per refresh window, concurrency, min spacing (seconds)
    provider_rate_limits: Dict[str, Dict[str, float]] = {
        "coingecko": {"reservoir": 45, "refresh_interval": 60, "max_concurrent": 1, "min_time": 1.4},
        "alpha_vantage": {"reservoir": 5, "refresh_interval": 60, "max_concurrent": 1, "min_time": 12.0},
        "binance": {"reservoir": 1200, "refresh_interval": 60, "max_concurrent": 5, "min_time": 0.1},
        "polygon": {"reservoir": 5, "refresh_interval": 60, "max_concurrent": 1, "min_time": 12.0},
        "bybit": {"reservoir": 120, "refresh_interval": 60, "max_concurrent": 5, "min_time": 0.1},
        "okx": {"reservoir": 120, "refresh_interval": 60, "max_concurrent": 5, "min_time": 0.1},
        "fred": {"reservoir": 120, "refresh_interval": 60, "max_concurrent": 2, "min_time": 0.5},
    }
    provider_circuits: Dict[str, Dict[str, float]] = {
        "coingecko": {"failure_threshold": 3, "recovery_timeout": 300},
        "alpha_vantage": {"failure_threshold": 2, "recovery_timeout": 600},
        "binance": {"failure_threshold": 5, "recovery_timeout": 60},
        "bybit": {"failure_threshold": 4, "recovery_timeout": 180},
        "okx": {"failure_threshold": 4, "recovery_timeout": 180},
        "default": {"failure_threshold": 3, "recovery_timeout": 120},
    }
    provider_max_retries: int = 2

    # Leverage model
    btc_market_cap_billions: float = 1900.0
    oi_coverage_share: float = 0.6

    # Synthetic data (seed makes fallback payloads reproducible)
    synthetic_seed: Optional[int] = None

    # Startup
    warm_rsi_cache: bool = False

    # API settings
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]
    api_prefix: str = "/api"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

@lru_cache()
def get_settings() -> Settings:
    return Settings()
