"""
HTTP clients for third-party market data providers
"""

from .base import ProviderClient
from .exchanges import BybitClient, OkxClient, BinanceFuturesClient
from .prices import CoinGeckoClient, BinancePriceClient
from .fred import FredClient
from .etf import PolygonClient, AlphaVantageClient

__all__ = [
    'ProviderClient',

    # Derivatives
    'BybitClient',
    'OkxClient',
    'BinanceFuturesClient',

    # Price history
    'CoinGeckoClient',
    'BinancePriceClient',

    # Macro and ETFs
    'FredClient',
    'PolygonClient',
    'AlphaVantageClient',
]
