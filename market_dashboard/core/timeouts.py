"""
Centralized timeout configuration for third-party market data providers.
A provider that exceeds its timeout is treated as failed for that request.
"""

import os

class TIMEOUTS:
    """Centralized timeout values in seconds"""

    # Exchange REST APIs (Bybit, OKX, Binance)
    exchange = int(os.getenv("TIMEOUT_EXCHANGE", "5"))

    # FRED treasury series
    fred = int(os.getenv("TIMEOUT_FRED", "10"))

    # CoinGecko price history
    coingecko = int(os.getenv("TIMEOUT_COINGECKO", "15"))

    # ETF daily bars (Polygon, Alpha Vantage)
    etf = int(os.getenv("TIMEOUT_ETF", "15"))
