from typing import Iterable, Optional

class CacheKeyGenerator:
    """
    Deterministic cache keys for market data.

    Keys combine a domain prefix, the request parameters and, for data that
    changes slowly, a coarse time bucket so identical requests inside the same
    bucket share one entry (also across restarts when Redis is shared).
    """

    @staticmethod
    def time_bucket(now: float, hours: int) -> int:
        """Index of the `hours`-wide bucket containing epoch seconds `now`"""
        return int(now // (hours * 3600))

    @staticmethod
    def leverage(bucket: int, asset: str = "btc") -> str:
        return f"market:leverage:{asset.lower()}_{bucket}"

    @staticmethod
    def funding(exchange: str, bucket: int) -> str:
        return f"market:funding:{exchange.lower()}_{bucket}"

    @staticmethod
    def etf_flows(date_range: str, etf: Optional[str], bucket: int) -> str:
        return f"market:etf:{date_range}_{(etf or 'all').upper()}_{bucket}"

    @staticmethod
    def liquidity(timeframe: str, bucket: int) -> str:
        return f"market:liquidity:us2y_{timeframe}_{bucket}"

    @staticmethod
    def treasury(series_id: str, timeframe: str) -> str:
        return f"treasury_{series_id.upper()}_{timeframe}"

    @staticmethod
    def rsi(symbol: str, period: int, timeframe: str) -> str:
        return f"rsi_{symbol.upper()}_{period}_{timeframe}"

    @staticmethod
    def rsi_bulk(symbols: Iterable[str], periods: Iterable[int], timeframe: str) -> str:
        return f"rsi_bulk_{'-'.join(s.upper() for s in symbols)}_{'-'.join(str(p) for p in periods)}_{timeframe}"

    @staticmethod
    def rsi_summary(symbols: Iterable[str]) -> str:
        return f"rsi_dashboard_summary_{'-'.join(s.upper() for s in symbols)}"
