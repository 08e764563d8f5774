"""
Synthetic market data, the last resolution strategy.

Methods mirror the provider clients (same arguments, same record shapes) so
orchestrators can run their usual derivation over synthetic input and flag
the result. With a seed, every call is reproducible regardless of call order.
"""

import random
import time
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

BASE_PRICES = {"BTC": 116000.0, "ETH": 3500.0, "SOL": 180.0}
BASE_YIELDS = {"DGS2": 4.0, "DGS10": 4.3, "DGS30": 4.6, "DFF": 4.33}
BASE_OI_USD = {"bybit": 6.5e9, "okx": 4.0e9, "binance": 8.0e9}

# Base price and typical daily share volume per spot ETF
ETF_PROFILES = {
    "IBIT": (60.0, 40e6),
    "FBTC": (90.0, 8e6),
    "BITB": (55.0, 3e6),
    "ARKB": (100.0, 2.5e6),
    "BTCO": (105.0, 0.6e6),
    "EZBC": (60.0, 0.7e6),
    "BRRR": (30.0, 1e6),
    "HODL": (30.0, 0.9e6),
    "BTCW": (110.0, 0.2e6),
}


def business_days(start: date, end: date) -> List[date]:
    days = []
    current = start
    while current <= end:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


class SyntheticMarketData:
    """Seeded generator of provider-shaped market data"""

    name = "synthetic"

    def __init__(self, seed: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.seed = seed
        self.clock = clock
        self._shared_rng = random.Random()

    def _rng(self, *parts) -> random.Random:
        if self.seed is None:
            return self._shared_rng
        return random.Random(":".join(str(p) for p in (self.seed, *parts)))

    def today(self) -> date:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc).date()

    def _next_funding_time(self) -> str:
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        hour = (now.hour // 8 + 1) * 8
        next_time = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=hour - now.hour)
        return next_time.isoformat()

    async def open_interest(self, exchange: str) -> Dict:
        rng = self._rng("oi", exchange)
        return {
            "exchange": exchange,
            "oi_usd": BASE_OI_USD.get(exchange, 3e9) * rng.uniform(0.85, 1.15),
            "change_24h": rng.uniform(-5, 5),
            "change_7d": rng.uniform(-12, 12),
        }

    async def funding_rate(self, exchange: str, symbol: str) -> Dict:
        rng = self._rng("funding", exchange, symbol)
        asset = symbol.split("-")[0].replace("USDT", "")
        return {
            "exchange": exchange,
            "symbol": symbol,
            "funding_rate": round(rng.uniform(-0.001, 0.001), 6),
            "next_funding_time": self._next_funding_time(),
            "mark_price": round(BASE_PRICES.get(asset, 100.0) * rng.uniform(0.97, 1.03), 2),
        }

    async def daily_closes(self, symbol: str, days: int) -> List[Dict]:
        rng = self._rng("closes", symbol, days)
        today = self.today()
        price = BASE_PRICES.get(symbol.upper(), 100.0) * rng.uniform(0.9, 1.1)
        closes = []
        for offset in range(days, 0, -1):
            price *= 1 + rng.gauss(0, 0.025)
            closes.append({"date": (today - timedelta(days=offset - 1)).isoformat(), "close": round(price, 2)})
        return closes

    async def observations(self, series_id: str, days: int, today: Optional[date] = None) -> List[Dict]:
        rng = self._rng("treasury", series_id, days)
        today = today or self.today()
        value = BASE_YIELDS.get(series_id, 4.0) + rng.uniform(-0.3, 0.3)
        observations = []
        for day in business_days(today - timedelta(days=days), today):
            value = max(0.05, value + rng.uniform(-0.03, 0.03))
            observations.append({"date": day.isoformat(), "yield": round(value, 2)})
        return observations

    async def daily_bars(self, ticker: str, start: date, end: date) -> List[Dict]:
        rng = self._rng("etf", ticker, start.isoformat(), end.isoformat())
        base_price, base_volume = ETF_PROFILES.get(ticker, (50.0, 1e6))
        close = base_price * rng.uniform(0.95, 1.05)
        bars = []
        for day in business_days(start, end):
            open_ = close
            close = open_ * (1 + rng.gauss(0.0005, 0.02))
            bars.append({
                "date": day.isoformat(),
                "open": round(open_, 2),
                "high": round(max(open_, close) * (1 + rng.uniform(0, 0.01)), 2),
                "low": round(min(open_, close) * (1 - rng.uniform(0, 0.01)), 2),
                "close": round(close, 2),
                "volume": round(base_volume * rng.uniform(0.5, 1.5)),
            })
        return bars
