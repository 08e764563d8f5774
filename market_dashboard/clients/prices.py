"""
Daily close history for RSI
"""

from datetime import datetime, timezone
from typing import Dict, List

from market_dashboard.clients.base import ProviderClient
from market_dashboard.core.exceptions import ProviderError

COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
}


def _day(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).date().isoformat()


class CoinGeckoClient(ProviderClient):
    name = "coingecko"

    async def daily_closes(self, symbol: str, days: int) -> List[Dict]:
        coin_id = COINGECKO_IDS.get(symbol.upper())
        if coin_id is None:
            raise ProviderError(self.name, f"unsupported symbol {symbol}")

        data = await self.get_json(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": "usd", "days": days, "interval": "daily"},
        )
        prices = data.get("prices") or []
        if not prices:
            raise ProviderError(self.name, f"no price history for {symbol}")
        return [{"date": _day(ts), "close": float(price)} for ts, price in prices]


class BinancePriceClient(ProviderClient):
    name = "binance"

    async def daily_closes(self, symbol: str, days: int) -> List[Dict]:
        klines = await self.get_json(
            "/api/v3/klines",
            {"symbol": f"{symbol.upper()}USDT", "interval": "1d", "limit": min(days, 1000)},
        )
        if not isinstance(klines, list) or not klines:
            raise ProviderError(self.name, f"no klines for {symbol}")
        # [open time, open, high, low, close, ...]
        return [{"date": _day(row[0]), "close": float(row[4])} for row in klines]
