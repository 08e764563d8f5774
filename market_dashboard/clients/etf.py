"""
Daily bars for spot bitcoin ETFs
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from market_dashboard.clients.base import ProviderClient
from market_dashboard.core.exceptions import ProviderError


class PolygonClient(ProviderClient):
    name = "polygon"

    def __init__(self, *args, api_key: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def daily_bars(self, ticker: str, start: date, end: date) -> List[Dict]:
        if not self.api_key:
            raise ProviderError(self.name, "Polygon API key not configured")

        data = await self.get_json(
            f"/v2/aggs/ticker/{ticker}/range/1/day/{start.isoformat()}/{end.isoformat()}",
            {"adjusted": "true", "sort": "asc", "apiKey": self.api_key},
        )
        results = data.get("results") or []
        if not results:
            raise ProviderError(self.name, f"no bars for {ticker}")
        return [
            {
                "date": datetime.fromtimestamp(bar["t"] / 1000, tz=timezone.utc).date().isoformat(),
                "open": float(bar["o"]),
                "high": float(bar["h"]),
                "low": float(bar["l"]),
                "close": float(bar["c"]),
                "volume": float(bar["v"]),
            }
            for bar in results
        ]


class AlphaVantageClient(ProviderClient):
    name = "alpha_vantage"

    def __init__(self, *args, api_key: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def daily_bars(self, ticker: str, start: date, end: date) -> List[Dict]:
        if not self.api_key:
            raise ProviderError(self.name, "Alpha Vantage API key not configured")

        data = await self.get_json("/query", {
            "function": "TIME_SERIES_DAILY",
            "symbol": ticker,
            "apikey": self.api_key,
            "outputsize": "compact",
        })
        series = data.get("Time Series (Daily)")
        if not series:
            # Throttled responses come back as 200 with a "Note" or "Information" field
            raise ProviderError(self.name, data.get("Note") or data.get("Information") or f"no series for {ticker}")

        bars = [
            {
                "date": day,
                "open": float(values["1. open"]),
                "high": float(values["2. high"]),
                "low": float(values["3. low"]),
                "close": float(values["4. close"]),
                "volume": float(values["5. volume"]),
            }
            for day, values in series.items()
            if start.isoformat() <= day <= end.isoformat()
        ]
        if not bars:
            raise ProviderError(self.name, f"no bars for {ticker} in range")
        bars.sort(key=lambda bar: bar["date"])
        return bars
