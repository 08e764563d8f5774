"""
Derivatives exchange clients (open interest and perpetual funding rates)
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from market_dashboard.clients.base import ProviderClient
from market_dashboard.core.exceptions import ProviderError


def ms_to_iso(value: Any) -> Optional[str]:
    """Exchange millisecond timestamps (int or str) as ISO-8601"""
    if value in (None, "", "0", 0):
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).isoformat()


def pct_change(current: float, previous: float) -> Optional[float]:
    if not previous:
        return None
    return (current - previous) / previous * 100


class BybitClient(ProviderClient):
    """Bybit v5 linear perpetuals"""

    name = "bybit"

    async def _result_list(self, path: str, params: Dict[str, Any]) -> list:
        payload = await self.get_json(path, params)
        if payload.get("retCode") != 0:
            raise ProviderError(self.name, f"retCode {payload.get('retCode')}: {payload.get('retMsg')}")
        items = payload.get("result", {}).get("list") or []
        if not items:
            raise ProviderError(self.name, f"empty result for {params.get('symbol')}")
        return items

    async def ticker(self, symbol: str) -> Dict[str, Any]:
        items = await self._result_list("/v5/market/tickers", {"category": "linear", "symbol": symbol})
        return items[0]

    async def open_interest(self, symbol: str = "BTCUSDT") -> Dict[str, Any]:
        ticker = await self.ticker(symbol)
        history = await self._result_list(
            "/v5/market/open-interest",
            {"category": "linear", "symbol": symbol, "intervalTime": "1d", "limit": 8},
        )
        # Newest first
        contracts = [float(item["openInterest"]) for item in history]
        return {
            "exchange": self.name,
            "oi_usd": float(ticker["openInterestValue"]),
            "change_24h": pct_change(contracts[0], contracts[1]) if len(contracts) > 1 else None,
            "change_7d": pct_change(contracts[0], contracts[7]) if len(contracts) > 7 else None,
        }

    async def funding_rate(self, symbol: str = "BTCUSDT") -> Dict[str, Any]:
        ticker = await self.ticker(symbol)
        return {
            "exchange": self.name,
            "symbol": symbol,
            "funding_rate": float(ticker["fundingRate"]),
            "next_funding_time": ms_to_iso(ticker.get("nextFundingTime")),
            "mark_price": float(ticker["markPrice"]) if ticker.get("markPrice") else None,
        }


class OkxClient(ProviderClient):
    """OKX v5 public swap endpoints"""

    name = "okx"

    async def _data(self, path: str, inst_id: str) -> Dict[str, Any]:
        payload = await self.get_json(path, {"instId": inst_id})
        if payload.get("code") != "0" or not payload.get("data"):
            raise ProviderError(self.name, f"code {payload.get('code')}: {payload.get('msg')}")
        return payload["data"][0]

    async def open_interest(self, inst_id: str = "BTC-USDT-SWAP") -> Dict[str, Any]:
        data = await self._data("/api/v5/public/open-interest", inst_id)
        return {
            "exchange": self.name,
            "oi_usd": float(data["oiUsd"]),
            "change_24h": None,
            "change_7d": None,
        }

    async def funding_rate(self, inst_id: str = "BTC-USDT-SWAP") -> Dict[str, Any]:
        data = await self._data("/api/v5/public/funding-rate", inst_id)
        return {
            "exchange": self.name,
            "symbol": inst_id,
            "funding_rate": float(data["fundingRate"]),
            "next_funding_time": ms_to_iso(data.get("nextFundingTime")),
            "mark_price": None,
        }


class BinanceFuturesClient(ProviderClient):
    """Binance USD-M futures"""

    name = "binance"

    async def funding_rate(self, symbol: str = "BTCUSDT") -> Dict[str, Any]:
        data = await self.get_json("/fapi/v1/premiumIndex", {"symbol": symbol})
        if "lastFundingRate" not in data:
            raise ProviderError(self.name, f"no funding rate for {symbol}")
        return {
            "exchange": self.name,
            "symbol": symbol,
            "funding_rate": float(data["lastFundingRate"]),
            "next_funding_time": ms_to_iso(data.get("nextFundingTime")),
            "mark_price": float(data["markPrice"]) if data.get("markPrice") else None,
        }
