"""
Perpetual funding rates across exchanges
"""

import logging
import time
from collections import defaultdict
from statistics import mean
from typing import Dict, List, Optional

from market_dashboard.clients.exchanges import BinanceFuturesClient, BybitClient, OkxClient
from market_dashboard.models.payloads import FundingPayload, FundingRateEntry, FundingStatistics, PayloadMetadata
from market_dashboard.models.responses import ApiResponse
from market_dashboard.services.cache_service import CacheTier
from market_dashboard.services.orchestrator import MarketOrchestrator
from market_dashboard.utils.cache_utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

ASSETS = ("BTC", "ETH")

EXCHANGE_SYMBOLS = {
    "binance": "{asset}USDT",
    "bybit": "{asset}USDT",
    "okx": "{asset}-USDT-SWAP",
}


def funding_statistics(entries: List[FundingRateEntry]) -> FundingStatistics:
    rates = [entry.funding_rate for entry in entries]
    return FundingStatistics(
        total_pairs=len(rates),
        average_funding_rate=round(mean(rates), 8) if rates else 0.0,
        highest_rate=max(rates) if rates else None,
        lowest_rate=min(rates) if rates else None,
        positive_rates=sum(1 for r in rates if r > 0),
        negative_rates=sum(1 for r in rates if r < 0),
    )


def asset_averages(entries: List[FundingRateEntry]) -> Dict[str, Optional[float]]:
    by_asset: Dict[str, List[float]] = defaultdict(list)
    for entry in entries:
        by_asset[entry.asset].append(entry.funding_rate)
    return {asset: round(mean(rates), 8) for asset, rates in by_asset.items()}


def build_funding_payload(records: List[Dict], *, exchange: str, data_source: str,
                          providers: List[str], calculated_at: str) -> FundingPayload:
    entries = sorted(
        (
            FundingRateEntry(
                symbol=record["symbol"],
                asset=record["asset"],
                exchange=record["exchange"],
                funding_rate=record["funding_rate"],
                funding_rate_pct=round(record["funding_rate"] * 100, 4),
                next_funding_time=record.get("next_funding_time"),
                mark_price=record.get("mark_price"),
            )
            for record in records
        ),
        key=lambda entry: entry.funding_rate,
        reverse=True,
    )
    return FundingPayload(
        exchange=exchange,
        rates=entries,
        statistics=funding_statistics(entries),
        averages=asset_averages(entries),
        metadata=PayloadMetadata(calculated_at=calculated_at, data_source=data_source, providers=providers),
    )


def filter_by_symbol(payload: FundingPayload, asset: str) -> FundingPayload:
    """Restrict a funding payload to one asset, recomputing its statistics"""
    entries = [entry for entry in payload.rates if entry.asset == asset.upper()]
    return payload.model_copy(update={
        "rates": entries,
        "statistics": funding_statistics(entries),
        "averages": asset_averages(entries),
    })


class FundingOrchestrator(MarketOrchestrator):
    """Binance, Bybit and OKX funding for BTC and ETH perpetuals"""

    domain = "funding"

    def __init__(self, cache, synthetic, settings, binance: BinanceFuturesClient,
                 bybit: BybitClient, okx: OkxClient, clock=time.time):
        super().__init__(cache, synthetic, settings, clock)
        self.clients = {"binance": binance, "bybit": bybit, "okx": okx}

    def _exchanges(self, exchange: str) -> List[str]:
        return list(self.clients) if exchange == "all" else [exchange]

    def _payload(self, results: Dict[str, Dict], exchange: str, data_source: str) -> FundingPayload:
        records = [dict(record, asset=key.split("_")[1]) for key, record in results.items()]
        return build_funding_payload(
            records,
            exchange=exchange,
            data_source=data_source,
            providers=sorted({key.split("_")[0] for key in results}),
            calculated_at=self.now_iso(),
        )

    async def compute(self, exchange: str) -> FundingPayload:
        calls = {
            f"{name}_{asset}": self.clients[name].funding_rate(EXCHANGE_SYMBOLS[name].format(asset=asset))
            for name in self._exchanges(exchange)
            for asset in ASSETS
        }
        return self._payload(await self.gather_best_effort(calls), exchange, "live")

    async def synthesize(self, exchange: str) -> FundingPayload:
        results = {}
        for name in self._exchanges(exchange):
            for asset in ASSETS:
                symbol = EXCHANGE_SYMBOLS[name].format(asset=asset)
                results[f"{name}_{asset}"] = await self.synthetic.funding_rate(name, symbol)
        return self._payload(results, exchange, "synthetic")

    async def get_funding_rates(self, exchange: str = "all", symbol: Optional[str] = None) -> ApiResponse:
        cache_key = CacheKeyGenerator.funding(exchange, self.time_bucket(self.settings.funding_bucket_hours))
        response = await self.resolve(
            cache_key=cache_key,
            data_type=f"funding_{exchange}",
            model=FundingPayload,
            compute=lambda: self.compute(exchange),
            synthesize=lambda: self.synthesize(exchange),
            ttl_or_tier=CacheTier.FREQUENT,
        )
        if symbol:
            response = response.model_copy(update={"data": filter_by_symbol(response.data, symbol)})
        return response
