"""
RSI (Wilder) per symbol/period, plus bulk and dashboard summary views
"""

import asyncio
import logging
import time
from statistics import mean, pstdev
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from market_dashboard.clients.prices import BinancePriceClient, CoinGeckoClient
from market_dashboard.core.exceptions import ProviderError
from market_dashboard.models.payloads import (
    PayloadMetadata,
    RsiBulkPayload,
    RsiCurrent,
    RsiPayload,
    RsiRecommendation,
    RsiSignals,
    RsiStatistics,
    RsiSummaryItem,
    RsiSummaryPayload,
)
from market_dashboard.models.responses import ApiResponse
from market_dashboard.services.cache_service import CacheTier
from market_dashboard.services.orchestrator import MarketOrchestrator
from market_dashboard.services.resolution import Resolution
from market_dashboard.utils.cache_utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS = {"1D": 1, "7D": 7, "30D": 30, "90D": 90}
MAX_HISTORY_DAYS = 1000

OVERBOUGHT = 70
OVERSOLD = 30
EXTREME_OVERBOUGHT = 80
EXTREME_OVERSOLD = 20
MOMENTUM_BAND = 5

SUMMARY_PERIOD = 14
SUMMARY_TIMEFRAME = "7D"

RECOMMENDATIONS = {
    ("overbought", "strong"): ("sell", "high", "RSI deeply overbought, consider taking profits"),
    ("overbought", "moderate"): ("sell", "medium", "RSI overbought, momentum may fade"),
    ("overbought", "weak"): ("watch", "low", "RSI entering overbought territory"),
    ("oversold", "strong"): ("buy", "high", "RSI deeply oversold, potential reversal"),
    ("oversold", "moderate"): ("buy", "medium", "RSI oversold, watch for a bounce"),
    ("oversold", "weak"): ("watch", "low", "RSI entering oversold territory"),
    ("bullish_momentum", "weak"): ("hold", "medium", "Momentum building to the upside"),
    ("bearish_momentum", "weak"): ("watch", "medium", "Momentum fading, watch support levels"),
}
DEFAULT_RECOMMENDATION = ("hold", "low", "RSI in neutral range, no clear signal")


def history_days(period: int, timeframe: str) -> int:
    """Daily closes needed so the RSI is warmed up before the reported window"""
    return min(max(TIMEFRAME_DAYS[timeframe], period * 3) + period + 1, MAX_HISTORY_DAYS)


def calculate_rsi(closes: Sequence[float], period: int = 14) -> List[float]:
    """Wilder's RSI; one value per close after the first `period` changes"""
    if period < 1:
        raise ValueError("period must be positive")
    if len(closes) <= period:
        raise ValueError(f"need more than {period} closes, got {len(closes)}")

    deltas = [b - a for a, b in zip(closes, closes[1:])]
    gains = [max(d, 0.0) for d in deltas]
    losses = [max(-d, 0.0) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def rsi(gain, loss):
        if loss == 0:
            return 100.0 if gain > 0 else 50.0
        return 100 - 100 / (1 + gain / loss)

    values = [rsi(avg_gain, avg_loss)]
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        values.append(rsi(avg_gain, avg_loss))
    return [round(v, 2) for v in values]


def analyze_rsi(values: Sequence[float]):
    """(signal, strength) for the latest reading"""
    current = values[-1]
    if current >= OVERBOUGHT:
        if current >= EXTREME_OVERBOUGHT:
            return "overbought", "strong"
        return "overbought", "moderate" if current >= 75 else "weak"
    if current <= OVERSOLD:
        if current <= EXTREME_OVERSOLD:
            return "oversold", "strong"
        return "oversold", "moderate" if current <= 25 else "weak"

    recent = mean(values[-5:])
    if current > recent + MOMENTUM_BAND:
        return "bullish_momentum", "weak"
    if current < recent - MOMENTUM_BAND:
        return "bearish_momentum", "weak"
    return "neutral", "neutral"


def rsi_statistics(values: Sequence[float]) -> RsiStatistics:
    return RsiStatistics(
        average=round(mean(values), 2),
        maximum=max(values),
        minimum=min(values),
        volatility=round(pstdev(values), 2),
    )


def rsi_signals(values: Sequence[float]) -> RsiSignals:
    return RsiSignals(
        overbought=sum(1 for v in values if v >= OVERBOUGHT),
        oversold=sum(1 for v in values if v <= OVERSOLD),
        neutral=sum(1 for v in values if OVERSOLD < v < OVERBOUGHT),
        extreme_overbought=sum(1 for v in values if v >= EXTREME_OVERBOUGHT),
        extreme_oversold=sum(1 for v in values if v <= EXTREME_OVERSOLD),
    )


def recommend(signal: str, strength: str) -> RsiRecommendation:
    action, confidence, description = RECOMMENDATIONS.get((signal, strength), DEFAULT_RECOMMENDATION)
    return RsiRecommendation(action=action, confidence=confidence, description=description)


def build_rsi_payload(symbol: str, period: int, timeframe: str, closes: List[Dict], *,
                      data_source: str, providers: List[str], calculated_at: str) -> RsiPayload:
    values = calculate_rsi([c["close"] for c in closes], period)
    window = values[-max(TIMEFRAME_DAYS[timeframe], 5):]
    signal, strength = analyze_rsi(window)
    return RsiPayload(
        symbol=symbol,
        period=period,
        timeframe=timeframe,
        current=RsiCurrent(
            value=window[-1],
            price=closes[-1]["close"],
            signal=signal,
            strength=strength,
            timestamp=closes[-1]["date"],
        ),
        statistics=rsi_statistics(window),
        signals=rsi_signals(window),
        recommendation=recommend(signal, strength),
        values=window,
        data_points=len(closes),
        metadata=PayloadMetadata(calculated_at=calculated_at, data_source=data_source, providers=providers),
    )


def is_stale(response: ApiResponse) -> bool:
    """Served from a golden entry past its fresh tier"""
    return response.metadata.served_from == "golden" and not response.metadata.fresh


def combined_source(sources: Iterable[str]) -> str:
    distinct = set(sources)
    if len(distinct) == 1:
        return distinct.pop()
    return "mixed" if distinct else "live"


class RsiOrchestrator(MarketOrchestrator):
    """RSI from CoinGecko or Binance daily closes, whichever is longer"""

    domain = "rsi"

    def __init__(self, cache, synthetic, settings, coingecko: CoinGeckoClient,
                 binance: BinancePriceClient, clock=time.time):
        super().__init__(cache, synthetic, settings, clock)
        self.coingecko = coingecko
        self.binance = binance

    def _payload(self, symbol, period, timeframe, closes, data_source, providers) -> RsiPayload:
        return build_rsi_payload(
            symbol, period, timeframe, closes,
            data_source=data_source, providers=providers, calculated_at=self.now_iso(),
        )

    async def compute(self, symbol: str, period: int, timeframe: str) -> RsiPayload:
        days = history_days(period, timeframe)
        results = await self.gather_best_effort({
            "coingecko": self.coingecko.daily_closes(symbol, days),
            "binance": self.binance.daily_closes(symbol, days),
        })
        provider, closes = max(results.items(), key=lambda item: len(item[1]))
        if len(closes) <= period:
            raise ProviderError(provider, f"only {len(closes)} closes for {symbol}, period {period}")
        return self._payload(symbol, period, timeframe, closes, "live", [provider])

    async def synthesize(self, symbol: str, period: int, timeframe: str) -> RsiPayload:
        closes = await self.synthetic.daily_closes(symbol, history_days(period, timeframe))
        return self._payload(symbol, period, timeframe, closes, "synthetic", ["synthetic"])

    async def get_rsi(self, symbol: str, period: int = 14, timeframe: str = "7D") -> ApiResponse:
        return await self.resolve(
            cache_key=CacheKeyGenerator.rsi(symbol, period, timeframe),
            data_type=f"rsi_{symbol.lower()}_{period}_{timeframe}",
            model=RsiPayload,
            compute=lambda: self.compute(symbol, period, timeframe),
            synthesize=lambda: self.synthesize(symbol, period, timeframe),
            ttl_or_tier=CacheTier.FREQUENT,
        )

    async def _cached_aggregate(self, key: str, model):
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            return model.model_validate(cached)
        except ValidationError:
            logger.error(f"Discarding malformed aggregate at {key}")
            await self.cache.delete(key)
            return None

    async def get_bulk(self, symbols: List[str], periods: List[int], timeframe: str = "7D") -> ApiResponse:
        """RSI for every symbol x period; cached entries are read in one round trip"""
        bulk_key = CacheKeyGenerator.rsi_bulk(symbols, periods, timeframe)
        aggregate = await self._cached_aggregate(bulk_key, RsiBulkPayload)
        if aggregate is not None:
            return self.envelope(Resolution.hit(aggregate, "cache"), bulk_key)

        combos = [(symbol, period) for symbol in symbols for period in periods]
        keys = [CacheKeyGenerator.rsi(symbol, period, timeframe) for symbol, period in combos]
        cached_values = await self.cache.mget(keys)

        results: Dict[str, Dict[str, RsiPayload]] = {symbol: {} for symbol in symbols}
        misses = []
        for (symbol, period), value in zip(combos, cached_values):
            if value is not None:
                try:
                    results[symbol][str(period)] = RsiPayload.model_validate(value)
                    continue
                except ValidationError:
                    logger.warning(f"Malformed cached RSI for {symbol}/{period}, recomputing")
            misses.append((symbol, period))

        responses = await asyncio.gather(*(self.get_rsi(s, p, timeframe) for s, p in misses))
        stale_parts = []
        for (symbol, period), response in zip(misses, responses):
            results[symbol][str(period)] = response.data
            if is_stale(response):
                stale_parts.append(f"{symbol}/{period}")

        payloads = [p for by_period in results.values() for p in by_period.values()]
        payload = RsiBulkPayload(
            timeframe=timeframe,
            results=results,
            cached_keys=len(combos) - len(misses),
            computed_keys=len(misses),
            stale_parts=stale_parts,
            metadata=PayloadMetadata(
                calculated_at=self.now_iso(),
                data_source=combined_source(p.metadata.data_source for p in payloads),
                providers=sorted({name for p in payloads for name in p.metadata.providers}),
            ),
        )
        logger.info(f"RSI bulk: {payload.cached_keys} cached, {payload.computed_keys} computed")
        await self.cache.set_tiered(bulk_key, payload.model_dump(mode="json", by_alias=True), self._aggregate_tier(payload))
        return self.envelope(Resolution.hit(payload, "aggregate"), bulk_key)

    async def get_summary(self, symbols: List[str]) -> ApiResponse:
        """Dashboard view: 14-period 7D RSI per symbol"""
        summary_key = CacheKeyGenerator.rsi_summary(symbols)
        aggregate = await self._cached_aggregate(summary_key, RsiSummaryPayload)
        if aggregate is not None:
            return self.envelope(Resolution.hit(aggregate, "cache"), summary_key)

        responses = await asyncio.gather(*(self.get_rsi(s, SUMMARY_PERIOD, SUMMARY_TIMEFRAME) for s in symbols))
        items = {}
        for symbol, response in zip(symbols, responses):
            rsi: RsiPayload = response.data
            items[symbol] = RsiSummaryItem(
                value=rsi.current.value,
                signal=rsi.current.signal,
                strength=rsi.current.strength,
                price=rsi.current.price,
                recommendation=rsi.recommendation.action,
                confidence=rsi.recommendation.confidence,
                data_source=rsi.metadata.data_source,
            )

        payload = RsiSummaryPayload(
            period=SUMMARY_PERIOD,
            timeframe=SUMMARY_TIMEFRAME,
            symbols=items,
            metadata=PayloadMetadata(
                calculated_at=self.now_iso(),
                data_source=combined_source(item.data_source for item in items.values()),
                providers=sorted({n for r in responses for n in r.data.metadata.providers}),
            ),
            stale_parts=[s for s, r in zip(symbols, responses) if is_stale(r)],
        )
        await self.cache.set_tiered(summary_key, payload.model_dump(mode="json", by_alias=True), self._aggregate_tier(payload))
        return self.envelope(Resolution.hit(payload, "aggregate"), summary_key)

    @staticmethod
    def _aggregate_tier(payload) -> CacheTier:
        # Aggregates containing synthetic or older golden data expire quickly so live data replaces them
        if payload.metadata.data_source == "live" and not payload.stale_parts:
            return CacheTier.FREQUENT
        return CacheTier.REALTIME

    async def warm_cache(self, symbols: List[str], periods: Optional[List[int]] = None,
                         timeframe: str = "7D") -> int:
        """Compute live RSI for the given combinations and write them in one batch"""
        periods = periods or [SUMMARY_PERIOD]
        combos = [(symbol, period) for symbol in symbols for period in periods]
        results = await asyncio.gather(
            *(self.compute(symbol, period, timeframe) for symbol, period in combos),
            return_exceptions=True,
        )

        entries = {}
        for (symbol, period), result in zip(combos, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"RSI warm-up skipped {symbol}/{period}: {result}")
                continue
            entries[CacheKeyGenerator.rsi(symbol, period, timeframe)] = (
                result.model_dump(mode="json", by_alias=True),
                CacheTier.FREQUENT,
            )

        if entries:
            await self.cache.warm_cache(entries)
        return len(entries)
