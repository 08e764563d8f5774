"""
Spot bitcoin ETF flows estimated from daily price/volume bars
"""

import logging
import time
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from market_dashboard.clients.etf import AlphaVantageClient, PolygonClient
from market_dashboard.core.exceptions import AllProvidersFailedError
from market_dashboard.models.payloads import (
    EtfBreakdown,
    EtfFlowDay,
    EtfFlowSummary,
    EtfFlowsPayload,
    PayloadMetadata,
)
from market_dashboard.models.responses import ApiResponse
from market_dashboard.services.orchestrator import MarketOrchestrator
from market_dashboard.utils.cache_utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

SPOT_BTC_ETFS = {
    "IBIT": ("iShares Bitcoin Trust", "BlackRock"),
    "FBTC": ("Fidelity Wise Origin Bitcoin Fund", "Fidelity"),
    "BITB": ("Bitwise Bitcoin ETF", "Bitwise"),
    "ARKB": ("ARK 21Shares Bitcoin ETF", "ARK Invest"),
    "BTCO": ("Invesco Galaxy Bitcoin ETF", "Invesco"),
    "EZBC": ("Franklin Bitcoin ETF", "Franklin Templeton"),
    "BRRR": ("CoinShares Valkyrie Bitcoin Fund", "CoinShares"),
    "HODL": ("VanEck Bitcoin ETF", "VanEck"),
    "BTCW": ("WisdomTree Bitcoin Fund", "WisdomTree"),
}

# Polygon free tier allows 5 calls a minute, so only the largest funds are polled
POLYGON_TICKERS = ["IBIT", "FBTC", "BITB", "ARKB", "BTCO"]

RANGE_DAYS = {"7D": 7, "30D": 30, "90D": 90, "1Y": 365}

STRONG_FLOW_MILLIONS = 100


def estimate_flow(bar: Dict, source: str) -> float:
    """Net flow in $M: a share of traded dollar volume, signed by the day's direction"""
    change_pct = abs(bar["close"] - bar["open"]) / bar["open"] * 100 if bar["open"] else 0.0
    if source == "alpha_vantage":
        multiplier = 0.12 if change_pct > 1.5 else 0.08
    elif change_pct > 5:
        multiplier = 0.2
    elif change_pct > 2:
        multiplier = 0.15
    else:
        multiplier = 0.1

    direction = 1 if bar["close"] >= bar["open"] else -1
    return bar["volume"] * bar["close"] * multiplier * direction / 1e6


def flow_performance(total_flow: float) -> str:
    if total_flow > STRONG_FLOW_MILLIONS:
        return "strong_inflow"
    if total_flow > 0:
        return "inflow"
    if total_flow < -STRONG_FLOW_MILLIONS:
        return "strong_outflow"
    return "outflow"


def summarize_flows(flows: List[EtfFlowDay]) -> EtfFlowSummary:
    total_inflows = sum(f.flow for f in flows if f.flow > 0)
    total_outflows = sum(-f.flow for f in flows if f.flow < 0)
    net_flow = total_inflows - total_outflows

    by_etf: Dict[str, List[EtfFlowDay]] = defaultdict(list)
    for flow in flows:
        by_etf[flow.etf].append(flow)

    breakdown = []
    for ticker, days in by_etf.items():
        days.sort(key=lambda f: f.date)
        total = sum(f.flow for f in days)
        breakdown.append(EtfBreakdown(
            etf=ticker,
            name=days[0].name,
            provider=days[0].provider,
            total_flow=round(total, 2),
            avg_daily_flow=round(total / len(days), 2),
            flow_days=len(days),
            current_price=days[-1].price,
            performance=flow_performance(total),
        ))
    breakdown.sort(key=lambda b: b.total_flow, reverse=True)

    if net_flow > 0:
        trend = "inflow"
    elif net_flow < 0:
        trend = "outflow"
    else:
        trend = "neutral"

    return EtfFlowSummary(
        total_inflows=round(total_inflows, 2),
        total_outflows=round(total_outflows, 2),
        net_flow=round(net_flow, 2),
        flow_trend=trend,
        etf_breakdown=breakdown,
    )


def build_etf_payload(bars_by_ticker: Dict[str, List[Dict]], *, source: str, date_range: str,
                      etf_filter: Optional[str], data_source: str, calculated_at: str) -> EtfFlowsPayload:
    flows = []
    for ticker, bars in bars_by_ticker.items():
        name, provider = SPOT_BTC_ETFS.get(ticker, (ticker, "Unknown"))
        for bar in bars:
            flows.append(EtfFlowDay(
                date=bar["date"],
                etf=ticker,
                name=name,
                provider=provider,
                flow=round(estimate_flow(bar, source), 2),
                price=bar["close"],
                volume=bar["volume"],
            ))
    flows.sort(key=lambda f: (f.date, f.etf))

    summary = summarize_flows(flows)
    trading_days = len({f.date for f in flows})
    return EtfFlowsPayload(
        date_range=date_range,
        etf_filter=etf_filter,
        flows=flows,
        summary=summary,
        data_points=len(flows),
        unique_etfs=len(bars_by_ticker),
        average_daily_flow=round(summary.net_flow / trading_days, 2) if trading_days else 0.0,
        metadata=PayloadMetadata(calculated_at=calculated_at, data_source=data_source, providers=[source]),
    )


class EtfFlowsOrchestrator(MarketOrchestrator):
    """Polygon bars first, Alpha Vantage as the slower secondary source"""

    domain = "etf_flows"

    def __init__(self, cache, synthetic, settings, polygon: PolygonClient,
                 alpha_vantage: AlphaVantageClient, clock=time.time):
        super().__init__(cache, synthetic, settings, clock)
        self.polygon = polygon
        self.alpha_vantage = alpha_vantage

    def _window(self, date_range: str):
        end = self.today()
        return end - timedelta(days=RANGE_DAYS[date_range]), end

    def _payload(self, bars, source, date_range, etf, data_source) -> EtfFlowsPayload:
        return build_etf_payload(
            bars, source=source, date_range=date_range, etf_filter=etf,
            data_source=data_source, calculated_at=self.now_iso(),
        )

    async def compute(self, date_range: str, etf: Optional[str]) -> EtfFlowsPayload:
        start, end = self._window(date_range)

        if self.polygon.enabled:
            tickers = [etf] if etf else POLYGON_TICKERS
            try:
                bars = await self.gather_best_effort(
                    {ticker: self.polygon.daily_bars(ticker, start, end) for ticker in tickers}
                )
                return self._payload(bars, "polygon", date_range, etf, "live")
            except AllProvidersFailedError as e:
                logger.warning(f"Polygon ETF bars unavailable, trying Alpha Vantage: {e}")

        if self.alpha_vantage.enabled:
            ticker = etf or "IBIT"
            bars = await self.gather_best_effort({ticker: self.alpha_vantage.daily_bars(ticker, start, end)})
            return self._payload(bars, "alpha_vantage", date_range, etf, "live")

        raise AllProvidersFailedError(self.domain, {})

    async def synthesize(self, date_range: str, etf: Optional[str]) -> EtfFlowsPayload:
        start, end = self._window(date_range)
        tickers = [etf] if etf else list(SPOT_BTC_ETFS)
        bars = {ticker: await self.synthetic.daily_bars(ticker, start, end) for ticker in tickers}
        return self._payload(bars, "synthetic", date_range, etf, "synthetic")

    async def get_etf_flows(self, date_range: str = "30D", etf: Optional[str] = None) -> ApiResponse:
        cache_key = CacheKeyGenerator.etf_flows(
            date_range, etf, self.time_bucket(self.settings.etf_flows_bucket_hours)
        )
        return await self.resolve(
            cache_key=cache_key,
            data_type=f"etf_flows_{date_range}_{(etf or 'all').lower()}",
            model=EtfFlowsPayload,
            compute=lambda: self.compute(date_range, etf),
            synthesize=lambda: self.synthesize(date_range, etf),
            ttl_or_tier=self.settings.etf_flows_ttl,
        )
