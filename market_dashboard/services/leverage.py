"""
BTC leverage regime from derivatives open interest and funding rates
"""

import logging
import time
from statistics import mean
from typing import Dict, List

from market_dashboard.clients.exchanges import BybitClient, OkxClient
from market_dashboard.models.payloads import (
    ExchangeOpenInterest,
    FundingSummary,
    LeveragePayload,
    LeverageScore,
    LeverageState,
    OpenInterestSummary,
    PayloadMetadata,
)
from market_dashboard.models.responses import ApiResponse
from market_dashboard.services.orchestrator import MarketOrchestrator
from market_dashboard.utils.cache_utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

# Used when no exchange reported a value
DEFAULT_OI_BILLIONS = 15.0
DEFAULT_FUNDING_RATE = 0.0001

FUNDING_PERIODS_PER_YEAR = 1095  # 3 per day

STATE_DESCRIPTORS = {
    LeverageState.SHORTS_CROWDED: {
        "status": "Squeeze Risk",
        "state_label": "Shorts Crowded",
        "color": "green",
        "description": "Negative funding with subdued positioning, shorts are paying to stay in",
        "sentiment": "bullish",
        "recommendation": "Short squeeze risk elevated, avoid chasing downside",
    },
    LeverageState.LONGS_CROWDED: {
        "status": "Flush Risk",
        "state_label": "Longs Crowded",
        "color": "red",
        "description": "Expensive funding with heavy open interest, longs are overextended",
        "sentiment": "bearish",
        "recommendation": "Long liquidation risk elevated, tighten risk on leveraged longs",
    },
    LeverageState.BALANCED: {
        "status": "Balanced",
        "state_label": "Balanced",
        "color": "yellow",
        "description": "Funding and open interest within normal ranges",
        "sentiment": "neutral",
        "recommendation": "No leverage extreme, positioning is not a driver right now",
    },
}


def clamp_score(value: float) -> int:
    return int(round(max(0.0, min(100.0, value))))


def classify_leverage(funding_rate: float, overall_score: float,
                      oi_mcap_ratio: float = 0.0, oi_delta_7d: float = 0.0) -> LeverageState:
    """Leverage regime from the 8h funding rate (fraction) and positioning.

    shorts-crowded: funding below -1% and overall score below 60
    longs-crowded:  funding above 2% and (OI/MCap >= 2.5% or 7d OI change >= 10%)
    """
    funding_pct = funding_rate * 100
    if funding_pct < -1 and overall_score < 60:
        return LeverageState.SHORTS_CROWDED
    if funding_pct > 2 and (oi_mcap_ratio >= 2.5 or oi_delta_7d >= 10):
        return LeverageState.LONGS_CROWDED
    return LeverageState.BALANCED


def leverage_scores(oi_mcap_ratio: float, funding_rate: float, oi_delta_7d: float) -> LeverageScore:
    oi = clamp_score(oi_mcap_ratio / 5 * 100)
    funding = clamp_score(50 + funding_rate * 100 * 20)
    momentum = clamp_score(50 + oi_delta_7d * 2.5)
    return LeverageScore(
        oi=oi,
        funding=funding,
        momentum=momentum,
        overall=clamp_score(0.4 * oi + 0.35 * funding + 0.25 * momentum),
    )


def derive_leverage(open_interest: List[Dict], funding: List[Dict], *, market_cap_billions: float,
                    coverage_share: float, data_source: str, providers: List[str],
                    calculated_at: str) -> LeveragePayload:
    """Leverage payload from whatever exchange records are available"""
    exchanges = [
        ExchangeOpenInterest(
            exchange=record["exchange"],
            value=round(record["oi_usd"] / 1e9, 3),
            change_24h=round(record["change_24h"], 2) if record.get("change_24h") is not None else None,
        )
        for record in open_interest
    ]
    covered = sum(record["oi_usd"] for record in open_interest) / 1e9
    total = covered / coverage_share if covered else DEFAULT_OI_BILLIONS

    changes_24h = [r["change_24h"] for r in open_interest if r.get("change_24h") is not None]
    changes_7d = [r["change_7d"] for r in open_interest if r.get("change_7d") is not None]
    change_24h = mean(changes_24h) if changes_24h else 0.0
    change_7d = mean(changes_7d) if changes_7d else change_24h * 3.5

    rates = [record["funding_rate"] for record in funding]
    funding_rate = mean(rates) if rates else DEFAULT_FUNDING_RATE

    oi_mcap_ratio = total / market_cap_billions * 100
    score = leverage_scores(oi_mcap_ratio, funding_rate, change_7d)
    state = classify_leverage(funding_rate, score.overall, oi_mcap_ratio, change_7d)

    if funding_rate > 0.00005:
        trend = "positive"
    elif funding_rate < -0.00005:
        trend = "negative"
    else:
        trend = "neutral"

    return LeveragePayload(
        state=state,
        **STATE_DESCRIPTORS[state],
        funding_rate_8h=round(funding_rate * 100, 4),
        oi_mcap_ratio=round(oi_mcap_ratio, 3),
        oi_delta_7d=round(change_7d, 2),
        score=score,
        open_interest=OpenInterestSummary(
            total=round(total, 2),
            change_24h=round(change_24h, 2),
            change_7d=round(change_7d, 2),
            exchanges=exchanges,
        ),
        funding_rate=FundingSummary(
            current_8h=round(funding_rate * 100, 4),
            annualized=round(funding_rate * 100 * FUNDING_PERIODS_PER_YEAR, 2),
            trend=trend,
        ),
        metadata=PayloadMetadata(calculated_at=calculated_at, data_source=data_source, providers=providers),
    )


class LeverageOrchestrator(MarketOrchestrator):
    """Bybit + OKX open interest and funding, merged best-effort"""

    domain = "leverage"

    def __init__(self, cache, synthetic, settings, bybit: BybitClient, okx: OkxClient, clock=time.time):
        super().__init__(cache, synthetic, settings, clock)
        self.bybit = bybit
        self.okx = okx

    def _derive(self, results: Dict[str, Dict], data_source: str) -> LeveragePayload:
        return derive_leverage(
            [v for k, v in results.items() if k.endswith("_oi")],
            [v for k, v in results.items() if k.endswith("_funding")],
            market_cap_billions=self.settings.btc_market_cap_billions,
            coverage_share=self.settings.oi_coverage_share,
            data_source=data_source,
            providers=sorted({k.split("_")[0] for k in results}),
            calculated_at=self.now_iso(),
        )

    async def compute(self) -> LeveragePayload:
        results = await self.gather_best_effort({
            "bybit_oi": self.bybit.open_interest("BTCUSDT"),
            "okx_oi": self.okx.open_interest("BTC-USDT-SWAP"),
            "bybit_funding": self.bybit.funding_rate("BTCUSDT"),
            "okx_funding": self.okx.funding_rate("BTC-USDT-SWAP"),
        })
        return self._derive(results, "live")

    async def synthesize(self) -> LeveragePayload:
        results = {
            "bybit_oi": await self.synthetic.open_interest("bybit"),
            "okx_oi": await self.synthetic.open_interest("okx"),
            "bybit_funding": await self.synthetic.funding_rate("bybit", "BTCUSDT"),
            "okx_funding": await self.synthetic.funding_rate("okx", "BTC-USDT-SWAP"),
        }
        return self._derive(results, "synthetic")

    async def get_leverage_state(self) -> ApiResponse:
        cache_key = CacheKeyGenerator.leverage(self.time_bucket(self.settings.leverage_bucket_hours))
        return await self.resolve(
            cache_key=cache_key,
            data_type="leverage_btc",
            model=LeveragePayload,
            compute=self.compute,
            synthesize=self.synthesize,
            ttl_or_tier=self.settings.leverage_ttl,
        )
