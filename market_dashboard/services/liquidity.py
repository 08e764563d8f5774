"""
Treasury yields and the liquidity pulse derived from the 2-year yield
"""

import logging
import time
from statistics import mean
from typing import Dict, List

from market_dashboard.clients.fred import FredClient
from market_dashboard.models.payloads import (
    LiquidityAnalysis,
    LiquidityPayload,
    LiquidityPulse,
    PayloadMetadata,
    TreasuryPayload,
    YieldObservation,
)
from market_dashboard.models.responses import ApiResponse
from market_dashboard.services.cache_service import CacheTier
from market_dashboard.services.orchestrator import MarketOrchestrator
from market_dashboard.utils.cache_utils import CacheKeyGenerator

logger = logging.getLogger(__name__)

TREASURY_SERIES = {
    "DGS2": "2-Year Treasury Constant Maturity Rate",
    "DGS10": "10-Year Treasury Constant Maturity Rate",
    "DGS30": "30-Year Treasury Constant Maturity Rate",
    "DFF": "Federal Funds Effective Rate",
}

# Calendar days fetched per timeframe, padded for weekends and holidays
TIMEFRAME_DAYS = {"7D": 10, "30D": 45, "90D": 120, "1Y": 400}

PULSE_LEVELS = [
    (75, "abundant", "Liquidity conditions are abundant, supportive for risk assets"),
    (60, "adequate", "Liquidity is adequate with mild tailwinds"),
    (40, "neutral", "Liquidity conditions are neutral"),
    (25, "tightening", "Liquidity is tightening, headwinds for risk assets"),
    (0, "constrained", "Liquidity is constrained, risk assets under pressure"),
]


def pulse_level(score: int):
    for threshold, level, description in PULSE_LEVELS:
        if score >= threshold:
            return level, description
    return PULSE_LEVELS[-1][1], PULSE_LEVELS[-1][2]


def calculate_liquidity_pulse(observations: List[Dict]) -> LiquidityPulse:
    """0-100 score from yield level and 7/30 observation trends (lower yields = more liquidity)"""
    if len(observations) < 7:
        level, description = pulse_level(50)
        return LiquidityPulse(score=50, level=level, description=description, signals=["insufficient_data"])

    yields = [obs["yield"] for obs in observations]
    current = yields[-1]
    avg_7 = mean(yields[-7:])
    avg_30 = mean(yields[-30:])
    thirty_ago = yields[-30] if len(yields) >= 30 else yields[0]

    score = 50
    signals = []

    if current > 5.5:
        score -= 25
        signals.append("high_yields")
    elif current > 4.5:
        score -= 15
        signals.append("elevated_yields")
    elif current < 3.0:
        score += 20
        signals.append("low_yields")
    elif current < 4.0:
        score += 10
        signals.append("moderate_yields")

    trend_7 = (current - avg_7) / avg_7 if avg_7 else 0.0
    if trend_7 > 0.05:
        score -= 15
        signals.append("rapid_tightening")
    elif trend_7 > 0.02:
        score -= 10
        signals.append("tightening")
    elif trend_7 < -0.05:
        score += 15
        signals.append("rapid_easing")
    elif trend_7 < -0.02:
        score += 10
        signals.append("easing")

    trend_30 = (current - avg_30) / avg_30 if avg_30 else 0.0
    if trend_30 > 0.1:
        score -= 10
        signals.append("sustained_tightening")
    elif trend_30 < -0.1:
        score += 10
        signals.append("sustained_easing")

    score = max(0, min(100, score))
    level, description = pulse_level(score)
    return LiquidityPulse(
        score=score,
        level=level,
        description=description,
        signals=signals,
        analysis=LiquidityAnalysis(
            current_yield=current,
            avg_7_day=round(avg_7, 3),
            avg_30_day=round(avg_30, 3),
            trend_7_day=round((current - avg_7) * 100, 1),
            trend_30_day=round((current - avg_30) * 100, 1),
            thirty_days_ago_yield=thirty_ago,
        ),
    )


def build_treasury_payload(series_id: str, timeframe: str, observations: List[Dict], *,
                           data_source: str, provider: str, calculated_at: str) -> TreasuryPayload:
    points = [YieldObservation(date=obs["date"], rate=obs["yield"]) for obs in observations]
    change = round((points[-1].rate - points[0].rate) * 100, 1) if len(points) > 1 else None
    return TreasuryPayload(
        series_id=series_id,
        name=TREASURY_SERIES.get(series_id, series_id),
        timeframe=timeframe,
        current=points[-1] if points else None,
        change=change,
        observations=points,
        metadata=PayloadMetadata(calculated_at=calculated_at, data_source=data_source, providers=[provider]),
    )


class LiquidityOrchestrator(MarketOrchestrator):
    """FRED treasury series and the 2-year based liquidity pulse"""

    domain = "liquidity"

    def __init__(self, cache, synthetic, settings, fred: FredClient, clock=time.time):
        super().__init__(cache, synthetic, settings, clock)
        self.fred = fred

    async def _treasury(self, source, series_id: str, timeframe: str, data_source: str) -> TreasuryPayload:
        observations = await source.observations(series_id, TIMEFRAME_DAYS[timeframe], self.today())
        return build_treasury_payload(
            series_id, timeframe, observations,
            data_source=data_source, provider=source.name, calculated_at=self.now_iso(),
        )

    async def compute_treasury(self, series_id: str, timeframe: str) -> TreasuryPayload:
        return await self._treasury(self.fred, series_id, timeframe, "live")

    async def synthesize_treasury(self, series_id: str, timeframe: str) -> TreasuryPayload:
        return await self._treasury(self.synthetic, series_id, timeframe, "synthetic")

    def _liquidity(self, treasury: TreasuryPayload, timeframe: str) -> LiquidityPayload:
        observations = [{"date": o.date, "yield": o.rate} for o in treasury.observations]
        return LiquidityPayload(
            timeframe=timeframe,
            pulse=calculate_liquidity_pulse(observations),
            treasury_2y=treasury,
            metadata=treasury.metadata,
        )

    async def compute_liquidity(self, timeframe: str) -> LiquidityPayload:
        return self._liquidity(await self.compute_treasury("DGS2", timeframe), timeframe)

    async def synthesize_liquidity(self, timeframe: str) -> LiquidityPayload:
        return self._liquidity(await self.synthesize_treasury("DGS2", timeframe), timeframe)

    async def get_treasury_yields(self, series_id: str = "DGS2", timeframe: str = "30D") -> ApiResponse:
        return await self.resolve(
            cache_key=CacheKeyGenerator.treasury(series_id, timeframe),
            data_type=f"treasury_{series_id.lower()}_{timeframe}",
            model=TreasuryPayload,
            compute=lambda: self.compute_treasury(series_id, timeframe),
            synthesize=lambda: self.synthesize_treasury(series_id, timeframe),
            ttl_or_tier=CacheTier.FREQUENT,
        )

    async def get_liquidity_pulse(self, timeframe: str = "30D") -> ApiResponse:
        cache_key = CacheKeyGenerator.liquidity(timeframe, self.time_bucket(self.settings.liquidity_bucket_hours))
        return await self.resolve(
            cache_key=cache_key,
            data_type=f"liquidity_{timeframe}",
            model=LiquidityPayload,
            compute=lambda: self.compute_liquidity(timeframe),
            synthesize=lambda: self.synthesize_liquidity(timeframe),
            ttl_or_tier=self.settings.liquidity_ttl,
        )
