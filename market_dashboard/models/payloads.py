"""
Domain payloads returned by the market orchestrators.

Every payload carries a literal `kind` tag so the response envelope can hold
any of them as one discriminated union. Fields serialize in camelCase for the
dashboard frontend.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PayloadMetadata(CamelModel):
    calculated_at: str
    data_source: Literal["live", "synthetic", "mixed"] = "live"
    providers: List[str] = Field(default_factory=list, description="Providers that contributed data")


# ===========================
# Leverage
# ===========================

class LeverageState(str, Enum):
    SHORTS_CROWDED = "shorts-crowded"
    LONGS_CROWDED = "longs-crowded"
    BALANCED = "balanced"


class ExchangeOpenInterest(CamelModel):
    exchange: str
    value: float = Field(..., description="Open interest in billions USD")
    change_24h: Optional[float] = None


class OpenInterestSummary(CamelModel):
    total: float = Field(..., description="Estimated market-wide open interest in billions USD")
    change_24h: float
    change_7d: float
    exchanges: List[ExchangeOpenInterest]


class FundingSummary(CamelModel):
    current_8h: float
    annualized: float
    trend: Literal["positive", "negative", "neutral"]


class LeverageScore(CamelModel):
    oi: int
    funding: int
    momentum: int
    overall: int


class LeveragePayload(CamelModel):
    kind: Literal["leverage"] = "leverage"
    state: LeverageState
    status: str
    state_label: str
    color: Literal["green", "red", "yellow"]
    description: str
    sentiment: str
    recommendation: str
    funding_rate_8h: float = Field(..., description="Funding rate per 8h in percent")
    oi_mcap_ratio: float
    oi_delta_7d: float
    score: LeverageScore
    open_interest: OpenInterestSummary
    funding_rate: FundingSummary
    metadata: PayloadMetadata


# ===========================
# Funding
# ===========================

class FundingRateEntry(CamelModel):
    symbol: str
    asset: str
    exchange: str
    funding_rate: float
    funding_rate_pct: float
    next_funding_time: Optional[str] = None
    mark_price: Optional[float] = None


class FundingStatistics(CamelModel):
    total_pairs: int
    average_funding_rate: float
    highest_rate: Optional[float] = None
    lowest_rate: Optional[float] = None
    positive_rates: int
    negative_rates: int


class FundingPayload(CamelModel):
    kind: Literal["funding"] = "funding"
    exchange: str
    rates: List[FundingRateEntry]
    statistics: FundingStatistics
    averages: Dict[str, Optional[float]] = Field(default_factory=dict, description="Mean rate per asset")
    metadata: PayloadMetadata


# ===========================
# ETF flows
# ===========================

class EtfFlowDay(CamelModel):
    date: str
    etf: str
    name: str
    provider: str
    flow: float = Field(..., description="Estimated net flow in millions USD")
    price: float
    volume: float


class EtfBreakdown(CamelModel):
    etf: str
    name: str
    provider: str
    total_flow: float
    avg_daily_flow: float
    flow_days: int
    current_price: float
    performance: Literal["strong_inflow", "inflow", "outflow", "strong_outflow"]


class EtfFlowSummary(CamelModel):
    total_inflows: float
    total_outflows: float
    net_flow: float
    flow_trend: Literal["inflow", "outflow", "neutral"]
    etf_breakdown: List[EtfBreakdown]


class EtfFlowsPayload(CamelModel):
    kind: Literal["etf_flows"] = "etf_flows"
    date_range: str
    etf_filter: Optional[str] = None
    flows: List[EtfFlowDay]
    summary: EtfFlowSummary
    data_points: int
    unique_etfs: int
    average_daily_flow: float
    metadata: PayloadMetadata


# ===========================
# Treasury and liquidity
# ===========================

class YieldObservation(CamelModel):
    date: str
    rate: float = Field(..., alias="yield")


class TreasuryPayload(CamelModel):
    kind: Literal["treasury"] = "treasury"
    series_id: str
    name: str
    timeframe: str
    current: Optional[YieldObservation] = None
    change: Optional[float] = Field(None, description="Change over the window in basis points")
    observations: List[YieldObservation]
    metadata: PayloadMetadata


class LiquidityAnalysis(CamelModel):
    current_yield: float
    avg_7_day: float
    avg_30_day: float
    trend_7_day: float
    trend_30_day: float
    thirty_days_ago_yield: Optional[float] = None


class LiquidityPulse(CamelModel):
    score: int
    level: Literal["abundant", "adequate", "neutral", "tightening", "constrained"]
    description: str
    signals: List[str]
    analysis: Optional[LiquidityAnalysis] = None


class LiquidityPayload(CamelModel):
    kind: Literal["liquidity"] = "liquidity"
    timeframe: str
    pulse: LiquidityPulse
    treasury_2y: TreasuryPayload
    metadata: PayloadMetadata


# ===========================
# RSI
# ===========================

class RsiCurrent(CamelModel):
    value: float
    price: Optional[float] = None
    signal: Literal["overbought", "oversold", "bullish_momentum", "bearish_momentum", "neutral"]
    strength: Literal["strong", "moderate", "weak", "neutral"]
    timestamp: Optional[str] = None


class RsiStatistics(CamelModel):
    average: float
    maximum: float
    minimum: float
    volatility: float


class RsiSignals(CamelModel):
    overbought: int
    oversold: int
    neutral: int
    extreme_overbought: int
    extreme_oversold: int


class RsiRecommendation(CamelModel):
    action: Literal["buy", "sell", "hold", "watch"]
    confidence: Literal["high", "medium", "low"]
    description: str


class RsiPayload(CamelModel):
    kind: Literal["rsi"] = "rsi"
    symbol: str
    period: int
    timeframe: str
    current: RsiCurrent
    statistics: RsiStatistics
    signals: RsiSignals
    recommendation: RsiRecommendation
    values: List[float] = Field(default_factory=list, description="Recent RSI readings, oldest first")
    data_points: int
    metadata: PayloadMetadata


class RsiBulkPayload(CamelModel):
    kind: Literal["rsi_bulk"] = "rsi_bulk"
    timeframe: str
    results: Dict[str, Dict[str, RsiPayload]] = Field(..., description="symbol -> period -> result")
    cached_keys: int
    computed_keys: int
    metadata: PayloadMetadata
    stale_parts: List[str] = Field(default_factory=list, description="symbol/period results served from older golden data")


class RsiSummaryItem(CamelModel):
    value: float
    signal: str
    strength: str
    price: Optional[float] = None
    recommendation: str
    confidence: str
    data_source: Literal["live", "synthetic"]


class RsiSummaryPayload(CamelModel):
    kind: Literal["rsi_summary"] = "rsi_summary"
    period: int
    timeframe: str
    symbols: Dict[str, RsiSummaryItem]
    metadata: PayloadMetadata
    stale_parts: List[str] = Field(default_factory=list, description="Symbols served from older golden data")


MarketPayload = Annotated[
    Union[
        LeveragePayload,
        FundingPayload,
        EtfFlowsPayload,
        TreasuryPayload,
        LiquidityPayload,
        RsiPayload,
        RsiBulkPayload,
        RsiSummaryPayload,
    ],
    Field(discriminator="kind"),
]
