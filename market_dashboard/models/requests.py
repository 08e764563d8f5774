from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from market_dashboard.utils import validators

class RsiRequest(BaseModel):
    """Single RSI request with validation"""
    symbol: str
    period: int = 14
    timeframe: str = "7D"

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v):
        return validators.validate_symbol(v)

    @field_validator('period')
    @classmethod
    def validate_period(cls, v):
        return validators.validate_rsi_period(v)

    @field_validator('timeframe')
    @classmethod
    def validate_timeframe(cls, v):
        return validators.validate_rsi_timeframe(v)

class RsiBulkRequest(BaseModel):
    """Symbols x periods RSI request; lists may arrive comma separated"""
    symbols: List[str] = Field(default_factory=lambda: list(validators.DEFAULT_RSI_SYMBOLS))
    periods: List[int] = Field(default_factory=lambda: list(validators.DEFAULT_RSI_PERIODS))
    timeframe: str = "7D"

    @field_validator('symbols', mode='before')
    @classmethod
    def validate_symbols(cls, v):
        if isinstance(v, (list, tuple)):
            v = ",".join(str(s) for s in v)
        return validators.parse_symbol_list(v, default=list(validators.DEFAULT_RSI_SYMBOLS))

    @field_validator('periods', mode='before')
    @classmethod
    def validate_periods(cls, v):
        if isinstance(v, (list, tuple)):
            v = ",".join(str(p) for p in v)
        return validators.parse_period_list(v, default=list(validators.DEFAULT_RSI_PERIODS))

    @field_validator('timeframe')
    @classmethod
    def validate_timeframe(cls, v):
        return validators.validate_rsi_timeframe(v)

class FundingRequest(BaseModel):
    exchange: str = "all"
    symbol: Optional[str] = None

    @field_validator('exchange')
    @classmethod
    def validate_exchange(cls, v):
        return validators.validate_exchange(v)

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v):
        return validators.validate_symbol(v) if v else None

class EtfFlowsRequest(BaseModel):
    date_range: str = "30D"
    etf: Optional[str] = None

    @field_validator('date_range')
    @classmethod
    def validate_range(cls, v):
        return validators.validate_etf_range(v)

    @field_validator('etf')
    @classmethod
    def validate_etf(cls, v):
        if not v:
            return None
        return validators.validate_etf_ticker(v)

class TreasuryRequest(BaseModel):
    series_id: str = "DGS2"
    timeframe: str = "30D"

    @field_validator('series_id')
    @classmethod
    def validate_series(cls, v):
        return validators.validate_treasury_series(v)

    @field_validator('timeframe')
    @classmethod
    def validate_timeframe(cls, v):
        return validators.validate_liquidity_timeframe(v)

class GoldenImportRequest(BaseModel):
    """Payload produced by the golden dataset export endpoint"""
    dataset: Dict[str, Any]
    version: Optional[str] = None
