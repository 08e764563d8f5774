from typing import Literal, Optional

from pydantic import Field

from market_dashboard.models.payloads import CamelModel, MarketPayload

class ResponseMetadata(CamelModel):
    """How the payload was resolved"""
    data_source: Literal["live", "synthetic", "mixed"] = Field(..., description="Origin of the underlying data")
    served_from: Literal["cache", "golden", "live", "synthetic", "aggregate"] = Field(..., description="Layer that answered")
    cache_key: Optional[str] = None
    fresh: bool = True
    golden_tier: Optional[str] = None
    age_minutes: Optional[int] = None
    resolved_at: str

class ApiResponse(CamelModel):
    """Envelope returned by every market endpoint"""
    success: bool = True
    data: MarketPayload
    metadata: ResponseMetadata
    warning: Optional[str] = None

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

class ErrorResponse(CamelModel):
    success: bool = False
    message: str
