from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from market_dashboard.models.payloads import CamelModel

class GoldenTier(str, Enum):
    """Freshness ladder; entries only move down it until rewritten"""
    FRESH = "fresh"
    STALE = "stale"
    ARCHIVED = "archived"
    FALLBACK = "fallback"

    def next_tier(self):
        ladder = list(GoldenTier)
        position = ladder.index(self)
        return ladder[position + 1] if position + 1 < len(ladder) else None

class GoldenEntry(CamelModel):
    """Last known good payload for one data type, as persisted on disk"""
    data_type: str
    data: Any
    timestamp: datetime = Field(..., description="Time of the successful fetch")
    tier: GoldenTier
    expires_at: datetime = Field(..., description="Time the current tier ends")
    source: str = "api_success"
    data_points: int = 0

    @field_validator('timestamp', 'expires_at')
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # Naive times in hand-edited files are read as UTC
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)
