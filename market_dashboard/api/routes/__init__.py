"""
API route modules
"""

from market_dashboard.api.routes import (
    health,
    market,
    rsi
)

__all__ = [
    "health",
    "market",
    "rsi"
]
