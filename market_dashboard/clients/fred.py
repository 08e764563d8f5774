from datetime import date, timedelta
from typing import Dict, List, Optional

from market_dashboard.clients.base import ProviderClient
from market_dashboard.core.exceptions import ProviderError


class FredClient(ProviderClient):
    """St. Louis Fed economic data (treasury yields)"""

    name = "fred"

    def __init__(self, *args, api_key: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_key = api_key

    async def observations(self, series_id: str, days: int, today: date) -> List[Dict]:
        """Observations for the last `days` days, oldest first, missing values dropped"""
        if not self.api_key:
            raise ProviderError(self.name, "FRED API key not configured")

        data = await self.get_json("/series/observations", {
            "series_id": series_id,
            "api_key": self.api_key,
            "file_type": "json",
            "observation_start": (today - timedelta(days=days)).isoformat(),
            "observation_end": today.isoformat(),
            "sort_order": "desc",
            "limit": min(days + 10, 1000),
        })

        observations = [
            {"date": obs["date"], "yield": float(obs["value"])}
            for obs in data.get("observations", [])
            if obs.get("value") not in (None, ".", "")
        ]
        if not observations:
            raise ProviderError(self.name, f"no observations for {series_id}")
        observations.reverse()
        return observations
