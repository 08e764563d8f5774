"""
Ordered resolution strategies.

A lookup is expressed as a list of named strategies (cache, golden, live,
synthetic, ...). Each strategy returns a Resolution, either a hit carrying the
value or a miss carrying the reason, and the chain stops at the first hit.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Outcome of one resolution step"""

    value: Any = None
    source: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.source is not None

    @classmethod
    def hit(cls, value: Any, source: str, /, **metadata) -> "Resolution":
        """Metadata keys may shadow the field names (golden entries carry their own source)"""
        return cls(value=value, source=source, metadata=metadata)

    @classmethod
    def miss(cls, reason: str, error: Optional[BaseException] = None) -> "Resolution":
        return cls(reason=reason, error=error)


Strategy = Callable[[], Awaitable[Resolution]]


class ResolutionChain:
    """Evaluates strategies in order and returns the first hit"""

    def __init__(self, strategies: Sequence[Tuple[str, Strategy]], label: str = ""):
        self.strategies = list(strategies)
        self.label = label

    async def run(self) -> Resolution:
        reasons: List[str] = []
        last_error: Optional[BaseException] = None

        for name, strategy in self.strategies:
            result = await strategy()
            if result.ok:
                if reasons:
                    logger.debug(f"{self.label} resolved by {name} after: {'; '.join(reasons)}")
                return result

            reasons.append(f"{name}: {result.reason}")
            if result.error is not None:
                last_error = result.error

        return Resolution.miss("; ".join(reasons), error=last_error)
