"""
Circuit breakers for third-party providers.

After `failure_threshold` consecutive failures a provider is skipped for
`recovery_timeout` seconds; one trial call is then allowed (half-open) and
its outcome closes or re-opens the circuit.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if provider recovered


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3
    recovery_timeout: float = 120.0
    half_open_retries: int = 1


class CircuitBreaker:
    """Circuit breaker for one provider"""

    def __init__(self, name: str, config: CircuitBreakerConfig,
                 clock: Callable[[], float] = time.time):
        self.name = name
        self.config = config
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.next_attempt_time: Optional[float] = None
        self._half_open_calls = 0

    def allow_request(self) -> bool:
        """Whether a call may go out now; moves OPEN to HALF_OPEN once recovery time passed"""
        if self.state == CircuitState.OPEN:
            if self.next_attempt_time is not None and self.clock() >= self.next_attempt_time:
                self.state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                logger.info(f"Circuit {self.name} HALF_OPEN, trying recovery")
            else:
                return False

        if self.state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.config.half_open_retries:
                return False
            self._half_open_calls += 1

        return True

    def record_success(self):
        self.success_count += 1
        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit {self.name} CLOSED after successful recovery")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.next_attempt_time = None

    def record_failure(self):
        self.failure_count += 1
        self.success_count = 0
        now = self.clock()
        self.last_failure_time = now

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.config.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(f"Circuit {self.name} OPEN after {self.failure_count} failures")
            self.state = CircuitState.OPEN
            self.next_attempt_time = now + self.config.recovery_timeout

    def reset(self):
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        self.next_attempt_time = None
        self._half_open_calls = 0
        logger.info(f"Circuit {self.name} manually reset")

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "failureCount": self.failure_count,
            "successCount": self.success_count,
            "lastFailureTime": self.last_failure_time,
            "nextAttemptTime": self.next_attempt_time,
        }


class CircuitBreakerRegistry:
    """One breaker per provider, policies from settings with a default entry"""

    def __init__(self, policies: Mapping[str, Mapping[str, float]],
                 clock: Callable[[], float] = time.time):
        self._policies = {name: dict(values) for name, values in policies.items()}
        self._breakers: Dict[str, CircuitBreaker] = {}
        self.clock = clock

    def get(self, provider: str) -> CircuitBreaker:
        if provider not in self._breakers:
            policy = self._policies.get(provider, self._policies.get("default", {}))
            self._breakers[provider] = CircuitBreaker(provider, CircuitBreakerConfig(**policy), clock=self.clock)
        return self._breakers[provider]

    def reset(self, provider: str) -> bool:
        breaker = self._breakers.get(provider)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def get_status(self) -> Dict[str, dict]:
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}
