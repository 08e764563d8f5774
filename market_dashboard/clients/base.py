import logging
from contextlib import nullcontext
from typing import Any, Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from market_dashboard.core.exceptions import (
    ProviderConnectionError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitedError,
)
from market_dashboard.utils.circuit_breaker import CircuitBreaker
from market_dashboard.utils.rate_limiter import ProviderRateLimiter

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


class ProviderClient:
    """Async JSON client for one market data provider.

    Every request goes through the provider's rate limiter and circuit
    breaker, carries an explicit timeout, and is retried with exponential
    backoff on 429 and connection errors. All failures surface as
    ProviderError so orchestrators can treat them uniformly.
    """

    name = "provider"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        limiter: Optional[ProviderRateLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_retries: int = 2,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.limiter = limiter
        self.breaker = breaker
        self.max_retries = max_retries
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self.breaker is not None and not self.breaker.allow_request():
            raise ProviderUnavailableError(self.name, "circuit open, skipping request")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    data = await self._send(path, params)
        except ProviderError:
            if self.breaker is not None:
                self.breaker.record_failure()
            raise

        if self.breaker is not None:
            self.breaker.record_success()
        return data

    async def _send(self, path: str, params: Optional[Dict[str, Any]]) -> Any:
        async with (self.limiter or nullcontext()):
            try:
                response = await self.client.get(path, params=params)
            except httpx.TimeoutException as e:
                raise ProviderError(self.name, f"timed out after {self.timeout}s") from e
            except httpx.TransportError as e:
                raise ProviderConnectionError(self.name, f"connection failed: {e}") from e

        if response.status_code == 429:
            logger.warning(f"{self.name} rate limited: {path}")
            raise RateLimitedError(self.name, "rate limited", status_code=429)
        if response.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {response.status_code} for {path}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"invalid JSON from {path}") from e

    async def aclose(self):
        await self.client.aclose()
