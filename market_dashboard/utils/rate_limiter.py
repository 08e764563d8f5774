"""
Per-provider request throttling.

Each provider gets a reservoir of requests that refills every window, a cap on
concurrent requests and a minimum spacing between request starts. Callers that
exceed the budget wait in line instead of firing.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for one provider's limiter"""
    reservoir: int = 60  # Requests per refresh window
    refresh_interval: float = 60.0  # Seconds
    max_concurrent: int = 1
    min_time: float = 0.0  # Seconds between request starts


class ProviderRateLimiter:
    """Reservoir limiter with bounded concurrency"""

    def __init__(self, name: str, config: RateLimitConfig):
        self.name = name
        self.config = config
        self._tokens = float(config.reservoir)
        self._last_refill = time.monotonic()
        self._last_start: Optional[float] = None
        self._semaphore = asyncio.Semaphore(max(1, int(config.max_concurrent)))
        self._lock = asyncio.Lock()
        self.queued = 0
        self.running = 0

    def _refill(self, now: float):
        if now - self._last_refill >= self.config.refresh_interval:
            self._tokens = float(self.config.reservoir)
            self._last_refill = now

    def _wait_time(self, now: float) -> float:
        wait = 0.0
        if self._tokens < 1:
            wait = self.config.refresh_interval - (now - self._last_refill)
        if self._last_start is not None:
            wait = max(wait, self.config.min_time - (now - self._last_start))
        return wait

    async def acquire(self):
        """Wait for a concurrency slot and a token"""
        self.queued += 1
        try:
            await self._semaphore.acquire()
        finally:
            self.queued -= 1

        try:
            async with self._lock:
                while True:
                    now = time.monotonic()
                    self._refill(now)
                    wait = self._wait_time(now)
                    if wait <= 0:
                        break
                    logger.debug(f"{self.name} limiter saturated, waiting {wait:.2f}s")
                    await asyncio.sleep(wait)

                self._tokens -= 1
                self._last_start = time.monotonic()
        except BaseException:
            self._semaphore.release()
            raise

        self.running += 1

    def release(self):
        self.running -= 1
        self._semaphore.release()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.release()

    def get_stats(self) -> dict:
        return {
            "tokens": int(self._tokens),
            "reservoir": self.config.reservoir,
            "queued": self.queued,
            "running": self.running,
        }


class RateLimiterRegistry:
    """Lazily builds one limiter per provider from configured limits"""

    def __init__(self, limits: Mapping[str, Mapping[str, float]]):
        self._configs: Dict[str, RateLimitConfig] = {
            name: RateLimitConfig(**values) for name, values in limits.items()
        }
        self._limiters: Dict[str, ProviderRateLimiter] = {}

    def get(self, provider: str) -> ProviderRateLimiter:
        if provider not in self._limiters:
            config = self._configs.get(provider, RateLimitConfig())
            self._limiters[provider] = ProviderRateLimiter(provider, config)
        return self._limiters[provider]

    def get_stats(self) -> Dict[str, dict]:
        return {name: limiter.get_stats() for name, limiter in self._limiters.items()}
