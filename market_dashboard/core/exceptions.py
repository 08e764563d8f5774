"""
Error taxonomy for provider calls and orchestration
"""

from typing import Dict, Optional


class ProviderError(Exception):
    """A single call to a third-party data provider failed"""

    retryable = False

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class RateLimitedError(ProviderError):
    """Provider answered 429"""

    retryable = True


class ProviderConnectionError(ProviderError):
    """Provider could not be reached"""

    retryable = True


class ProviderUnavailableError(ProviderError):
    """Circuit breaker for the provider is open"""


class AllProvidersFailedError(Exception):
    """Every call of a best-effort join failed"""

    def __init__(self, domain: str, failures: Dict[str, BaseException]):
        self.domain = domain
        self.failures = failures
        detail = "; ".join(f"{name}: {exc}" for name, exc in failures.items()) or "no providers configured"
        super().__init__(f"All {domain} providers failed ({detail})")
