"""Async rate limiting for model API calls.

Uses aiolimiter for token-bucket rate limiting and tracks in-flight requests.
One limiter per endpoint base URL so separately configured endpoints do not
throttle each other.
"""

from __future__ import annotations

from aiolimiter import AsyncLimiter

from app.core.logging import get_logger

logger = get_logger(__name__)


class ProviderRateLimiter:
    """Rate limiter for one model endpoint.

    Combines:
    - Token bucket rate limiting (requests per time window)
    - In-flight request accounting with a high-concurrency warning
    """

    def __init__(
        self,
        name: str,
        max_rate: float,
        time_period: float = 60.0,
        max_concurrent: int = 10,
    ) -> None:
        """Initialize rate limiter.

        Args:
            name: Endpoint name for logging.
            max_rate: Maximum requests per time_period.
            time_period: Time window in seconds.
            max_concurrent: In-flight count above which a warning is logged.
        """
        self.name = name
        self.limiter = AsyncLimiter(max_rate, time_period)
        self.max_concurrent = max_concurrent
        self._active = 0

    async def acquire(self) -> None:
        """Acquire rate limit token. Blocks until available."""
        await self.limiter.acquire()
        self._active += 1
        if self._active > self.max_concurrent * 0.8:
            logger.info(
                "rate_limiter_high_concurrency",
                provider=self.name,
                active=self._active,
                max_concurrent=self.max_concurrent,
            )

    def release(self) -> None:
        """Release concurrency slot."""
        self._active = max(0, self._active - 1)

    @property
    def active_requests(self) -> int:
        return self._active


_limiters: dict[str, ProviderRateLimiter] = {}


def get_limiter(base_url: str, max_rate: float = 60.0) -> ProviderRateLimiter:
    """Get (or lazily create) the limiter for a model endpoint."""
    limiter = _limiters.get(base_url)
    if limiter is None:
        limiter = ProviderRateLimiter(base_url, max_rate=max_rate, time_period=60)
        _limiters[base_url] = limiter
    return limiter
