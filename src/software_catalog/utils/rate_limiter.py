"""
Request throttling for metadata providers.

RateLimiter is a token bucket for APIs with a per-minute quota (RAWG).
IntervalLimiter enforces a fixed minimum gap between requests, used to
keep the CNET scraper at one request every two seconds.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from software_catalog.logger import get_logger


@dataclass
class RateLimiterConfig:
    """Configuration for the token bucket."""

    requests_per_minute: int = 40
    burst_size: int = 5


@dataclass
class RateLimiter:
    """
    Token bucket limiter.

    Up to burst_size requests pass immediately; after that requests are
    spaced to requests_per_minute.

    Example:
        >>> limiter = RateLimiter(RateLimiterConfig(requests_per_minute=40))
        >>> async with limiter:
        ...     await client.get(url)
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"
    _tokens: float = field(init=False)
    _updated_at: float = field(init=False)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)
    _logger: Any = field(init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.burst_size)
        self._updated_at = time.monotonic()
        self._logger = get_logger(__name__, component="rate_limiter", limiter=self.name)

    @property
    def _refill_rate(self) -> float:
        """Tokens per second."""
        return self.config.requests_per_minute / 60.0

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated_at
        self._tokens = min(float(self.config.burst_size), self._tokens + elapsed * self._refill_rate)
        self._updated_at = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                wait_seconds = (1 - self._tokens) / self._refill_rate
                self._logger.debug("Throttling request", wait_seconds=round(wait_seconds, 2))
                await asyncio.sleep(wait_seconds)
                self._refill()
            self._tokens -= 1

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass

    @property
    def available_tokens(self) -> float:
        """Current token count (for monitoring)."""
        self._refill()
        return self._tokens


class IntervalLimiter:
    """
    Enforces a minimum interval between consecutive requests.

    The first request passes immediately. Waiting callers are released
    one at a time, each at least min_interval seconds after the previous.
    """

    def __init__(self, min_interval_seconds: float, name: str = "interval") -> None:
        self.min_interval = min_interval_seconds
        self._last_request: float | None = None
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__, component="rate_limiter", limiter=name)

    async def acquire(self) -> None:
        async with self._lock:
            if self._last_request is not None:
                wait_seconds = self.min_interval - (time.monotonic() - self._last_request)
                if wait_seconds > 0:
                    self._logger.debug("Throttling request", wait_seconds=round(wait_seconds, 2))
                    await asyncio.sleep(wait_seconds)
            self._last_request = time.monotonic()

    async def __aenter__(self) -> "IntervalLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass
