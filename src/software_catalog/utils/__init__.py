"""
Shared helpers for provider I/O.
"""

from software_catalog.utils.rate_limiter import IntervalLimiter, RateLimiter, RateLimiterConfig

__all__ = [
    "IntervalLimiter",
    "RateLimiter",
    "RateLimiterConfig",
]
