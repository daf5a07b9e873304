"""
Rate limiting package for the Performance Optimization service.

Holds the fixed-window limiter and the request hook that throttles and then
rejects callers of the /api routes.
"""

from .limiter import FixedWindowRateLimiter, RateLimitMiddleware

__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitMiddleware",
]
