"""
Fixed-window rate limiter with progressive slow-down for /api routes.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TYPE_CHECKING

from fastapi import Request, Response

from shared.base_service import get_client_ip
from shared.errors import RateLimitError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class FixedWindowRateLimiter:
    """In-memory per-client request counter over a fixed window.

    Requests past ``max_requests`` in a window are rejected. Requests past
    ``delay_after`` are allowed but delayed by ``delay_ms`` for every request
    above that threshold.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        *,
        delay_after: int = 50,
        delay_ms: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.delay_after = delay_after
        self.delay_ms = delay_ms
        self._clock = clock
        self.logger = get_logger("performance.rate_limiter")

        # client_id -> (window_start, count)
        self._windows: Dict[str, Tuple[float, int]] = {}

    def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        """Count a request for ``client_id`` and decide whether it may proceed."""
        now = self._clock()
        self._purge(now)

        window_start, count = self._windows.get(client_id, (now, 0))
        count += 1
        self._windows[client_id] = (window_start, count)
        reset_in = max(0.0, self.window_seconds - (now - window_start))

        if count > self.max_requests:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=count,
                limit=self.max_requests
            )
            return {
                "allowed": False,
                "current_count": count,
                "limit": self.max_requests,
                "remaining": 0,
                "reset_in_seconds": int(reset_in),
                "delay_seconds": 0.0,
            }

        delay_seconds = 0.0
        if count > self.delay_after:
            delay_seconds = (count - self.delay_after) * self.delay_ms / 1000

        return {
            "allowed": True,
            "current_count": count,
            "limit": self.max_requests,
            "remaining": max(0, self.max_requests - count),
            "reset_in_seconds": int(reset_in),
            "delay_seconds": delay_seconds,
        }

    def get_rate_limit_status(self, client_id: str) -> Dict[str, Any]:
        """Get current rate limit status without counting a request."""
        now = self._clock()
        window_start, count = self._windows.get(client_id, (now, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0
        return {
            "current_count": count,
            "limit": self.max_requests,
            "remaining": max(0, self.max_requests - count),
            "reset_in_seconds": int(max(0.0, self.window_seconds - (now - window_start)))
        }

    def reset_rate_limit(self, client_id: str) -> bool:
        """Reset rate limit for a client."""
        removed = self._windows.pop(client_id, None) is not None
        if removed:
            self.logger.info("Rate limit reset", client_id=client_id)
        return removed

    def get_global_stats(self) -> Dict[str, Any]:
        """Get global rate limiting statistics."""
        self._purge(self._clock())
        total_clients = len(self._windows)
        total_requests = sum(count for _, count in self._windows.values())
        return {
            "total_clients": total_clients,
            "total_requests": total_requests,
            "average_requests_per_client": total_requests / max(1, total_clients)
        }

    def _purge(self, now: float) -> None:
        stale = [
            client_id for client_id, (window_start, _) in self._windows.items()
            if now - window_start >= self.window_seconds
        ]
        for client_id in stale:
            del self._windows[client_id]


class RateLimitMiddleware:
    """Applies the limiter to a request and paces throttled callers."""

    def __init__(
        self,
        rate_limiter: FixedWindowRateLimiter,
        *,
        metrics: Optional["MetricsCollector"] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self._sleep = sleep
        self.logger = get_logger("performance.rate_limit_middleware")

    async def check_request(self, request: Request) -> Dict[str, Any]:
        """Check rate limit for request, delaying or rejecting it as needed."""
        client_id = get_client_ip(request)
        result = self.rate_limiter.check_rate_limit(client_id)

        if not result["allowed"]:
            if self.metrics:
                self.metrics.increment_counter("rate_limit_rejections_total")
            raise RateLimitError(details={
                "limit": result["limit"],
                "current_count": result["current_count"],
                "reset_in_seconds": result["reset_in_seconds"],
            })

        if result["delay_seconds"] > 0:
            self.logger.info(
                "Slowing down client",
                client_id=client_id,
                delay_seconds=result["delay_seconds"],
                current_count=result["current_count"]
            )
            await self._sleep(result["delay_seconds"])

        return result

    @staticmethod
    def set_headers(response: Response, result: Dict[str, Any]) -> None:
        """Propagate rate limiting metadata via standard headers."""
        response.headers["X-RateLimit-Limit"] = str(result["limit"])
        response.headers["X-RateLimit-Remaining"] = str(result["remaining"])
        response.headers["X-RateLimit-Reset"] = str(result["reset_in_seconds"])
