"""
Performance Optimization service: slow vs. cached/parallel resource endpoints.
"""

import asyncio
import contextlib
from typing import Dict, Mapping, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig

from service_performance.app.caching import TTLCache
from service_performance.app.ratelimit import FixedWindowRateLimiter, RateLimitMiddleware
from service_performance.app.reporting import MetricsReporter
from service_performance.app.resources import (
    RESOURCE_NAMES,
    BatchAggregator,
    ResourceFetcher,
    resolve_resource,
)
from service_performance.app.upstream import FAST, SLOW, UpstreamSimulator, build_simulators


class PerformanceService(BaseService):
    """Performance Optimization service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        fast_simulators: Optional[Mapping[str, UpstreamSimulator]] = None,
        slow_simulators: Optional[Mapping[str, UpstreamSimulator]] = None,
        cache: Optional[TTLCache] = None,
    ):
        super().__init__("performance", config)

        self.cache = cache if cache is not None else TTLCache(
            self.config.cache_ttl_seconds,
            max_entries=self.config.max_entries,
        )
        if fast_simulators is None:
            fast_simulators = build_simulators(
                FAST,
                delay_scale=self.config.upstream_delay_scale,
                failing=self.config.failing_resources,
            )
        if slow_simulators is None:
            slow_simulators = build_simulators(
                SLOW,
                delay_scale=self.config.upstream_delay_scale,
                failing=self.config.failing_resources,
            )

        self.fetcher = ResourceFetcher(
            fast_simulators,
            self.cache,
            ttl_seconds=self.config.cache_ttl_seconds,
            timeout_seconds=self.config.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self.slow_fetcher = ResourceFetcher(
            slow_simulators,
            timeout_seconds=self.config.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self.batch = BatchAggregator(self.fetcher, metrics=self.metrics)
        self.reporter = MetricsReporter(self.cache)

        self.rate_limiter = FixedWindowRateLimiter(
            self.config.rate_limit_max_requests,
            self.config.rate_limit_window_seconds,
            delay_after=self.config.slow_down_after,
            delay_ms=self.config.slow_down_delay_ms,
        )
        self.rate_limit_middleware = RateLimitMiddleware(self.rate_limiter, metrics=self.metrics)
        self._sweeper: Optional["asyncio.Task[None]"] = None

        self._setup_performance_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.performance_service = self

    async def on_startup(self) -> None:
        """Start the expired-entry sweep."""
        period = self.config.cache_check_period_seconds
        if period > 0 and self._sweeper is None:
            self._sweeper = asyncio.ensure_future(self._sweep_expired(period))

    async def on_shutdown(self) -> None:
        """Stop the sweep and drop cached entries."""
        sweeper, self._sweeper = self._sweeper, None
        try:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper
        except Exception as exc:
            self.logger.error("Cache sweep failed", error=str(exc))
        finally:
            self.cache.clear()

    async def _sweep_expired(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            purged = self.cache.purge_expired()
            if purged:
                self.logger.info("Expired cache entries purged", count=purged)

    async def _enforce_rate_limit(self, request: Request, response: Response) -> None:
        """Throttle /api callers and report the budget in headers."""
        if not self.config.rate_limit_enabled:
            return
        result = await self.rate_limit_middleware.check_request(request)
        RateLimitMiddleware.set_headers(response, result)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report the state of in-process components."""
        return {
            "cache": "ok",
            "sweeper": "ok" if self._sweeper is None or not self._sweeper.done() else "error",
        }

    def _setup_performance_routes(self):
        """Set up resource, batch, cache and reporting routes."""

        async def get_fast_resource(name: str, request: Request):
            """Cached read of a single resource."""
            definition = resolve_resource(name)
            result = await self.fetcher.fetch(name)
            return {
                "success": True,
                "data": result.payload,
                "performance": result.performance(request.url.path, definition.optimization),
            }

        async def get_fast_batch(
            request: Request,
            resources: Optional[str] = Query(
                None,
                description="Comma-separated resource names; defaults to every resource",
            ),
        ):
            """Parallel cached read of several resources."""
            keys = None
            if resources is not None:
                keys = [name.strip() for name in resources.split(",") if name.strip()]
            result = await self.batch.fetch_all(keys)
            return {
                "success": True,
                "data": result.data,
                "performance": result.performance(request.url.path),
            }

        async def get_slow_resource(name: str, request: Request):
            """Uncached read straight from the slow upstream."""
            resolve_resource(name)
            result = await self.slow_fetcher.fetch(name)
            return {
                "success": True,
                "data": result.payload,
                "performance": result.performance(request.url.path, "NONE"),
            }

        rate_limited = [Depends(self._enforce_rate_limit)]

        fast_router = APIRouter(prefix="/api/fast", dependencies=rate_limited, tags=["fast"])
        fast_router.add_api_route("/batch", get_fast_batch, methods=["GET"])
        fast_router.add_api_route("/{name}", get_fast_resource, methods=["GET"])

        slow_router = APIRouter(prefix="/api/slow", dependencies=rate_limited, tags=["slow"])
        slow_router.add_api_route("/{name}", get_slow_resource, methods=["GET"])

        resource_router = APIRouter(prefix="/resource", tags=["resource"])
        resource_router.add_api_route("/batch", get_fast_batch, methods=["GET"])
        resource_router.add_api_route("/{name}", get_fast_resource, methods=["GET"])

        cache_router = APIRouter(prefix="/api/cache", dependencies=rate_limited, tags=["cache"])

        @cache_router.delete("")
        async def clear_cache():
            """Drop every cached resource."""
            cleared = self.fetcher.invalidate()
            self.logger.info("Cache cleared on request", cleared=cleared)
            return {"success": True, "cleared": cleared}

        @cache_router.delete("/{name}")
        async def invalidate_resource(name: str):
            """Drop one cached resource."""
            cleared = self.fetcher.invalidate(name)
            return {"success": True, "resource": name, "cleared": cleared}

        for router in (fast_router, slow_router, resource_router, cache_router):
            self.app.include_router(router)

        @self.app.get("/metrics")
        async def metrics_report():
            """Cache occupancy and process resource usage."""
            return self.reporter.report()

        @self.app.get("/api/performance/metrics", dependencies=rate_limited)
        async def performance_metrics():
            """Alias of /metrics under the rate-limited /api prefix."""
            return self.reporter.report()

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "performance",
                "message": "Performance Optimization - slow vs. cached endpoints",
                "version": "1.0.0",
                "resources": list(RESOURCE_NAMES),
                "endpoints": {
                    "health": "/health",
                    "slow": "/api/slow/{name}",
                    "fast": "/api/fast/{name}",
                    "batch": "/api/fast/batch",
                    "metrics": "/metrics",
                    "prometheus": "/metrics/prometheus",
                },
            }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = PerformanceService(config)
    return service.app


if __name__ == "__main__":
    service = PerformanceService()
    service.run()
