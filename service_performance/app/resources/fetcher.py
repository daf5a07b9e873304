"""
Cache-aside fetcher for the logical resources.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from shared.errors import InvalidResourceKey, UpstreamFailure, UpstreamTimeout
from shared.logging import get_logger

from service_performance.app.caching import SingleFlight, TTLCache
from service_performance.app.resources.registry import resolve_resource

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from service_performance.app.upstream.simulators import UpstreamSimulator


CACHE = "cache"
ORIGIN = "origin"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single resource fetch."""

    resource_key: str
    payload: Any
    source: str
    duration_ms: float
    shared: bool = False

    @property
    def cache_hit(self) -> bool:
        return self.source == CACHE

    def performance(self, endpoint: str, optimization: str) -> Dict[str, Any]:
        """Timing metadata attached to the HTTP response."""
        return {
            "durationMs": self.duration_ms,
            "duration": f"{self.duration_ms:.0f}ms",
            "endpoint": endpoint,
            "optimization": optimization,
            "source": self.source,
            "cacheHit": self.cache_hit,
        }


class ResourceFetcher:
    """Reads resources through the cache, falling back to their upstream.

    Without a cache every fetch goes to the upstream; that is the
    unoptimized path. With one, concurrent misses for a key share a single
    upstream call and the result is written back before it is returned.
    """

    def __init__(
        self,
        simulators: Mapping[str, "UpstreamSimulator"],
        cache: Optional[TTLCache] = None,
        *,
        ttl_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = 5.0,
        metrics: Optional["MetricsCollector"] = None,
        single_flight: Optional[SingleFlight] = None,
    ) -> None:
        self.simulators = dict(simulators)
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self.single_flight = single_flight or SingleFlight()
        self.logger = get_logger("performance.fetcher")

        if metrics is not None and cache is not None:
            metrics.track_gauge("cache_entries", lambda: len(cache))

    async def fetch(self, resource_key: str) -> FetchResult:
        """Return ``resource_key`` from the cache or its upstream."""
        simulator = self._simulator_for(resource_key)
        start = time.perf_counter()

        if self.cache is None:
            payload = await self._call_upstream(simulator)
            return FetchResult(resource_key, payload, ORIGIN, self._elapsed_ms(start))

        cached = self.cache.get(resource_key)
        if cached is not None:
            self._record_cache_access(resource_key, hit=True)
            return FetchResult(resource_key, cached, CACHE, self._elapsed_ms(start))

        self._record_cache_access(resource_key, hit=False)
        payload, shared = await self.single_flight.do(resource_key, lambda: self._load(simulator))
        if shared and self.metrics:
            self.metrics.increment_counter("single_flight_joins_total", resource=resource_key)

        return FetchResult(resource_key, payload, ORIGIN, self._elapsed_ms(start), shared=shared)

    def invalidate(self, resource_key: Optional[str] = None) -> int:
        """Drop one cached resource, or all of them when no key is given."""
        if self.cache is None:
            return 0
        if resource_key is None:
            cleared = self.cache.clear()
        else:
            resolve_resource(resource_key)
            cleared = int(self.cache.delete(resource_key))
        return cleared

    async def _load(self, simulator: "UpstreamSimulator") -> Any:
        payload = await self._call_upstream(simulator)
        assert self.cache is not None
        self.cache.set(simulator.resource, payload, self.ttl_seconds)
        return payload

    async def _call_upstream(self, simulator: "UpstreamSimulator") -> Any:
        resource = simulator.resource
        timer = (
            self.metrics.time_operation("upstream_duration_seconds", resource=resource)
            if self.metrics
            else contextlib.nullcontext()
        )
        with timer:
            try:
                if self.timeout_seconds is None:
                    return await simulator.call()
                return await asyncio.wait_for(simulator.call(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                self._record_failure(resource, "timeout")
                self.logger.error("Upstream call timed out", resource=resource, timeout_seconds=self.timeout_seconds)
                raise UpstreamTimeout(resource, self.timeout_seconds)
            except UpstreamFailure as exc:
                self._record_failure(resource, "error")
                self.logger.error("Upstream call failed", resource=resource, error=exc.message)
                raise
            except Exception as exc:
                self._record_failure(resource, "error")
                self.logger.error("Upstream call failed", resource=resource, error=str(exc))
                raise UpstreamFailure(resource, str(exc)) from exc

    def _simulator_for(self, resource_key: str) -> "UpstreamSimulator":
        resolve_resource(resource_key)
        simulator = self.simulators.get(resource_key)
        if simulator is None:
            raise InvalidResourceKey(resource_key, known=list(self.simulators))
        return simulator

    def _record_cache_access(self, resource_key: str, hit: bool) -> None:
        self.logger.debug("Cache hit" if hit else "Cache miss", resource=resource_key)
        if self.metrics:
            self.metrics.record_cache_access(resource_key, hit)

    def _record_failure(self, resource: str, reason: str) -> None:
        if self.metrics:
            self.metrics.record_upstream_failure(resource, reason)

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 3)
