"""
Unit tests for the cache-aside resource fetcher.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import InvalidResourceKey, UpstreamFailure, UpstreamTimeout
from shared.metrics import MetricsCollector
from service_performance.app.caching import TTLCache
from service_performance.app.resources.fetcher import CACHE, ORIGIN, ResourceFetcher
from service_performance.app.resources.registry import DATABASE, EXTERNAL_API
from service_performance.app.upstream import UpstreamSimulator, build_simulators


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestResourceFetcher:
    """Test cases for ResourceFetcher."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return TTLCache(300, clock=clock)

    @pytest.fixture
    def simulators(self):
        """Fast simulators with near-zero latency."""
        return build_simulators(delay_scale=0.01)

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("performance-test")

    @pytest.fixture
    def fetcher(self, simulators, cache, metrics):
        """Create a cached fetcher."""
        return ResourceFetcher(simulators, cache, timeout_seconds=1.0, metrics=metrics)

    @pytest.mark.asyncio
    async def test_cold_fetch_goes_to_origin_then_cache(self, fetcher, simulators):
        """A miss loads from upstream, the next read is served from cache."""
        first = await fetcher.fetch("users")
        second = await fetcher.fetch("users")

        assert first.source == ORIGIN
        assert second.source == CACHE
        assert second.cache_hit is True
        assert second.payload is first.payload
        assert simulators["users"].calls == 1

    @pytest.mark.asyncio
    async def test_payload_shape(self, fetcher):
        """Database and external API payloads carry their own fields."""
        users = await fetcher.fetch("users")
        external = await fetcher.fetch("external-data")

        assert users.payload["id"] == 1
        assert users.payload["data"].startswith("Fast database result ")
        assert "timestamp" in users.payload
        assert external.payload["externalData"].startswith("Fast external API result ")

    @pytest.mark.asyncio
    async def test_expired_entry_reloads_from_origin(self, fetcher, simulators, clock):
        """After the TTL elapses the next read goes back upstream."""
        await fetcher.fetch("posts")
        clock.advance(301)

        result = await fetcher.fetch("posts")

        assert result.source == ORIGIN
        assert result.payload["id"] == 2
        assert simulators["posts"].calls == 2

    @pytest.mark.asyncio
    async def test_per_fetcher_ttl(self, simulators, cache, clock):
        """The fetcher's TTL overrides the cache default."""
        fetcher = ResourceFetcher(simulators, cache, ttl_seconds=10)
        await fetcher.fetch("users")

        clock.advance(11)

        assert (await fetcher.fetch("users")).source == ORIGIN

    @pytest.mark.asyncio
    async def test_concurrent_misses_call_upstream_once(self, cache, metrics):
        """Simultaneous misses for a key share one upstream call."""
        simulator = UpstreamSimulator("users", DATABASE, 0.05)
        fetcher = ResourceFetcher({"users": simulator}, cache, metrics=metrics)

        results = await asyncio.gather(*(fetcher.fetch("users") for _ in range(5)))

        assert simulator.calls == 1
        assert all(result.payload is results[0].payload for result in results)
        assert sum(1 for result in results if result.shared) == 4
        assert metrics.get_sample_value("single_flight_joins_total", {"resource": "users"}) == 4.0

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates_and_caches_nothing(self, cache, metrics):
        """A rejected upstream call leaves the cache untouched."""
        simulator = UpstreamSimulator("analytics", DATABASE, 0.0, fail=True)
        fetcher = ResourceFetcher({"analytics": simulator}, cache, metrics=metrics)

        with pytest.raises(UpstreamFailure) as exc_info:
            await fetcher.fetch("analytics")

        assert exc_info.value.code == "UPSTREAM_FAILURE"
        assert exc_info.value.resource == "analytics"
        assert "analytics" not in cache
        assert metrics.get_sample_value(
            "upstream_failures_total", {"resource": "analytics", "reason": "error"}
        ) == 1.0

        # The failure is not cached either
        with pytest.raises(UpstreamFailure):
            await fetcher.fetch("analytics")
        assert simulator.calls == 2

    @pytest.mark.asyncio
    async def test_timeout_raises_upstream_timeout(self, cache):
        """Upstream calls past the deadline fail and cache nothing."""
        simulator = UpstreamSimulator("external-data", EXTERNAL_API, 1.0)
        fetcher = ResourceFetcher({"external-data": simulator}, cache, timeout_seconds=0.05)

        with pytest.raises(UpstreamTimeout) as exc_info:
            await fetcher.fetch("external-data")

        assert exc_info.value.code == "UPSTREAM_TIMEOUT"
        assert isinstance(exc_info.value, UpstreamFailure)
        assert "external-data" not in cache

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped_as_upstream_failure(self, cache):
        """Arbitrary exceptions from the upstream become UpstreamFailure."""
        simulator = UpstreamSimulator("comments", DATABASE, 0.0)
        simulator.call = AsyncMock(side_effect=RuntimeError("connection reset"))
        fetcher = ResourceFetcher({"comments": simulator}, cache)

        with pytest.raises(UpstreamFailure) as exc_info:
            await fetcher.fetch("comments")

        assert "connection reset" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_unknown_resource_rejected(self, fetcher, simulators):
        """Unknown names fail before any upstream call."""
        with pytest.raises(InvalidResourceKey) as exc_info:
            await fetcher.fetch("widgets")

        assert exc_info.value.status_code == 404
        assert sum(simulator.calls for simulator in simulators.values()) == 0

    @pytest.mark.asyncio
    async def test_registered_resource_without_simulator_rejected(self, cache):
        fetcher = ResourceFetcher({}, cache)

        with pytest.raises(InvalidResourceKey):
            await fetcher.fetch("users")

    @pytest.mark.asyncio
    async def test_uncached_fetcher_always_hits_origin(self, simulators):
        """Without a cache every read goes upstream."""
        fetcher = ResourceFetcher(simulators)

        first = await fetcher.fetch("users")
        second = await fetcher.fetch("users")

        assert first.source == ORIGIN
        assert second.source == ORIGIN
        assert simulators["users"].calls == 2
        assert fetcher.invalidate() == 0

    @pytest.mark.asyncio
    async def test_invalidate(self, fetcher, simulators):
        """Invalidated keys are reloaded on the next read."""
        await fetcher.fetch("users")
        await fetcher.fetch("posts")

        assert fetcher.invalidate("users") == 1
        assert (await fetcher.fetch("users")).source == ORIGIN
        assert (await fetcher.fetch("posts")).source == CACHE
        assert fetcher.invalidate() == 2

        with pytest.raises(InvalidResourceKey):
            fetcher.invalidate("widgets")

    @pytest.mark.asyncio
    async def test_cache_metrics_recorded(self, fetcher, metrics):
        """Hits, misses and the entry gauge are recorded."""
        await fetcher.fetch("users")
        await fetcher.fetch("users")
        await fetcher.fetch("users")

        assert metrics.get_sample_value("cache_misses_total", {"resource": "users"}) == 1.0
        assert metrics.get_sample_value("cache_hits_total", {"resource": "users"}) == 2.0
        assert metrics.get_sample_value("cache_entries") == 1.0

    @pytest.mark.asyncio
    async def test_entry_gauge_follows_expiry_and_clear(self, fetcher, cache, clock, metrics):
        """The entry gauge reports live entries, not the last write."""
        await fetcher.fetch("users")
        await fetcher.fetch("posts")
        assert metrics.get_sample_value("cache_entries") == 2.0

        clock.advance(301)
        assert cache.get("users") is None
        assert metrics.get_sample_value("cache_entries") == 0.0

        await fetcher.fetch("users")
        cache.clear()
        assert metrics.get_sample_value("cache_entries") == 0.0

    @pytest.mark.asyncio
    async def test_upstream_duration_recorded_for_every_call(self, cache, metrics):
        """Upstream timing covers successful and failed calls."""
        simulators = {
            "users": UpstreamSimulator("users", DATABASE, 0.0),
            "analytics": UpstreamSimulator("analytics", DATABASE, 0.0, fail=True),
        }
        fetcher = ResourceFetcher(simulators, cache, metrics=metrics)

        await fetcher.fetch("users")
        with pytest.raises(UpstreamFailure):
            await fetcher.fetch("analytics")

        assert metrics.get_sample_value("upstream_duration_seconds_count", {"resource": "users"}) == 1.0
        assert metrics.get_sample_value("upstream_duration_seconds_count", {"resource": "analytics"}) == 1.0
        assert metrics.get_sample_value(
            "upstream_failures_total", {"resource": "users", "reason": "error"}
        ) is None

    def test_performance_metadata(self):
        """FetchResult renders its timing block."""
        from service_performance.app.resources.fetcher import FetchResult

        result = FetchResult("users", {"id": 1}, CACHE, 2.4)
        performance = result.performance("/api/fast/users", "CACHING + FAST_DB")

        assert performance["duration"] == "2ms"
        assert performance["source"] == "cache"
        assert performance["cacheHit"] is True
        assert performance["optimization"] == "CACHING + FAST_DB"
