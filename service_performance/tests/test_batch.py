"""
Unit tests for the parallel batch aggregator.
"""

import time

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import AggregateFailure, InvalidResourceKey, UpstreamFailure
from shared.metrics import MetricsCollector
from service_performance.app.caching import TTLCache
from service_performance.app.resources.batch import BatchAggregator
from service_performance.app.resources.fetcher import CACHE, ORIGIN, ResourceFetcher
from service_performance.app.resources.registry import DATABASE, RESOURCE_NAMES
from service_performance.app.upstream import UpstreamSimulator, build_simulators


class TestBatchAggregator:
    """Test cases for BatchAggregator."""

    @pytest.fixture
    def simulators(self):
        return build_simulators(delay_scale=0.01)

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("performance-test")

    @pytest.fixture
    def fetcher(self, simulators):
        return ResourceFetcher(simulators, TTLCache(300))

    @pytest.fixture
    def aggregator(self, fetcher, metrics):
        """Create BatchAggregator over a cached fetcher."""
        return BatchAggregator(fetcher, metrics=metrics)

    @pytest.mark.asyncio
    async def test_default_batch_fetches_every_resource(self, aggregator, metrics):
        """With no keys the batch covers all six resources in order."""
        result = await aggregator.fetch_all()

        assert list(result.data) == list(RESOURCE_NAMES)
        assert result.total_requests == 6
        assert set(result.sources.values()) == {ORIGIN}
        assert "externalData" in result.data["external-data"]
        assert metrics.get_sample_value("batch_duration_seconds_count") == 1.0

    @pytest.mark.asyncio
    async def test_members_run_concurrently(self):
        """Batch latency tracks the slowest member, not the sum."""
        simulators = {
            name: UpstreamSimulator(name, DATABASE, 0.3)
            for name in ("users", "posts", "comments")
        }
        aggregator = BatchAggregator(ResourceFetcher(simulators, TTLCache(300)))

        start = time.perf_counter()
        result = await aggregator.fetch_all(["users", "posts", "comments"])
        elapsed = time.perf_counter() - start

        assert elapsed < 0.45
        assert result.duration_ms < 450
        assert result.total_requests == 3

    @pytest.mark.asyncio
    async def test_batch_mixes_cached_and_origin_sources(self, aggregator, fetcher):
        """Warm keys come from the cache, cold keys from the origin."""
        await fetcher.fetch("users")

        result = await aggregator.fetch_all(["users", "posts"])

        assert result.sources == {"users": CACHE, "posts": ORIGIN}

        performance = result.performance("/api/fast/batch")
        assert performance["optimization"] == "parallel"
        assert performance["totalRequests"] == 2
        assert performance["sources"] == {"users": "cache", "posts": "origin"}

    @pytest.mark.asyncio
    async def test_member_failure_fails_the_batch(self):
        """One failing member fails the whole batch without partial data."""
        simulators = {
            "users": UpstreamSimulator("users", DATABASE, 1.0),
            "analytics": UpstreamSimulator("analytics", DATABASE, 0.01, fail=True),
        }
        aggregator = BatchAggregator(ResourceFetcher(simulators, TTLCache(300)))

        start = time.perf_counter()
        with pytest.raises(AggregateFailure) as exc_info:
            await aggregator.fetch_all(["users", "analytics"])
        elapsed = time.perf_counter() - start

        assert exc_info.value.resource == "analytics"
        assert exc_info.value.code == "AGGREGATE_FAILURE"
        assert exc_info.value.details["cause_code"] == "UPSTREAM_FAILURE"
        assert isinstance(exc_info.value.cause, UpstreamFailure)
        # The slow member is not awaited once the batch has failed
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_invalid_key_rejected_before_fetching(self, aggregator, simulators):
        """Unknown names fail the batch before any upstream call."""
        with pytest.raises(InvalidResourceKey):
            await aggregator.fetch_all(["users", "widgets"])

        assert sum(simulator.calls for simulator in simulators.values()) == 0

    @pytest.mark.asyncio
    async def test_duplicate_keys_fetched_once(self, aggregator, simulators):
        """Repeated names collapse to one member, order preserved."""
        result = await aggregator.fetch_all(["posts", "users", "posts"])

        assert list(result.data) == ["posts", "users"]
        assert result.total_requests == 2
        assert simulators["posts"].calls == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self, aggregator):
        result = await aggregator.fetch_all([])

        assert result.data == {}
        assert result.total_requests == 0
