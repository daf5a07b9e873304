"""
Parallel batch aggregation over the resource fetcher.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from shared.errors import AggregateFailure
from shared.logging import get_logger

from service_performance.app.resources.fetcher import FetchResult, ResourceFetcher
from service_performance.app.resources.registry import RESOURCE_NAMES, resolve_resource

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass
class BatchResult:
    """Payloads keyed by resource name, in request order."""

    data: Dict[str, Any]
    duration_ms: float
    total_requests: int
    sources: Dict[str, str] = field(default_factory=dict)

    def performance(self, endpoint: str) -> Dict[str, Any]:
        return {
            "durationMs": self.duration_ms,
            "duration": f"{self.duration_ms:.0f}ms",
            "endpoint": endpoint,
            "optimization": "parallel",
            "totalRequests": self.total_requests,
            "sources": dict(self.sources),
        }


class BatchAggregator:
    """Fetches several resources concurrently and joins on all of them.

    The batch is all-or-nothing: the first member failure cancels the rest
    and surfaces as AggregateFailure.
    """

    def __init__(self, fetcher: ResourceFetcher, *, metrics: Optional["MetricsCollector"] = None) -> None:
        self.fetcher = fetcher
        self.metrics = metrics
        self.logger = get_logger("performance.batch")

    async def fetch_all(self, resource_keys: Optional[Sequence[str]] = None) -> BatchResult:
        """Fetch ``resource_keys`` (default: every resource) in parallel."""
        keys = self._normalize(resource_keys)
        start = time.perf_counter()

        tasks = [asyncio.ensure_future(self._fetch_member(key)) for key in keys]
        try:
            results: List[FetchResult] = list(await asyncio.gather(*tasks))
        except AggregateFailure as exc:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.error(
                "Batch failed",
                failed_resource=exc.resource,
                requested=keys,
                error=str(exc.cause),
            )
            raise
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 3)
        if self.metrics:
            self.metrics.observe_histogram("batch_duration_seconds", duration_ms / 1000)

        self.logger.info(
            "Batch completed",
            total_requests=len(keys),
            duration_ms=duration_ms,
            cache_hits=sum(1 for result in results if result.cache_hit),
        )
        return BatchResult(
            data={result.resource_key: result.payload for result in results},
            duration_ms=duration_ms,
            total_requests=len(keys),
            sources={result.resource_key: result.source for result in results},
        )

    async def _fetch_member(self, resource_key: str) -> FetchResult:
        try:
            return await self.fetcher.fetch(resource_key)
        except Exception as exc:
            raise AggregateFailure(resource_key, exc) from exc

    @staticmethod
    def _normalize(resource_keys: Optional[Sequence[str]]) -> List[str]:
        if resource_keys is None:
            return list(RESOURCE_NAMES)

        keys: List[str] = []
        for key in resource_keys:
            resolve_resource(key)
            if key not in keys:
                keys.append(key)
        return keys
