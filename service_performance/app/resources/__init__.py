"""
Resource package for the Performance Optimization service.

- registry: the six logical resources and their latency profiles
- fetcher: cache-aside reads with single-flight and upstream deadlines
- batch: parallel fan-out/join over the fetcher
"""

from .registry import RESOURCE_NAMES, RESOURCES, ResourceDefinition, resolve_resource
from .fetcher import CACHE, ORIGIN, FetchResult, ResourceFetcher
from .batch import BatchAggregator, BatchResult

__all__ = [
    "BatchAggregator",
    "BatchResult",
    "CACHE",
    "FetchResult",
    "ORIGIN",
    "RESOURCES",
    "RESOURCE_NAMES",
    "ResourceDefinition",
    "ResourceFetcher",
    "resolve_resource",
]
