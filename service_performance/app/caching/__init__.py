"""
Caching package for the Performance Optimization service.

Holds the in-process TTL store backing every fast-path response and the
single-flight group that keeps concurrent misses down to one upstream call
per key. The store is constructed by the service and injected into the
fetchers; nothing here is a module-level singleton.
"""

from .ttl_cache import CacheStats, TTLCache
from .single_flight import SingleFlight

__all__ = [
    "CacheStats",
    "SingleFlight",
    "TTLCache",
]
