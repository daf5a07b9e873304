"""
Cache occupancy and process resource reporting.
"""

import time
from typing import Any, Dict, Optional

import psutil

from service_performance.app.caching import TTLCache


class MetricsReporter:
    """Read-only view over the cache and the serving process."""

    def __init__(self, cache: TTLCache, *, process: Optional[psutil.Process] = None) -> None:
        self.cache = cache
        self.process = process or psutil.Process()

    def report(self) -> Dict[str, Any]:
        memory = self.process.memory_info()
        cpu = self.process.cpu_times()
        uptime = max(0.0, time.time() - self.process.create_time())

        return {
            "cacheEntryCount": len(self.cache),
            "processUptimeSeconds": round(uptime, 3),
            "memoryUsageBytes": memory.rss,
            "cache": {
                "keys": self.cache.keys(),
                "stats": self.cache.stats().to_dict(),
            },
            "memory": {
                "rss": memory.rss,
                "vms": memory.vms,
            },
            "cpu": {
                "user": cpu.user,
                "system": cpu.system,
            },
        }
