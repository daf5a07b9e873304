"""
Upstream simulators for the Performance Optimization service.

Each simulator stands in for one slow database query or external API call.
They are the only operations on the request path that take real wall-clock
time.
"""

from .simulators import FAST, SLOW, UpstreamSimulator, build_simulators

__all__ = [
    "FAST",
    "SLOW",
    "UpstreamSimulator",
    "build_simulators",
]
