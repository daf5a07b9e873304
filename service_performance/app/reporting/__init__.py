"""
Observability reporting for the Performance Optimization service.
"""

from .metrics_reporter import MetricsReporter

__all__ = ["MetricsReporter"]
