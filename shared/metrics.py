"""
Shared metrics configuration for the Performance Optimization service.
"""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest
from typing import Any, Callable, Dict, Optional
import time
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances can live
    in one process (the test suite builds many).
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_cache_metrics()

    def _setup_cache_metrics(self):
        """Set up cache, upstream and throttling metrics."""
        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["resource"],
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["resource"],
            registry=self.registry
        )

        self._metrics["cache_entries"] = Gauge(
            "cache_entries",
            "Number of live cache entries",
            registry=self.registry
        )

        self._metrics["upstream_duration_seconds"] = Histogram(
            "upstream_duration_seconds",
            "Upstream call duration in seconds",
            ["resource"],
            registry=self.registry
        )

        self._metrics["upstream_failures_total"] = Counter(
            "upstream_failures_total",
            "Total failed upstream calls",
            ["resource", "reason"],
            registry=self.registry
        )

        self._metrics["single_flight_joins_total"] = Counter(
            "single_flight_joins_total",
            "Cache misses that joined an in-flight upstream call",
            ["resource"],
            registry=self.registry
        )

        self._metrics["batch_duration_seconds"] = Histogram(
            "batch_duration_seconds",
            "Batch aggregation duration in seconds",
            registry=self.registry
        )

        self._metrics["rate_limit_rejections_total"] = Counter(
            "rate_limit_rejections_total",
            "Total requests rejected by the rate limiter",
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a single sample from the registry."""
        return self.registry.get_sample_value(name, labels or {})

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_cache_access(self, resource: str, hit: bool):
        """Record a cache hit or miss for a resource."""
        name = "cache_hits_total" if hit else "cache_misses_total"
        self._metrics[name].labels(resource=resource).inc()

    def record_upstream_failure(self, resource: str, reason: str):
        """Record a failed upstream call and why it failed."""
        self._metrics["upstream_failures_total"].labels(resource=resource, reason=reason).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start_time
            if operation_name in self._metrics:
                metric = self._metrics[operation_name]
                if labels:
                    metric = metric.labels(**labels)
                metric.observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            if labels:
                metric = metric.labels(**labels)
            metric.inc()

    def track_gauge(self, metric_name: str, func: Callable[[], float]):
        """Read a gauge from ``func`` each time the registry is collected."""
        if metric_name in self._metrics:
            self._metrics[metric_name].set_function(func)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            if labels:
                metric = metric.labels(**labels)
            metric.observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
