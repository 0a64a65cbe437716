"""
Prometheus metrics for the Ascent access layer.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

MetricSpec = Tuple[type, str, str, Sequence[str]]

COMMON_METRICS: Tuple[MetricSpec, ...] = (
    (Counter, "http_requests_total", "Total HTTP requests", ("method", "endpoint", "status_code")),
    (Histogram, "http_request_duration_seconds", "HTTP request duration in seconds", ("method", "endpoint")),
    (Counter, "health_check_total", "Total health check requests", ("status",)),
    (Counter, "errors_total", "Total errors", ("error_type", "service")),
)

AUTH_METRICS: Tuple[MetricSpec, ...] = (
    (Counter, "auth_verifications_total", "Credential verifications by scheme and outcome", ("scheme", "outcome")),
    (Counter, "jwks_fetch_total", "Key-set fetch attempts by status", ("status",)),
    (Histogram, "jwks_fetch_duration_seconds", "Key-set fetch duration in seconds", ()),
)

SERVICE_METRICS: Dict[str, Tuple[MetricSpec, ...]] = {
    "auth": AUTH_METRICS,
}


class MetricsCollector:
    """Per-service metrics on a private registry.

    Services built in the same process (one per test, for instance) never
    collide on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        for spec in COMMON_METRICS + SERVICE_METRICS.get(service_name, ()):
            self._register(*spec)

    def _register(self, metric_type: type, name: str, documentation: str, labelnames: Sequence[str]) -> None:
        self._metrics[name] = metric_type(name, documentation, labelnames, registry=self.registry)

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).observe(value)

    @contextmanager
    def time_operation(self, metric_name: str, **labels):
        """Observe the wall time of the enclosed block."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe_histogram(metric_name, time.perf_counter() - started, **labels)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=str(status_code))
        self.observe_histogram("http_request_duration_seconds", duration, method=method, endpoint=endpoint)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error_type: str, service: Optional[str] = None):
        self.increment_counter("errors_total", error_type=error_type, service=service or self.service_name)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
