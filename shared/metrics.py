"""
Prometheus metrics for the business rules service.

Each MetricsCollector owns its CollectorRegistry, so several engines (or
tests) can live in one process without colliding on metric names.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest

# name -> (type, help, label names)
METRIC_DEFINITIONS: Dict[str, Tuple[type, str, Sequence[str]]] = {
    "http_requests_total": (Counter, "Total HTTP requests", ("method", "endpoint", "status_code")),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ("method", "endpoint")),
    "health_check_total": (Counter, "Total health check requests", ("status",)),
    "errors_total": (Counter, "Total errors by code", ("error_type", "service")),
    "rules_cache_hits_total": (Counter, "Rule configuration cache hits", ("category",)),
    "rules_cache_misses_total": (Counter, "Rule configuration cache misses", ("category",)),
    "rules_cache_reloads_total": (Counter, "Rule configuration reloads", ("category", "status")),
    "rules_operation_duration_seconds": (
        Histogram,
        "Business rule operation duration in seconds",
        ("operation",),
    ),
    "rules_slow_operations_total": (
        Counter,
        "Business rule operations over the slow threshold",
        ("operation",),
    ),
    "rules_cache_hit_ratio": (Gauge, "Rule configuration cache hit ratio", ()),
}


class MetricsCollector:
    """Prometheus metrics for one service instance."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {
            name: metric_type(name, help_text, list(labels), registry=self.registry)
            for name, (metric_type, help_text, labels) in METRIC_DEFINITIONS.items()
        }

        service_info = Info("service", "Service information", registry=self.registry)
        service_info.info({"service": service_name, "version": "1.0.0"})

    def export(self) -> bytes:
        return generate_latest(self.registry)

    def _child(self, metric_name: str, labels: Dict[str, Any]):
        metric = self._metrics[metric_name]
        if labels:
            return metric.labels(**{key: str(value) for key, value in labels.items()})
        return metric

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        self._child(metric_name, labels).inc(amount)

    def set_gauge(self, metric_name: str, value: float, **labels):
        self._child(metric_name, labels).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self._child(metric_name, labels).observe(value)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=status_code)
        self.observe_histogram("http_request_duration_seconds", duration, method=method, endpoint=endpoint)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error_type: str):
        self.increment_counter("errors_total", error_type=error_type, service=self.service_name)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
