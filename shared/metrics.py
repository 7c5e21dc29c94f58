"""
Shared metrics configuration for the Premium Access service.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, start_http_server, CollectorRegistry
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services.

    Metrics are only exported when a registry is supplied; collectors built
    without one (tests, one-off scripts) still accept every call.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "premium":
            self._setup_premium_metrics()

    def _setup_premium_metrics(self):
        """Set up premium-access metrics."""
        self._metrics["access_checks_total"] = Counter(
            "access_checks_total",
            "Total content access checks",
            ["kind", "decision"],
            registry=self.registry
        )

        self._metrics["access_check_duration_seconds"] = Histogram(
            "access_check_duration_seconds",
            "Content access check duration in seconds",
            registry=self.registry
        )

        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["namespace"],
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["namespace"],
            registry=self.registry
        )

        self._metrics["cache_errors_total"] = Counter(
            "cache_errors_total",
            "Total cache backend failures treated as misses or no-ops",
            ["operation"],
            registry=self.registry
        )

        self._metrics["content_releases_total"] = Counter(
            "content_releases_total",
            "Premium items processed by the release scheduler",
            ["result"],
            registry=self.registry
        )

        self._metrics["best_effort_success_total"] = Counter(
            "best_effort_success_total",
            "Best-effort side effects that completed",
            ["effect"],
            registry=self.registry
        )

        self._metrics["best_effort_failures_total"] = Counter(
            "best_effort_failures_total",
            "Best-effort side effects that failed",
            ["effect"],
            registry=self.registry
        )

        self._metrics["best_effort_pending"] = Gauge(
            "best_effort_pending",
            "Best-effort side effects still running",
            registry=self.registry
        )

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        if self.registry is not None:
            start_http_server(port, registry=self.registry)
        else:
            start_http_server(port)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
