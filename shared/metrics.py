"""
Prometheus metrics for the OAuth gate.
"""

import threading
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest

# Token exchanges should finish well inside the default 10s request timeout
EXCHANGE_BUCKETS = (0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """Request, health and authentication metrics for one service.

    Each collector owns its registry so several apps can live in one process
    (tests build many) without duplicate-registration errors.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()

        self.info = Info("service", "Service information", registry=self.registry)
        self.info.info({"service": service_name, "version": "1.0.0"})

        self.http_requests = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry,
        )
        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry,
        )
        self.health_checks = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry,
        )

        self.token_exchanges = Counter(
            "token_exchanges_total",
            "Client-credentials exchanges with the identity provider, by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.token_exchange_duration = Histogram(
            "token_exchange_duration_seconds",
            "Time spent obtaining an access token",
            buckets=EXCHANGE_BUCKETS,
            registry=self.registry,
        )
        self.token_validations = Counter(
            "token_validations_total",
            "Bearer token validations, by outcome",
            ["outcome"],
            registry=self.registry,
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.http_requests.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        self.http_request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self.health_checks.labels(status=status).inc()

    def record_token_exchange(self, outcome: str, duration: Optional[float] = None):
        """Record a token exchange outcome ("success" or an error code)."""
        self.token_exchanges.labels(outcome=outcome).inc()
        if duration is not None:
            self.token_exchange_duration.observe(duration)

    def record_validation(self, outcome: str):
        """Record a bearer validation outcome ("success" or an error code)."""
        self.token_validations.labels(outcome=outcome).inc()

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        with self._lock:
            return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get metrics collector for a service."""
    return MetricsCollector(service_name, registry)
