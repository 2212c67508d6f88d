"""
Prometheus export of order saga outcomes.

    >>> metrics = PrometheusMetrics()
    >>> config = OrderSagaConfig(metrics=MetricsSagaListener(metrics))
    >>> serve_metrics(metrics, port=9108)

Series, all prefixed (``ordersaga`` by default):

    execution_total{saga_name,status}            finished runs
    failures_total{saga_name,category}           failed runs by error category
    execution_duration_seconds{saga_name}        run durations
    step_duration_seconds{saga_name,step_name}   step durations
    active_count{saga_name}                      runs in flight
"""

from typing import TYPE_CHECKING

import prometheus_client
from prometheus_client import REGISTRY, CollectorRegistry

from ordersaga.core.logger import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from ordersaga.core.types import SagaStatus

logger = get_logger(__name__)

# Runs end within the payment timeout plus compensation; steps are mostly sub-second
RUN_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
STEP_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0)


class PrometheusMetrics:
    """
    Collector for ``MetricsSagaListener`` backed by prometheus_client.

    Each instance registers its series on ``registry`` (the process-wide
    default when omitted). Registering the same prefix twice on one registry
    fails, so tests pass a fresh ``CollectorRegistry``.
    """

    def __init__(self, prefix: str = "ordersaga", registry: CollectorRegistry | None = None):
        self.prefix = prefix
        self.registry = REGISTRY if registry is None else registry

        self._runs = self._build(
            prometheus_client.Counter, "execution_total", "Finished saga runs", "status"
        )
        self._failures = self._build(
            prometheus_client.Counter, "failures_total", "Failed saga runs", "category"
        )
        self._run_seconds = self._build(
            prometheus_client.Histogram,
            "execution_duration_seconds",
            "Saga run duration",
            buckets=RUN_BUCKETS,
        )
        self._step_seconds = self._build(
            prometheus_client.Histogram,
            "step_duration_seconds",
            "Saga step duration",
            "step_name",
            buckets=STEP_BUCKETS,
        )
        self._in_flight = self._build(
            prometheus_client.Gauge, "active_count", "Saga runs in flight"
        )

    def _build(self, kind, suffix: str, documentation: str, *labels: str, **kwargs):
        return kind(
            f"{self.prefix}_{suffix}",
            documentation,
            ("saga_name", *labels),
            registry=self.registry,
            **kwargs,
        )

    def record_execution(self, saga_name: str, status: "SagaStatus", duration: float) -> None:
        self._runs.labels(saga_name, status.value).inc()
        self._run_seconds.labels(saga_name).observe(duration)

    def record_failure(self, saga_name: str, category: str) -> None:
        self._failures.labels(saga_name, category).inc()

    def record_step_duration(self, saga_name: str, step_name: str, duration: float) -> None:
        self._step_seconds.labels(saga_name, step_name).observe(duration)

    def saga_started(self, saga_name: str) -> None:
        self._in_flight.labels(saga_name).inc()

    def saga_finished(self, saga_name: str) -> None:
        self._in_flight.labels(saga_name).dec()


def serve_metrics(metrics: PrometheusMetrics, port: int = 9108, addr: str = "0.0.0.0"):
    """Expose ``metrics.registry`` on ``http://addr:port/metrics`` from a daemon thread."""
    server = prometheus_client.start_http_server(port, addr, registry=metrics.registry)
    logger.info(f"Serving {metrics.prefix} metrics on {addr}:{port}")
    return server
