"""
Logging and metrics for order operations

    >>> from ordersaga.monitoring import setup_saga_logging
    >>> setup_saga_logging(json_format=True)

    >>> from ordersaga.monitoring import PrometheusMetrics, serve_metrics
    >>> serve_metrics(PrometheusMetrics(), port=9108)
"""

from .logging import (
    SagaContextFilter,
    SagaJsonFormatter,
    SagaLogger,
    bind_saga_context,
    saga_context,
    setup_saga_logging,
)
from .metrics import SagaMetrics
from .prometheus import PrometheusMetrics, serve_metrics

__all__ = [
    "PrometheusMetrics",
    "SagaContextFilter",
    "SagaJsonFormatter",
    "SagaLogger",
    "SagaMetrics",
    "bind_saga_context",
    "saga_context",
    "serve_metrics",
    "setup_saga_logging",
]
