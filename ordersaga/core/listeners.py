"""
Saga lifecycle listeners.

Listeners receive callbacks as a saga runs. They are the place for
cross-cutting concerns (logging, metrics) so saga definitions stay focused on
business steps. Listener errors never break a saga: the engine logs them and
moves on.

Example:
    >>> from ordersaga.core.listeners import LoggingSagaListener, MetricsSagaListener
    >>> config = OrderSagaConfig(logging=LoggingSagaListener(level="DEBUG"))
"""

import logging
import time
from typing import Any

from ordersaga.core.exceptions import error_category
from ordersaga.core.logger import get_logger
from ordersaga.core.types import SagaStatus


class SagaListener:
    """
    Base listener. Every hook is a no-op; override the ones you need.

    Hooks may be plain functions or coroutines.
    """

    def on_saga_start(self, saga_name: str, saga_id: str, ctx: dict[str, Any]) -> Any:
        pass

    def on_saga_complete(self, saga_name: str, saga_id: str, ctx: dict[str, Any]) -> Any:
        pass

    def on_saga_failed(
        self, saga_name: str, saga_id: str, ctx: dict[str, Any], error: Exception
    ) -> Any:
        pass

    def on_step_enter(self, saga_name: str, step_name: str, ctx: dict[str, Any]) -> Any:
        pass

    def on_step_success(
        self, saga_name: str, step_name: str, ctx: dict[str, Any], result: Any
    ) -> Any:
        pass

    def on_step_failure(
        self, saga_name: str, step_name: str, ctx: dict[str, Any], error: Exception
    ) -> Any:
        pass

    def on_compensation_start(self, saga_name: str, step_name: str, ctx: dict[str, Any]) -> Any:
        pass

    def on_compensation_complete(
        self, saga_name: str, step_name: str, ctx: dict[str, Any]
    ) -> Any:
        pass

    def on_compensation_failed(
        self, saga_name: str, step_name: str, ctx: dict[str, Any], error: Exception
    ) -> Any:
        pass


class LoggingSagaListener(SagaListener):
    """Logs every lifecycle event through the ordersaga logger."""

    def __init__(self, level: str = "INFO", logger: Any = None):
        self.log = logger or get_logger("ordersaga.saga")
        self.level = getattr(logging, level.upper(), logging.INFO)

    def _emit(self, message: str, **extra: Any) -> None:
        if self.level <= logging.DEBUG:
            self.log.debug(message, extra=extra)
        else:
            self.log.info(message, extra=extra)

    def on_saga_start(self, saga_name, saga_id, ctx):
        self._emit(f"Saga started: {saga_name}", saga_id=saga_id, saga_name=saga_name)

    def on_saga_complete(self, saga_name, saga_id, ctx):
        self._emit(f"Saga completed: {saga_name}", saga_id=saga_id, saga_name=saga_name)

    def on_saga_failed(self, saga_name, saga_id, ctx, error):
        self.log.error(
            f"Saga failed: {saga_name} - {error}",
            extra={"saga_id": saga_id, "saga_name": saga_name, "error_type": type(error).__name__},
        )

    def on_step_enter(self, saga_name, step_name, ctx):
        self._emit(f"Step started: {step_name}", saga_name=saga_name, step_name=step_name)

    def on_step_success(self, saga_name, step_name, ctx, result):
        self._emit(f"Step completed: {step_name}", saga_name=saga_name, step_name=step_name)

    def on_step_failure(self, saga_name, step_name, ctx, error):
        self.log.warning(
            f"Step failed: {step_name} - {error}",
            extra={
                "saga_name": saga_name,
                "step_name": step_name,
                "error_type": type(error).__name__,
            },
        )

    def on_compensation_start(self, saga_name, step_name, ctx):
        self.log.warning(
            f"Compensation started: {step_name}",
            extra={"saga_name": saga_name, "step_name": step_name},
        )

    def on_compensation_complete(self, saga_name, step_name, ctx):
        self.log.warning(
            f"Compensation completed: {step_name}",
            extra={"saga_name": saga_name, "step_name": step_name},
        )

    def on_compensation_failed(self, saga_name, step_name, ctx, error):
        self.log.critical(
            f"Compensation FAILED: {step_name} - {error}",
            extra={
                "saga_name": saga_name,
                "step_name": step_name,
                "error_type": type(error).__name__,
            },
        )


class MetricsSagaListener(SagaListener):
    """
    Feeds saga outcomes into a metrics collector.

    Works with ``SagaMetrics`` (in-process) and ``PrometheusMetrics``. Step
    durations and active-saga gauges are only reported when the collector
    supports them.
    """

    def __init__(self, metrics: Any = None):
        if metrics is None:
            from ordersaga.monitoring.metrics import SagaMetrics

            metrics = SagaMetrics()
        self.metrics = metrics
        self._saga_started: dict[str, float] = {}
        self._step_started: dict[tuple[str, str], float] = {}

    def on_saga_start(self, saga_name, saga_id, ctx):
        self._saga_started[saga_id] = time.perf_counter()
        if hasattr(self.metrics, "saga_started"):
            self.metrics.saga_started(saga_name)

    def on_saga_complete(self, saga_name, saga_id, ctx):
        self._finish(saga_name, saga_id, SagaStatus.COMPLETED)

    def on_saga_failed(self, saga_name, saga_id, ctx, error):
        self._finish(saga_name, saga_id, SagaStatus.FAILED)
        if hasattr(self.metrics, "record_failure"):
            self.metrics.record_failure(saga_name, error_category(error)[0])

    def on_step_enter(self, saga_name, step_name, ctx):
        self._step_started[(ctx.get("saga_id", ""), step_name)] = time.perf_counter()

    def on_step_success(self, saga_name, step_name, ctx, result):
        self._finish_step(saga_name, step_name, ctx)

    def on_step_failure(self, saga_name, step_name, ctx, error):
        self._finish_step(saga_name, step_name, ctx)

    def _finish(self, saga_name: str, saga_id: str, status: SagaStatus) -> None:
        started = self._saga_started.pop(saga_id, None)
        duration = time.perf_counter() - started if started is not None else 0.0
        self.metrics.record_execution(saga_name, status, duration)
        if hasattr(self.metrics, "saga_finished"):
            self.metrics.saga_finished(saga_name)

    def _finish_step(self, saga_name: str, step_name: str, ctx: dict[str, Any]) -> None:
        started = self._step_started.pop((ctx.get("saga_id", ""), step_name), None)
        if started is None or not hasattr(self.metrics, "record_step_duration"):
            return
        self.metrics.record_step_duration(saga_name, step_name, time.perf_counter() - started)


def default_listeners() -> list[SagaListener]:
    """Listeners used when a config does not say otherwise."""
    return [LoggingSagaListener(), MetricsSagaListener()]
