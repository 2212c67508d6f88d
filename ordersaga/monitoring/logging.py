"""
Structured logging for order operations

Every order operation binds its identifiers (saga id, order id, operation
name) into a context variable. ``SagaContextFilter`` copies them onto log
records and ``SagaJsonFormatter`` emits them as JSON fields, so all lines
written while an operation runs can be correlated.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from ordersaga.core.exceptions import error_category

# Identifiers of the order operation running in the current task
saga_context: ContextVar[dict[str, Any]] = ContextVar("saga_context", default={})

_CONTEXT_FIELDS = ("saga_id", "saga_name", "operation", "order_id", "correlation_id")

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(saga_id)s %(operation)s] %(message)s"


class SagaJsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Bound context fields come first, then any of ``RECORD_FIELDS`` set on the
    record (through ``extra=``), which override them.
    """

    RECORD_FIELDS = _CONTEXT_FIELDS + (
        "step_name",
        "duration_ms",
        "error_type",
        "error_category",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        bound = saga_context.get({})
        entry.update((k, bound[k]) for k in _CONTEXT_FIELDS if bound.get(k) is not None)
        entry.update(
            (k, getattr(record, k))
            for k in self.RECORD_FIELDS
            if getattr(record, k, None) not in (None, "")
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class SagaContextFilter(logging.Filter):
    """
    Copies the bound order context onto each record.

    Values passed explicitly through ``extra`` are left alone.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        bound = saga_context.get({})
        record.__dict__.setdefault("saga_id", bound.get("saga_id") or "unknown")
        for key in ("operation", "order_id", "correlation_id"):
            record.__dict__.setdefault(key, bound.get(key, ""))
        return True


@contextmanager
def bind_saga_context(**values: Any) -> Iterator[dict[str, Any]]:
    """
    Bind identifiers to the current task for the duration of the block.

    Nested blocks inherit the outer values and may override them.

    Example:
        >>> with bind_saga_context(operation="cancel_order", order_id=order_id):
        ...     logger.info("Cancelling")
    """
    context = {**saga_context.get({}), **{k: v for k, v in values.items() if v is not None}}
    context.setdefault("correlation_id", context.get("saga_id") or context.get("order_id"))
    token = saga_context.set(context)
    try:
        yield context
    finally:
        saga_context.reset(token)


class SagaLogger:
    """
    Order-operation aware logger

    Writes one line per operation outcome with the error category attached,
    so failures can be grouped without parsing messages.
    """

    def __init__(self, name: str = "ordersaga.operations"):
        self.logger = logging.getLogger(name)
        if not any(isinstance(f, SagaContextFilter) for f in self.logger.filters):
            self.logger.addFilter(SagaContextFilter())

    def operation_started(self, operation: str, **fields: Any) -> None:
        self.logger.info(f"{operation} started", extra={"operation": operation, **fields})

    def operation_succeeded(self, operation: str, duration_ms: float, **fields: Any) -> None:
        self.logger.info(
            f"{operation} succeeded",
            extra={"operation": operation, "duration_ms": duration_ms, **fields},
        )

    def operation_failed(self, operation: str, error: BaseException, duration_ms: float) -> None:
        category, status = error_category(error)
        self.logger.log(
            logging.ERROR if status >= 500 else logging.WARNING,
            f"{operation} failed: {error}",
            extra={
                "operation": operation,
                "duration_ms": duration_ms,
                "error_type": type(error).__name__,
                "error_category": category,
            },
        )

    def side_effect_failed(self, what: str, error: BaseException) -> None:
        """A best-effort call (audit, notification, link) failed and was swallowed."""
        self.logger.warning(
            f"Best-effort {what} failed: {error}",
            extra={"step_name": what, "error_type": type(error).__name__},
        )

    def compensation_failed(self, step_name: str, error: BaseException) -> None:
        """Stock or money may now be out of step with the order record."""
        self.logger.critical(
            f"Compensation FAILED: {step_name} - {error!s}",
            extra={"step_name": step_name, "error_type": type(error).__name__},
        )


def setup_saga_logging(
    log_level: str = "INFO", json_format: bool = True, include_console: bool = True
) -> SagaLogger:
    """
    Route the ``ordersaga`` logger tree to stderr.

    Replaces any handlers already on the ``ordersaga`` logger, so calling it
    twice does not duplicate output.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_format: One JSON object per line, else a plain text format
        include_console: Attach the stderr handler at all

    Returns:
        A SagaLogger for operation outcome lines
    """
    package_logger = logging.getLogger("ordersaga")
    package_logger.setLevel(log_level.upper())
    package_logger.handlers.clear()

    if include_console:
        handler = logging.StreamHandler()
        handler.addFilter(SagaContextFilter())
        handler.setFormatter(SagaJsonFormatter() if json_format else logging.Formatter(_PLAIN_FORMAT))
        package_logger.addHandler(handler)

    return SagaLogger()
