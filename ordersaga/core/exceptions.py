"""
All order saga exceptions

Two families live here:

- Saga engine errors (``SagaError`` and friends) describe problems running a
  saga definition itself.
- Business errors (``OrderSagaError`` and friends) are what callers of the
  order operations see. Each kind carries a ``category`` and an
  ``http_status`` so an outer transport layer can map it without inspecting
  messages.
"""

from typing import Any


class SagaError(Exception):
    """Base saga error"""


class SagaDefinitionError(SagaError):
    """Invalid saga definition (duplicate steps, unknown dependencies, cycles)"""


class OrderSagaError(Exception):
    """
    Base class for every error surfaced by the order operations.

    Attributes:
        category: Stable machine-readable error kind
        http_status: Suggested status code for an HTTP boundary
        details: Extra structured information about the failure
        compensation_errors: Errors raised by compensations that ran before
            this error was surfaced (empty when compensation was clean)
    """

    category = "internal_error"
    http_status = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.compensation_errors: list[Exception] = []

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ValidationFailed(OrderSagaError):
    """Bad or missing input, or an unknown referenced entity. No side effects."""

    category = "validation_failed"
    http_status = 400

    def __init__(self, errors: list[str], reason: str = "invalid"):
        super().__init__("; ".join(errors) or "Validation failed", {"reason": reason})
        self.errors = list(errors)
        self.reason = reason


class InsufficientStock(OrderSagaError):
    """One or more items could not be reserved. Nothing was reserved."""

    category = "insufficient_stock"
    http_status = 409

    def __init__(self, failures: list[Any]):
        super().__init__("Insufficient inventory for one or more items")
        self.failures = list(failures)
        self.details = {
            "failures": [
                {"product_id": f.product_id, "reason": f.reason} for f in self.failures
            ]
        }


class PaymentFailed(OrderSagaError):
    """The charge was declined. The inventory reservation has been released."""

    category = "payment_failed"
    http_status = 402

    def __init__(self, message: str = "Payment processing failed", decline_code: str | None = None):
        super().__init__(message, {"decline_code": decline_code} if decline_code else None)
        self.decline_code = decline_code


class NotFound(OrderSagaError):
    """Unknown order or entity."""

    category = "not_found"
    http_status = 404

    def __init__(self, item_type: str, item_id: Any):
        super().__init__(f"{item_type} not found", {"id": item_id})
        self.item_type = item_type
        self.item_id = item_id


class Conflict(OrderSagaError):
    """Illegal state transition."""

    category = "conflict"
    http_status = 409

    def __init__(self, message: str, current_status: Any = None):
        super().__init__(message)
        self.current_status = current_status


class CompensationIncomplete(OrderSagaError):
    """
    A compensation step failed during cancellation.

    The order state has already been changed and is not reverted. Retrying the
    idempotent release/refund operations is expected to finish the job.
    """

    category = "compensation_incomplete"
    http_status = 500

    def __init__(self, order_id: str, failed_steps: dict[str, Exception]):
        super().__init__(
            f"Compensation incomplete for order {order_id}",
            {"failed_steps": sorted(failed_steps)},
        )
        self.order_id = order_id
        self.failed_steps = dict(failed_steps)


class UpstreamUnavailable(OrderSagaError):
    """A collaborator timed out or is down. Treated as the calling step's failure."""

    category = "upstream_unavailable"
    http_status = 503

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, {"operation": operation} if operation else None)
        self.operation = operation


class SagaTimeoutError(UpstreamUnavailable):
    """Saga step or remote call timeout"""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(f"'{operation}' timed out after {timeout_seconds}s", operation)
        self.timeout_seconds = timeout_seconds


class PaymentDeclined(Exception):
    """Raised by payment clients when the instrument is declined."""

    def __init__(self, message: str = "Payment declined", decline_code: str | None = None):
        super().__init__(message)
        self.decline_code = decline_code


def error_category(exc: BaseException) -> tuple[str, int]:
    """
    Map an exception to ``(category, http_status)``.

    Anything outside the business taxonomy is reported as an internal error.
    """
    if isinstance(exc, OrderSagaError):
        return exc.category, exc.http_status
    return OrderSagaError.category, OrderSagaError.http_status
