"""
Core building blocks: the saga engine, listeners, configuration and errors.
"""

from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.env import EnvManager
from ordersaga.core.exceptions import (
    CompensationIncomplete,
    Conflict,
    InsufficientStock,
    NotFound,
    OrderSagaError,
    PaymentDeclined,
    PaymentFailed,
    SagaDefinitionError,
    SagaError,
    SagaTimeoutError,
    UpstreamUnavailable,
    ValidationFailed,
    error_category,
)
from ordersaga.core.listeners import (
    LoggingSagaListener,
    MetricsSagaListener,
    SagaListener,
    default_listeners,
)
from ordersaga.core.logger import get_logger, set_logger
from ordersaga.core.saga import (
    Saga,
    SagaStep,
    action,
    call_with_timeout,
    compensate,
)
from ordersaga.core.types import (
    CreationState,
    OrderStatus,
    ReservationStatus,
    SagaResult,
    SagaStatus,
    SagaStepStatus,
)

__all__ = [
    "CompensationIncomplete",
    "Conflict",
    "CreationState",
    "EnvManager",
    "InsufficientStock",
    "LoggingSagaListener",
    "MetricsSagaListener",
    "NotFound",
    "OrderSagaConfig",
    "OrderSagaError",
    "OrderStatus",
    "PaymentDeclined",
    "PaymentFailed",
    "ReservationStatus",
    "Saga",
    "SagaDefinitionError",
    "SagaError",
    "SagaListener",
    "SagaResult",
    "SagaStatus",
    "SagaStep",
    "SagaStepStatus",
    "SagaTimeoutError",
    "UpstreamUnavailable",
    "ValidationFailed",
    "action",
    "call_with_timeout",
    "compensate",
    "default_listeners",
    "error_category",
    "get_logger",
    "set_logger",
]
