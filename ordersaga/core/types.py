"""
All type definitions, enums, and dataclasses shared by the saga engine
and the order operations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SagaStatus(Enum):
    """Overall saga status."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    COMPENSATING = "compensating"
    FAILED = "failed"


class SagaStepStatus(Enum):
    """Status of individual saga step"""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    FAILED = "failed"
    SKIPPED = "skipped"


class CreationState(Enum):
    """
    States of an in-flight order creation.

    The happy path walks the list top to bottom. Any failing step moves the
    run to COMPENSATING and then FAILED.
    """

    VALIDATING = "validating"
    PRICING = "pricing"
    RESERVING_INVENTORY = "reserving_inventory"
    CHARGING_PAYMENT = "charging_payment"
    PERSISTING = "persisting"
    AUDITING_AND_NOTIFYING = "auditing_and_notifying"
    CONFIRMED = "confirmed"
    COMPENSATING = "compensating"
    FAILED = "failed"


class OrderStatus(Enum):
    """Lifecycle status of a persisted order."""

    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class ReservationStatus(Enum):
    """Status of an inventory reservation."""

    ACTIVE = "active"
    RELEASED = "released"


@dataclass
class SagaResult:
    """
    Result of a saga execution.

    Kept on the saga instance after ``run()`` returns or raises, so callers
    and listeners can inspect what happened.
    """

    success: bool
    saga_name: str
    status: SagaStatus
    completed_steps: int
    total_steps: int
    error: Exception | None = None
    execution_time: float = 0.0
    context: Any = None
    compensated_step_names: list[str] = field(default_factory=list)
    compensation_errors: list[Exception] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.status == SagaStatus.COMPLETED

    @property
    def is_compensation_clean(self) -> bool:
        """True if every compensation that ran succeeded."""
        return not self.compensation_errors
