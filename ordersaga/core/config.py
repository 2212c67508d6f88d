"""
OrderSagaConfig - configuration for the order saga components.

One explicit configuration object is built at process start and handed to
each component at construction. There is no module-level default instance.

Example:
    >>> from ordersaga import OrderSagaConfig
    >>>
    >>> config = OrderSagaConfig(
    ...     currency="eur",
    ...     payment_timeout=20.0,
    ...     metrics=MetricsSagaListener(metrics=PrometheusMetrics()),
    ... )
    >>> saga = OrderSaga(..., config=config)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ordersaga.core.env import EnvManager
    from ordersaga.core.listeners import SagaListener

logger = logging.getLogger(__name__)

# Seconds added to payment budgets so the outer bound never fires before the last attempt
PAYMENT_BUDGET_SLACK = 0.5

_TIMEOUT_FIELDS = (
    "lookup_timeout",
    "reservation_timeout",
    "payment_timeout",
    "persistence_timeout",
    "audit_timeout",
    "notification_timeout",
)


@dataclass
class OrderSagaConfig:
    """
    Configuration for order processing.

    Attributes:
        currency: ISO currency code sent with every charge
        default_tax_rate: Rate used when a region has no configured rate
        tax_region: Region used when the shipping address does not name one
        lookup_timeout: Bound for customer/product/promotion lookups (seconds)
        reservation_timeout: Bound for inventory reserve/release calls
        payment_timeout: Bound for each charge/refund attempt; steps that
            charge or refund are bounded by ``payment_budget``
        persistence_timeout: Bound for order store calls
        audit_timeout: Bound for audit writes (failures are swallowed)
        notification_timeout: Bound for notifications (failures are swallowed)
        compensation_max_retries: Extra attempts for a failed compensation
        compensation_backoff: Base delay between compensation attempts
        charge_max_attempts: Attempts for a charge on upstream outages
        refund_max_attempts: Attempts for a refund on upstream outages
        logging: Enable saga logging (True/False or a listener instance)
        metrics: Enable saga metrics (True/False or a listener instance)
    """

    currency: str = "usd"
    default_tax_rate: Decimal = Decimal("0.10")
    tax_region: str = "default"

    lookup_timeout: float = 5.0
    reservation_timeout: float = 10.0
    payment_timeout: float = 15.0
    persistence_timeout: float = 10.0
    audit_timeout: float = 2.0
    notification_timeout: float = 5.0

    compensation_max_retries: int = 2
    compensation_backoff: float = 0.1
    charge_max_attempts: int = 1
    refund_max_attempts: int = 3

    logging: bool | SagaListener = True
    metrics: bool | SagaListener = False

    _listeners: list[SagaListener] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.default_tax_rate = Decimal(str(self.default_tax_rate))
        self._validate()
        self._listeners = self._build_listeners()

    def _validate(self) -> None:
        for name in _TIMEOUT_FIELDS:
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive, got {getattr(self, name)}"
                raise ValueError(msg)
        if self.default_tax_rate < 0:
            msg = f"default_tax_rate must not be negative, got {self.default_tax_rate}"
            raise ValueError(msg)
        if self.charge_max_attempts < 1 or self.refund_max_attempts < 1:
            msg = "charge_max_attempts and refund_max_attempts must be at least 1"
            raise ValueError(msg)
        if self.compensation_max_retries < 0 or self.compensation_backoff < 0:
            msg = "compensation retries and backoff must not be negative"
            raise ValueError(msg)
        if not self.currency:
            msg = "currency is required"
            raise ValueError(msg)

    def _build_listeners(self) -> list[SagaListener]:
        """Build listeners list from configuration."""
        from ordersaga.core.listeners import (
            LoggingSagaListener,
            MetricsSagaListener,
            SagaListener,
        )

        listeners: list[SagaListener] = []

        if isinstance(self.logging, SagaListener):
            listeners.append(self.logging)
        elif self.logging:
            listeners.append(LoggingSagaListener())

        if isinstance(self.metrics, SagaListener):
            listeners.append(self.metrics)
        elif self.metrics:
            listeners.append(MetricsSagaListener())

        return listeners

    @property
    def listeners(self) -> list[SagaListener]:
        """Get configured listeners list."""
        return self._listeners

    def payment_budget(self, attempts: int) -> float:
        """
        Outer bound for a payment call that may make ``attempts`` tries.

        Covers every attempt's ``payment_timeout`` plus the backoff between
        attempts as ``RetryingPaymentClient.from_config`` schedules it, so a
        timed-out attempt is retried by the client instead of ending the step.
        """
        backoff = sum(self.compensation_backoff * 2**i for i in range(attempts - 1))
        return attempts * self.payment_timeout + backoff + PAYMENT_BUDGET_SLACK

    def step_timeouts(self) -> dict[str, float]:
        """Timeouts keyed by order-creation step name."""
        return {
            "validate_order": self.lookup_timeout,
            "price_order": self.lookup_timeout,
            "reserve_inventory": self.reservation_timeout,
            "charge_payment": self.payment_budget(self.charge_max_attempts),
            "persist_order": self.persistence_timeout,
            "link_reservation": self.reservation_timeout,
            "record_audit": self.audit_timeout,
            "send_confirmation": self.notification_timeout,
        }

    def compensation_timeouts(self) -> dict[str, float]:
        """Per-attempt bounds for order-creation compensations, keyed by step name."""
        return {
            "reserve_inventory": self.reservation_timeout,
            "charge_payment": self.payment_budget(self.refund_max_attempts),
        }

    def with_overrides(self, **overrides: Any) -> OrderSagaConfig:
        """Create a new config with some values replaced (immutable update)."""
        return replace(self, **overrides)

    def as_dict(self) -> dict[str, Any]:
        """Plain values for display; listener instances are shown by class name."""
        result: dict[str, Any] = {}
        for f in fields(self):
            if f.name.startswith("_"):
                continue
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                value = str(value)
            elif not isinstance(value, (bool, int, float, str)):
                value = type(value).__name__
            result[f.name] = value
        return result

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> OrderSagaConfig:
        """
        Create configuration from environment variables.

        Environment variables:
            ORDERSAGA_CURRENCY, ORDERSAGA_DEFAULT_TAX_RATE, ORDERSAGA_TAX_REGION
            ORDERSAGA_LOOKUP_TIMEOUT, ORDERSAGA_RESERVATION_TIMEOUT,
            ORDERSAGA_PAYMENT_TIMEOUT, ORDERSAGA_PERSISTENCE_TIMEOUT,
            ORDERSAGA_AUDIT_TIMEOUT, ORDERSAGA_NOTIFICATION_TIMEOUT
            ORDERSAGA_COMPENSATION_MAX_RETRIES, ORDERSAGA_COMPENSATION_BACKOFF
            ORDERSAGA_CHARGE_MAX_ATTEMPTS, ORDERSAGA_REFUND_MAX_ATTEMPTS
            ORDERSAGA_LOGGING, ORDERSAGA_METRICS

        Args:
            env: EnvManager to read from (a fresh one loading ./.env by default)
        """
        if env is None:
            from ordersaga.core.env import EnvManager

            env = EnvManager()

        defaults = cls(logging=False)
        values: dict[str, Any] = {
            "currency": env.get("ORDERSAGA_CURRENCY", defaults.currency),
            "default_tax_rate": env.get_decimal(
                "ORDERSAGA_DEFAULT_TAX_RATE", defaults.default_tax_rate
            ),
            "tax_region": env.get("ORDERSAGA_TAX_REGION", defaults.tax_region),
            "compensation_max_retries": env.get_int(
                "ORDERSAGA_COMPENSATION_MAX_RETRIES", defaults.compensation_max_retries
            ),
            "compensation_backoff": env.get_float(
                "ORDERSAGA_COMPENSATION_BACKOFF", defaults.compensation_backoff
            ),
            "charge_max_attempts": env.get_int(
                "ORDERSAGA_CHARGE_MAX_ATTEMPTS", defaults.charge_max_attempts
            ),
            "refund_max_attempts": env.get_int(
                "ORDERSAGA_REFUND_MAX_ATTEMPTS", defaults.refund_max_attempts
            ),
            "logging": env.get_bool("ORDERSAGA_LOGGING", True),
            "metrics": env.get_bool("ORDERSAGA_METRICS", False),
        }
        for name in _TIMEOUT_FIELDS:
            values[name] = env.get_float(f"ORDERSAGA_{name.upper()}", getattr(defaults, name))

        return cls(**values)

    @classmethod
    def from_file(cls, file_path: str | Path) -> OrderSagaConfig:
        """
        Load configuration from a YAML file.

        Only known keys are accepted; anything else raises ``ValueError``.

        Example:
            # ordersaga.yaml
            currency: eur
            payment_timeout: 20
            default_tax_rate: "0.2"
        """
        import yaml

        path = Path(file_path)
        if not path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f) or {}

        known = {f.name for f in fields(cls) if not f.name.startswith("_")}
        unknown = set(data) - known
        if unknown:
            msg = f"Unknown configuration keys: {sorted(unknown)}"
            raise ValueError(msg)

        logger.debug(f"Loaded order saga configuration from {path}")
        return cls(**data)
