"""
Bounded retry around any payment client.

Every attempt is bounded by a timeout. Only ``UpstreamUnavailable`` (which
includes timeouts) is retried; a decline is final on the first attempt.
Charges default to a single attempt, refunds to three.
"""

import asyncio
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import TypeVar

from ordersaga.core.exceptions import UpstreamUnavailable
from ordersaga.core.logger import get_logger
from ordersaga.core.saga import call_with_timeout
from ordersaga.orders.models import ChargeResult
from ordersaga.payments.base import PaymentClient

logger = get_logger(__name__)

T = TypeVar("T")


class RetryingPaymentClient(PaymentClient):
    """
    Wrap ``inner`` with per-attempt timeouts and exponential backoff.

    Example:
        >>> payments = RetryingPaymentClient(
        ...     HttpPaymentClient("https://payments.example.com"),
        ...     timeout=config.payment_timeout,
        ...     refund_max_attempts=config.refund_max_attempts,
        ... )
    """

    def __init__(
        self,
        inner: PaymentClient,
        timeout: float = 15.0,
        charge_max_attempts: int = 1,
        refund_max_attempts: int = 3,
        backoff: float = 0.1,
    ):
        if charge_max_attempts < 1 or refund_max_attempts < 1:
            msg = "Attempt counts must be at least 1"
            raise ValueError(msg)
        self.inner = inner
        self.timeout = timeout
        self.charge_max_attempts = charge_max_attempts
        self.refund_max_attempts = refund_max_attempts
        self.backoff = backoff

    async def _attempt(
        self, operation: str, call: Callable[[], Awaitable[T]], max_attempts: int
    ) -> T:
        for attempt in range(max_attempts):
            try:
                return await call_with_timeout(call(), self.timeout, operation)
            except UpstreamUnavailable as e:
                if attempt + 1 >= max_attempts:
                    raise
                logger.warning(
                    f"Payment {operation} failed (attempt {attempt + 1}/{max_attempts}): {e}"
                )
                await asyncio.sleep(self.backoff * 2**attempt)
        msg = f"Payment {operation} made no attempts"
        raise RuntimeError(msg)

    async def charge(self, amount: Decimal, customer_id: str, currency: str) -> ChargeResult:
        return await self._attempt(
            "charge",
            lambda: self.inner.charge(amount, customer_id, currency),
            self.charge_max_attempts,
        )

    async def refund(self, payment_reference: str, amount: Decimal) -> None:
        await self._attempt(
            "refund",
            lambda: self.inner.refund(payment_reference, amount),
            self.refund_max_attempts,
        )

    @classmethod
    def from_config(cls, inner: PaymentClient, config) -> "RetryingPaymentClient":
        """Build using the payment timeout and attempt counts of an ``OrderSagaConfig``."""
        return cls(
            inner,
            timeout=config.payment_timeout,
            charge_max_attempts=config.charge_max_attempts,
            refund_max_attempts=config.refund_max_attempts,
            backoff=config.compensation_backoff,
        )
