"""
Payment gateway interface consumed by the order saga.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from ordersaga.orders.models import ChargeResult


class PaymentClient(ABC):
    """
    Charges and refunds customers.

    ``charge`` raises ``PaymentDeclined`` when the instrument is refused and
    ``UpstreamUnavailable`` when the gateway cannot be reached. ``refund`` is
    idempotent per payment reference.
    """

    @abstractmethod
    async def charge(self, amount: Decimal, customer_id: str, currency: str) -> ChargeResult:
        """Charge ``amount`` to the customer's default instrument."""

    @abstractmethod
    async def refund(self, payment_reference: str, amount: Decimal) -> None:
        """Refund a previous charge. Refunding twice is a no-op."""
