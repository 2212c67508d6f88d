"""
In-memory payment gateway.

Keeps a ledger of charges and refunds. Useful for tests and the CLI.
"""

import asyncio
import uuid
from dataclasses import dataclass
from decimal import Decimal

from ordersaga.core.exceptions import NotFound, PaymentDeclined
from ordersaga.core.logger import get_logger
from ordersaga.orders.models import ChargeResult
from ordersaga.payments.base import PaymentClient

logger = get_logger(__name__)


@dataclass
class LedgerEntry:
    payment_reference: str
    customer_id: str
    amount: Decimal
    currency: str
    refunded: bool = False


class InMemoryPaymentGateway(PaymentClient):
    """
    Payment gateway backed by a dict ledger.

    Customers listed in ``declined_customers`` are refused with a
    ``PaymentDeclined`` carrying ``decline_code="card_declined"``.
    """

    def __init__(self, declined_customers: set[str] | None = None):
        self.declined_customers = set(declined_customers or ())
        self._ledger: dict[str, LedgerEntry] = {}
        self._lock = asyncio.Lock()
        self.charge_calls = 0
        self.refund_calls = 0

    def decline(self, customer_id: str) -> None:
        self.declined_customers.add(customer_id)

    def get_charge(self, payment_reference: str) -> LedgerEntry | None:
        return self._ledger.get(payment_reference)

    @property
    def charges(self) -> list[LedgerEntry]:
        return list(self._ledger.values())

    @property
    def refunded_total(self) -> Decimal:
        return sum((e.amount for e in self._ledger.values() if e.refunded), Decimal("0"))

    async def charge(self, amount: Decimal, customer_id: str, currency: str) -> ChargeResult:
        async with self._lock:
            self.charge_calls += 1
            if customer_id in self.declined_customers:
                logger.info(f"Declining charge of {amount} {currency} for {customer_id}")
                raise PaymentDeclined(decline_code="card_declined")

            reference = f"pay-{uuid.uuid4()}"
            self._ledger[reference] = LedgerEntry(reference, customer_id, amount, currency)
            logger.info(f"Charged {amount} {currency} to {customer_id} as {reference}")
            return ChargeResult(success=True, payment_reference=reference)

    async def refund(self, payment_reference: str, amount: Decimal) -> None:
        async with self._lock:
            self.refund_calls += 1
            entry = self._ledger.get(payment_reference)
            if entry is None:
                raise NotFound("Payment", payment_reference)
            if entry.refunded:
                logger.debug(f"Payment {payment_reference} already refunded")
                return
            entry.refunded = True
            logger.info(f"Refunded {amount} for {payment_reference}")
