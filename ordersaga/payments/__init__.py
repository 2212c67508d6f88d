"""
Payment collaborators.
"""

from ordersaga.payments.base import PaymentClient
from ordersaga.payments.http import HttpPaymentClient
from ordersaga.payments.memory import InMemoryPaymentGateway, LedgerEntry
from ordersaga.payments.retry import RetryingPaymentClient

__all__ = [
    "HttpPaymentClient",
    "InMemoryPaymentGateway",
    "LedgerEntry",
    "PaymentClient",
    "RetryingPaymentClient",
]
