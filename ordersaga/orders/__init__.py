"""
Order domain: records, validation, pricing and persistence.

The saga itself lives in ``ordersaga.orders.saga`` and is re-exported from
the top-level package.
"""

from ordersaga.orders.models import (
    AuditEntry,
    ChargeResult,
    Customer,
    LineItem,
    Order,
    OrderLine,
    PriceBreakdown,
    Product,
    Promotion,
    Reservation,
    ReservationFailure,
    ReservationResult,
    ValidationResult,
    quantize_money,
    to_money,
)
from ordersaga.orders.pricing import PricingEngine
from ordersaga.orders.store import InMemoryOrderStore, OrderStore
from ordersaga.orders.validator import OrderValidator

__all__ = [
    "AuditEntry",
    "ChargeResult",
    "Customer",
    "InMemoryOrderStore",
    "LineItem",
    "Order",
    "OrderLine",
    "OrderStore",
    "OrderValidator",
    "PriceBreakdown",
    "PricingEngine",
    "Product",
    "Promotion",
    "Reservation",
    "ReservationFailure",
    "ReservationResult",
    "ValidationResult",
    "quantize_money",
    "to_money",
]
