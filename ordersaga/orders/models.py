"""
Order domain records.

Money is always ``Decimal``. Floats are accepted at the edges only through
``to_money``, which goes through ``str`` so ``0.1`` stays ``0.1``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ordersaga.core.types import OrderStatus, ReservationStatus

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    """Convert an int, str, float or Decimal into a Decimal amount."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Decimal) -> Decimal:
    """Round to whole cents, half away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Customer:
    id: str
    name: str = ""
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    sku: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_money(self.price))


@dataclass(frozen=True)
class Promotion:
    """Pricing input only. Authoring rules live elsewhere."""

    id: str
    active: bool
    min_amount: Decimal
    discount_pct: Decimal
    eligible_product_ids: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "min_amount", to_money(self.min_amount))
        object.__setattr__(self, "discount_pct", to_money(self.discount_pct))
        object.__setattr__(self, "eligible_product_ids", frozenset(self.eligible_product_ids))


@dataclass(frozen=True)
class OrderLine:
    """A requested line: what the customer asked for, before pricing."""

    product_id: str
    quantity: int

    @classmethod
    def from_input(cls, item: Any) -> "OrderLine":
        """Accept mappings using ``product_id``/``productId`` or objects with those attributes."""
        if isinstance(item, Mapping):
            product_id = item.get("product_id", item.get("productId"))
            quantity = item.get("quantity")
        else:
            product_id = getattr(item, "product_id", None)
            quantity = getattr(item, "quantity", None)
        return cls(product_id=product_id, quantity=quantity)


@dataclass(frozen=True)
class LineItem:
    """A priced line. ``unit_price`` is the catalog price captured at order time."""

    product_id: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
        }


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    line_items: tuple[LineItem, ...] = ()
    promotion_id: str | None = None


@dataclass(frozen=True)
class Order:
    """
    A persisted order.

    ``id``, ``created_at`` and ``updated_at`` are assigned by the store on
    insert. Orders are never deleted, only moved between statuses.
    """

    customer_id: str
    items: tuple[LineItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: Any
    payment_reference: str
    status: OrderStatus = OrderStatus.CONFIRMED
    reservation_id: str | None = None
    currency: str = "usd"
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "tax": str(self.tax),
            "total": str(self.total),
            "currency": self.currency,
            "shipping_address": self.shipping_address,
            "payment_reference": self.payment_reference,
            "reservation_id": self.reservation_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class Reservation:
    id: str
    items: tuple[tuple[str, int], ...]
    status: ReservationStatus = ReservationStatus.ACTIVE
    order_id: str | None = None
    created_at: datetime | None = None
    released_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is ReservationStatus.ACTIVE


@dataclass(frozen=True)
class ReservationFailure:
    product_id: str
    reason: str


@dataclass(frozen=True)
class ReservationResult:
    reserved: bool
    reservation_id: str | None = None
    failures: tuple[ReservationFailure, ...] = ()


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    payment_reference: str | None = None


@dataclass(frozen=True)
class AuditEntry:
    event_type: str
    subject_id: str
    payload: Mapping[str, Any]
    timestamp: datetime


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    customer: Customer | None = None
    reason: str | None = None
