"""
Inventory reservation interface consumed by the order saga.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ordersaga.orders.models import OrderLine, ReservationResult

INSUFFICIENT_STOCK = "Insufficient stock"
PRODUCT_NOT_FOUND = "Product not found"


class InventoryReservationClient(ABC):
    """
    Reserves and releases stock across a set of products.

    Implementations guarantee:
    - ``reserve`` is all-or-nothing and reports every failing item
    - concurrent reservations of the same product never oversell
    - ``release`` is idempotent: unknown or already-released ids are no-ops
    """

    @abstractmethod
    async def reserve(self, items: Sequence[OrderLine]) -> ReservationResult:
        """Atomically reserve every item, or none of them."""

    @abstractmethod
    async def release(self, reservation_or_order_id: str) -> None:
        """Release a reservation by reservation id or linked order id."""

    @abstractmethod
    async def link(self, reservation_id: str, order_id: str) -> None:
        """Associate a reservation with the order it was made for."""
