"""
Durable order records.

``OrderStore`` is the interface the saga persists through. The in-memory
implementation is for development and testing: state is lost on process
restart.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import UTC, datetime

from ordersaga.core.exceptions import Conflict, NotFound
from ordersaga.core.types import OrderStatus
from ordersaga.orders.models import Order


class OrderStore(ABC):
    """
    Abstract base class for order persistence.

    Orders are never deleted. ``payment_reference`` is written once on insert
    and never changed by status updates.
    """

    @abstractmethod
    async def insert(self, order: Order) -> Order:
        """
        Persist a new order.

        Returns:
            The stored order with ``id``, ``created_at`` and ``updated_at`` set
        """

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        """Load an order, or None if it does not exist."""

    @abstractmethod
    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        expected_status: OrderStatus | None = None,
    ) -> Order:
        """
        Change an order's status.

        Args:
            order_id: Order to update
            status: New status
            expected_status: If given, the update only applies while the
                stored status still equals it (compare-and-set)

        Raises:
            NotFound: If the order does not exist
            Conflict: If ``expected_status`` does not match the stored status
        """

    @abstractmethod
    async def list(
        self,
        status: OrderStatus | None = None,
        customer_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Order]:
        """List orders, newest first."""


class InMemoryOrderStore(OrderStore):
    """
    In-memory implementation of order storage

    Stores orders in a dictionary guarded by an asyncio lock.
    """

    def __init__(self):
        self._orders: dict[str, Order] = {}
        self._sequence: list[str] = []
        self._lock = asyncio.Lock()

    async def insert(self, order: Order) -> Order:
        async with self._lock:
            now = datetime.now(UTC)
            stored = replace(order, id=str(uuid.uuid4()), created_at=now, updated_at=now)
            self._orders[stored.id] = stored
            self._sequence.append(stored.id)
            return stored

    async def get(self, order_id: str) -> Order | None:
        async with self._lock:
            return self._orders.get(order_id)

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        expected_status: OrderStatus | None = None,
    ) -> Order:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise NotFound("Order", order_id)

            if expected_status is not None and order.status is not expected_status:
                msg = (
                    f"Order {order_id} is {order.status.value}, "
                    f"expected {expected_status.value}"
                )
                raise Conflict(msg, current_status=order.status)

            updated = replace(order, status=status, updated_at=datetime.now(UTC))
            self._orders[order_id] = updated
            return updated

    async def list(
        self,
        status: OrderStatus | None = None,
        customer_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Order]:
        async with self._lock:
            results = [
                self._orders[order_id]
                for order_id in reversed(self._sequence)
                if self._matches_filters(self._orders[order_id], status, customer_id)
            ]
            return results[offset : offset + limit]

    @staticmethod
    def _matches_filters(
        order: Order, status: OrderStatus | None, customer_id: str | None
    ) -> bool:
        if status is not None and order.status is not status:
            return False
        return customer_id is None or order.customer_id == customer_id

    async def count(self) -> int:
        async with self._lock:
            return len(self._orders)
