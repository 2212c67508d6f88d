"""
In-memory inventory with reservation bookkeeping.

Each product has its own ``asyncio.Lock``. A reservation acquires the locks
of every product it touches, in sorted id order, then checks and decrements
under those locks. Sorted acquisition keeps two overlapping reservations from
deadlocking; holding all locks across check and decrement keeps them from
overselling.
"""

import asyncio
import uuid
from collections import defaultdict
from collections.abc import Sequence
from contextlib import AsyncExitStack
from datetime import UTC, datetime

from ordersaga.core.exceptions import Conflict
from ordersaga.core.logger import get_logger
from ordersaga.core.types import ReservationStatus
from ordersaga.inventory.base import (
    INSUFFICIENT_STOCK,
    PRODUCT_NOT_FOUND,
    InventoryReservationClient,
)
from ordersaga.orders.models import (
    OrderLine,
    Reservation,
    ReservationFailure,
    ReservationResult,
)

logger = get_logger(__name__)


class InMemoryInventory(InventoryReservationClient):
    """
    In-memory stock table and reservation ledger.

    Not suitable for production use as state is lost on process restart.
    """

    def __init__(self, stock: dict[str, int] | None = None):
        self._stock: dict[str, int] = dict(stock or {})
        self._reservations: dict[str, Reservation] = {}
        self._by_order: dict[str, str] = {}
        self._product_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ledger_lock = asyncio.Lock()

    def stock_of(self, product_id: str) -> int | None:
        """Currently available quantity, or None for an unknown product."""
        return self._stock.get(product_id)

    def set_stock(self, product_id: str, quantity: int) -> None:
        if quantity < 0:
            msg = f"Stock for {product_id} must not be negative"
            raise ValueError(msg)
        self._stock[product_id] = quantity

    def get_reservation(self, reservation_or_order_id: str) -> Reservation | None:
        reservation_id = self._by_order.get(reservation_or_order_id, reservation_or_order_id)
        return self._reservations.get(reservation_id)

    def active_reservations(self) -> list[Reservation]:
        return [r for r in self._reservations.values() if r.is_active]

    async def reserve(self, items: Sequence[OrderLine]) -> ReservationResult:
        wanted = self._aggregate(items)

        async with AsyncExitStack() as stack:
            for product_id in sorted(wanted):
                await stack.enter_async_context(self._product_locks[product_id])

            failures = self._check(items, wanted)
            if failures:
                logger.info(f"Reservation refused: {[(f.product_id, f.reason) for f in failures]}")
                return ReservationResult(reserved=False, failures=tuple(failures))

            for product_id, quantity in wanted.items():
                self._stock[product_id] -= quantity

            reservation = Reservation(
                id=f"res-{uuid.uuid4()}",
                items=tuple((line.product_id, line.quantity) for line in items),
                created_at=datetime.now(UTC),
            )
            async with self._ledger_lock:
                self._reservations[reservation.id] = reservation

        logger.info(f"Reserved {dict(wanted)} as {reservation.id}")
        return ReservationResult(reserved=True, reservation_id=reservation.id)

    @staticmethod
    def _aggregate(items: Sequence[OrderLine]) -> dict[str, int]:
        wanted: dict[str, int] = {}
        for line in items:
            wanted[line.product_id] = wanted.get(line.product_id, 0) + line.quantity
        return wanted

    def _check(self, items: Sequence[OrderLine], wanted: dict[str, int]) -> list[ReservationFailure]:
        failures: list[ReservationFailure] = []
        reported: set[str] = set()
        for line in items:
            if line.product_id in reported:
                continue
            available = self._stock.get(line.product_id)
            if available is None:
                failures.append(ReservationFailure(line.product_id, PRODUCT_NOT_FOUND))
                reported.add(line.product_id)
            elif available < wanted[line.product_id]:
                failures.append(ReservationFailure(line.product_id, INSUFFICIENT_STOCK))
                reported.add(line.product_id)
        return failures

    async def release(self, reservation_or_order_id: str) -> None:
        async with self._ledger_lock:
            reservation = self.get_reservation(reservation_or_order_id)
            if reservation is None or not reservation.is_active:
                return
            reservation.status = ReservationStatus.RELEASED
            reservation.released_at = datetime.now(UTC)

        for product_id, quantity in reservation.items:
            async with self._product_locks[product_id]:
                self._stock[product_id] = self._stock.get(product_id, 0) + quantity

        logger.info(f"Released reservation {reservation.id}")

    async def link(self, reservation_id: str, order_id: str) -> None:
        async with self._ledger_lock:
            reservation = self._reservations.get(reservation_id)
            if reservation is None:
                return

            existing_id = self._by_order.get(order_id)
            if existing_id and existing_id != reservation_id:
                existing = self._reservations[existing_id]
                if existing.is_active:
                    msg = f"Order {order_id} already has active reservation {existing_id}"
                    raise Conflict(msg)

            reservation.order_id = order_id
            self._by_order[order_id] = reservation_id
