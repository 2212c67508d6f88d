"""
In-memory notification dispatcher for tests and the CLI.
"""

from dataclasses import dataclass

from ordersaga.notifications.base import (
    CONFIRMATION_TEMPLATE,
    STATUS_UPDATE_TEMPLATE,
    NotificationDispatcher,
)
from ordersaga.orders.models import Order


@dataclass(frozen=True)
class SentNotification:
    template: str
    order_id: str
    customer_id: str
    status: str


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """Records every notification instead of sending it."""

    def __init__(self):
        self.sent: list[SentNotification] = []

    def _record(self, template: str, order: Order) -> None:
        self.sent.append(
            SentNotification(template, order.id, order.customer_id, order.status.value)
        )

    async def notify_order_confirmed(self, order: Order) -> None:
        self._record(CONFIRMATION_TEMPLATE, order)

    async def notify_status_changed(self, order: Order) -> None:
        self._record(STATUS_UPDATE_TEMPLATE, order)

    def for_order(self, order_id: str) -> list[SentNotification]:
        return [n for n in self.sent if n.order_id == order_id]
