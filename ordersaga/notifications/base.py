"""
Customer notification interface.

Notifications are side channels: the order saga bounds them with a timeout and
swallows their failures.
"""

from abc import ABC, abstractmethod

from ordersaga.orders.models import Order

CONFIRMATION_TEMPLATE = "order_confirmation"
STATUS_UPDATE_TEMPLATE = "order_status_update"


class NotificationDispatcher(ABC):
    @abstractmethod
    async def notify_order_confirmed(self, order: Order) -> None:
        """Tell the customer their order was placed."""

    @abstractmethod
    async def notify_status_changed(self, order: Order) -> None:
        """Tell the customer their order moved to ``order.status``."""
