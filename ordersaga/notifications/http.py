"""
HTTP notification dispatcher.

Sends through a notification API and an optional Slack webhook:

    POST {api}/v1/email  {"to", "template", "data"}
    POST {api}/v1/sms    {"to", "message"}           (when an order ships)
    POST {slack_webhook} {"text"}                    (cancelled or refunded)

Recipient email and phone are looked up in the customer directory. A missing
recipient skips that channel.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from ordersaga.core.logger import get_logger
from ordersaga.core.types import OrderStatus
from ordersaga.notifications.base import (
    CONFIRMATION_TEMPLATE,
    STATUS_UPDATE_TEMPLATE,
    NotificationDispatcher,
)
from ordersaga.orders.models import Customer, Order

if TYPE_CHECKING:
    from ordersaga.catalog import CustomerDirectory

logger = get_logger(__name__)

_ALERT_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


class HttpNotificationDispatcher(NotificationDispatcher):
    def __init__(
        self,
        api_url: str,
        customers: CustomerDirectory,
        slack_webhook_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.customers = customers
        self.slack_webhook_url = slack_webhook_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, url: str, payload: dict[str, Any]) -> None:
        response = await self._client.post(url, json=payload)
        response.raise_for_status()

    async def _recipient(self, order: Order) -> Customer | None:
        customer = await self.customers.get_customer(order.customer_id)
        if customer is None:
            logger.warning(f"No customer record for order {order.id}, skipping notification")
        return customer

    async def _email(self, to: str | None, template: str, data: dict[str, Any]) -> None:
        if not to:
            return
        await self._post(
            f"{self.api_url}/v1/email", {"to": to, "template": template, "data": data}
        )

    async def notify_order_confirmed(self, order: Order) -> None:
        customer = await self._recipient(order)
        if customer is None:
            return
        await self._email(
            customer.email,
            CONFIRMATION_TEMPLATE,
            {"orderId": order.id, "total": str(order.total), "currency": order.currency},
        )

    async def notify_status_changed(self, order: Order) -> None:
        customer = await self._recipient(order)
        if customer is not None:
            await self._email(
                customer.email,
                STATUS_UPDATE_TEMPLATE,
                {"orderId": order.id, "status": order.status.value},
            )
            if order.status is OrderStatus.SHIPPED and customer.phone:
                await self._post(
                    f"{self.api_url}/v1/sms",
                    {"to": customer.phone, "message": f"Your order {order.id} has shipped!"},
                )

        if order.status in _ALERT_STATUSES and self.slack_webhook_url:
            await self._post(
                self.slack_webhook_url, {"text": f"Order {order.id} was {order.status.value}"}
            )
