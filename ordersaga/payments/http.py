"""
HTTP payment client.

Talks to a gateway exposing:

    POST /v1/charges  {"amount", "customerId", "currency"} -> {"success", "paymentId"}
    POST /v1/refunds  {"paymentId", "amount"}

Amounts travel as decimal strings so no precision is lost on the wire.
"""

from decimal import Decimal
from typing import Any

import httpx

from ordersaga.core.exceptions import PaymentDeclined, UpstreamUnavailable
from ordersaga.core.logger import get_logger
from ordersaga.orders.models import ChargeResult
from ordersaga.payments.base import PaymentClient

logger = get_logger(__name__)


def _declined(detail: dict[str, Any]) -> PaymentDeclined:
    return PaymentDeclined(
        detail.get("message", "Payment charge failed"), decline_code=detail.get("declineCode")
    )


class HttpPaymentClient(PaymentClient):
    """
    Payment gateway over HTTP.

    A 402, or a 2xx with ``success: false``, is a decline. Timeouts, transport
    errors, 5xx responses and unreadable bodies raise ``UpstreamUnavailable``;
    other client errors raise ``httpx.HTTPStatusError``.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any], operation: str) -> httpx.Response:
        try:
            response = await self._client.post(f"{self.base_url}{path}", json=payload)
        except httpx.TimeoutException as e:
            msg = f"Payment gateway timed out during {operation}"
            raise UpstreamUnavailable(msg, operation) from e
        except httpx.TransportError as e:
            msg = f"Payment gateway unreachable during {operation}: {e}"
            raise UpstreamUnavailable(msg, operation) from e

        if response.status_code >= 500:
            msg = f"Payment gateway error {response.status_code} during {operation}"
            raise UpstreamUnavailable(msg, operation)
        return response

    def _json(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            msg = f"Unreadable payment gateway response ({response.status_code}) during {operation}"
            raise UpstreamUnavailable(msg, operation) from e
        if not isinstance(data, dict):
            msg = f"Unexpected payment gateway response ({response.status_code}) during {operation}"
            raise UpstreamUnavailable(msg, operation)
        return data

    async def charge(self, amount: Decimal, customer_id: str, currency: str) -> ChargeResult:
        payload = {"amount": str(amount), "customerId": customer_id, "currency": currency}
        response = await self._post("/v1/charges", payload, "charge")
        if response.status_code == 402:
            try:
                detail = self._json(response, "charge")
            except UpstreamUnavailable:
                detail = {}
            raise _declined(detail)

        # Only 402 is a decline; other client errors are misconfiguration
        response.raise_for_status()
        data = self._json(response, "charge")
        if not data.get("success"):
            raise _declined(data)
        if not data.get("paymentId"):
            raise UpstreamUnavailable("Payment gateway charged without a payment id", "charge")
        return ChargeResult(success=True, payment_reference=data["paymentId"])

    async def refund(self, payment_reference: str, amount: Decimal) -> None:
        payload = {"paymentId": payment_reference, "amount": str(amount)}
        response = await self._post("/v1/refunds", payload, "refund")
        # 409 means the gateway already refunded this payment
        if response.status_code == 409:
            logger.debug(f"Payment {payment_reference} already refunded")
            return
        response.raise_for_status()
