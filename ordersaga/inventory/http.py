"""
HTTP inventory client.

Talks to an inventory service exposing:

    POST /api/products/reserve  {"items": [{"productId", "quantity"}]}
        -> {"reserved": true, "reservationId": "..."}
         | {"reserved": false, "failures": [{"productId", "reason"}]}
    POST /api/products/release  {"reservationId": "..."}
    POST /api/products/link     {"reservationId": "...", "orderId": "..."}
"""

from collections.abc import Sequence
from typing import Any

import httpx

from ordersaga.core.exceptions import UpstreamUnavailable
from ordersaga.core.logger import get_logger
from ordersaga.inventory.base import InventoryReservationClient
from ordersaga.orders.models import OrderLine, ReservationFailure, ReservationResult

logger = get_logger(__name__)


class HttpInventoryClient(InventoryReservationClient):
    """
    Inventory collaborator over HTTP.

    Timeouts, transport errors and 5xx responses raise ``UpstreamUnavailable``.
    A 404 on release is treated as "nothing to release". A refused reservation
    (a 409, or a 2xx with ``reserved: false``) must name the refused products.
    Other client errors raise ``httpx.HTTPStatusError``; unreadable bodies
    raise ``UpstreamUnavailable``.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
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
            msg = f"Inventory service timed out during {operation}"
            raise UpstreamUnavailable(msg, operation) from e
        except httpx.TransportError as e:
            msg = f"Inventory service unreachable during {operation}: {e}"
            raise UpstreamUnavailable(msg, operation) from e

        if response.status_code >= 500:
            msg = f"Inventory service error {response.status_code} during {operation}"
            raise UpstreamUnavailable(msg, operation)
        return response

    def _json(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            msg = f"Unreadable inventory response ({response.status_code}) during {operation}"
            raise UpstreamUnavailable(msg, operation) from e
        if not isinstance(data, dict):
            msg = f"Unexpected inventory response ({response.status_code}) during {operation}"
            raise UpstreamUnavailable(msg, operation)
        return data

    async def reserve(self, items: Sequence[OrderLine]) -> ReservationResult:
        payload = {
            "items": [{"productId": line.product_id, "quantity": line.quantity} for line in items]
        }
        response = await self._post("/api/products/reserve", payload, "reserve")
        # 409 carries the per-product refusal; any other client error is not a stock problem
        if response.status_code != 409:
            response.raise_for_status()
        data = self._json(response, "reserve")

        if data.get("reserved"):
            if not data.get("reservationId"):
                msg = "Inventory service reserved stock without a reservation id"
                raise UpstreamUnavailable(msg, "reserve")
            return ReservationResult(reserved=True, reservation_id=data["reservationId"])

        failures = tuple(
            ReservationFailure(product_id=f.get("productId"), reason=f.get("reason", "unknown"))
            for f in data.get("failures") or ()
            if isinstance(f, dict)
        )
        if not failures:
            msg = "Inventory service refused the reservation without naming any product"
            raise UpstreamUnavailable(msg, "reserve")
        return ReservationResult(reserved=False, failures=failures)

    async def release(self, reservation_or_order_id: str) -> None:
        response = await self._post(
            "/api/products/release", {"reservationId": reservation_or_order_id}, "release"
        )
        if response.status_code == 404:
            logger.debug(f"Nothing to release for {reservation_or_order_id}")
            return
        response.raise_for_status()

    async def link(self, reservation_id: str, order_id: str) -> None:
        response = await self._post(
            "/api/products/link", {"reservationId": reservation_id, "orderId": order_id}, "link"
        )
        response.raise_for_status()
