"""
Tests for the HTTP inventory client against a mocked transport
"""

import json

import httpx
import pytest

from ordersaga.core.exceptions import InsufficientStock, UpstreamUnavailable
from ordersaga.inventory import HttpInventoryClient
from ordersaga.orders.models import OrderLine


def make_client(handler):
    transport = httpx.MockTransport(handler)
    return HttpInventoryClient(
        "http://inventory.test/", client=httpx.AsyncClient(transport=transport)
    )


class TestReserve:
    """Reservation outcomes and how service failures surface"""

    @pytest.mark.asyncio
    async def test_reserved(self):
        """A successful reservation posts the lines and returns the reservation id"""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"reserved": True, "reservationId": "res-1"})

        client = make_client(handler)
        result = await client.reserve([OrderLine("P1", 2)])

        assert result.reserved
        assert result.reservation_id == "res-1"
        assert seen["url"] == "http://inventory.test/api/products/reserve"
        assert seen["body"] == {"items": [{"productId": "P1", "quantity": 2}]}

    @pytest.mark.asyncio
    async def test_refused_with_failures(self):
        """A 409 naming products is a refusal"""

        def handler(request):
            return httpx.Response(
                409,
                json={
                    "reserved": False,
                    "failures": [{"productId": "P1", "reason": "Insufficient stock"}],
                },
            )

        result = await make_client(handler).reserve([OrderLine("P1", 99)])

        assert not result.reserved
        assert result.failures[0].product_id == "P1"
        assert result.failures[0].reason == "Insufficient stock"

    @pytest.mark.asyncio
    async def test_ok_status_with_reserved_false_is_refusal(self):
        """A 2xx body saying reserved: false is a refusal too"""

        def handler(request):
            return httpx.Response(
                200, json={"reserved": False, "failures": [{"productId": "P2"}]}
            )

        result = await make_client(handler).reserve([OrderLine("P2", 9)])

        assert not result.reserved
        assert result.failures[0].product_id == "P2"
        assert result.failures[0].reason == "unknown"

    @pytest.mark.asyncio
    async def test_server_error_is_upstream_unavailable(self):
        """A 5xx means the service is down"""
        client = make_client(lambda request: httpx.Response(503))

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await client.reserve([OrderLine("P1", 1)])
        assert exc_info.value.operation == "reserve"

    @pytest.mark.asyncio
    async def test_connection_error_is_upstream_unavailable(self):
        """Transport failures mean the service is down"""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            await make_client(handler).reserve([OrderLine("P1", 1)])

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_unavailable(self):
        """A transport timeout is reported as a timeout"""

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamUnavailable, match="timed out"):
            await make_client(handler).reserve([OrderLine("P1", 1)])


class TestReserveMalformedResponses:
    """Auth errors and bad bodies are never mistaken for missing stock"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 422])
    async def test_client_error_raises_http_status_error(self, status):
        """Non-409 client errors surface as HTTP errors, not refusals"""
        client = make_client(lambda request: httpx.Response(status, json={"error": "nope"}))

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await client.reserve([OrderLine("P1", 1)])
        assert exc_info.value.response.status_code == status

    @pytest.mark.asyncio
    async def test_not_found_html_body_raises_http_status_error(self):
        """A 404 page from a misrouted proxy is an HTTP error"""
        client = make_client(lambda request: httpx.Response(404, text="<html>Not Found</html>"))

        with pytest.raises(httpx.HTTPStatusError):
            await client.reserve([OrderLine("P1", 1)])

    @pytest.mark.asyncio
    async def test_conflict_without_failures_is_upstream_unavailable(self):
        """A refusal that names no product cannot be reported as out of stock"""
        client = make_client(
            lambda request: httpx.Response(409, json={"reserved": False, "failures": []})
        )

        with pytest.raises(UpstreamUnavailable, match="without naming"):
            await client.reserve([OrderLine("P1", 1)])

    @pytest.mark.asyncio
    async def test_non_json_body_is_upstream_unavailable(self):
        """An unreadable 200 body is an upstream fault"""
        client = make_client(lambda request: httpx.Response(200, text="OK"))

        with pytest.raises(UpstreamUnavailable, match="Unreadable") as exc_info:
            await client.reserve([OrderLine("P1", 1)])
        assert exc_info.value.operation == "reserve"

    @pytest.mark.asyncio
    async def test_non_object_body_is_upstream_unavailable(self):
        """A JSON list where an object is expected is an upstream fault"""
        client = make_client(lambda request: httpx.Response(200, json=["reserved"]))

        with pytest.raises(UpstreamUnavailable, match="Unexpected"):
            await client.reserve([OrderLine("P1", 1)])

    @pytest.mark.asyncio
    async def test_reserved_without_id_is_upstream_unavailable(self):
        """A reservation with nothing to release later is rejected"""
        client = make_client(lambda request: httpx.Response(200, json={"reserved": True}))

        with pytest.raises(UpstreamUnavailable, match="reservation id"):
            await client.reserve([OrderLine("P1", 1)])

    @pytest.mark.asyncio
    async def test_unauthorized_placement_is_not_insufficient_stock(
        self, orders, payments, store, two_widgets
    ):
        """A placement against a rejecting inventory service charges nothing"""
        orders.inventory = make_client(
            lambda request: httpx.Response(401, json={"error": "unauthorized"})
        )

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await orders.create_order("C1", two_widgets)

        assert not isinstance(exc_info.value, InsufficientStock)
        assert payments.charge_calls == 0
        assert await store.count() == 0


class TestReleaseAndLink:
    """Release and link calls after a reservation"""

    @pytest.mark.asyncio
    async def test_release_posts_reservation_id(self):
        """Release sends the reservation id"""
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={})

        await make_client(handler).release("res-1")
        assert bodies == [{"reservationId": "res-1"}]

    @pytest.mark.asyncio
    async def test_release_unknown_is_noop(self):
        """Releasing an unknown reservation is not an error"""
        await make_client(lambda request: httpx.Response(404)).release("res-x")

    @pytest.mark.asyncio
    async def test_release_client_error_raises(self):
        """Other client errors on release surface as HTTP errors"""
        with pytest.raises(httpx.HTTPStatusError):
            await make_client(lambda request: httpx.Response(400)).release("res-x")

    @pytest.mark.asyncio
    async def test_link(self):
        """Link sends both the reservation and the order id"""
        bodies = []

        def handler(request):
            bodies.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={})

        await make_client(handler).link("res-1", "O1")
        assert bodies == [("/api/products/link", {"reservationId": "res-1", "orderId": "O1"})]
