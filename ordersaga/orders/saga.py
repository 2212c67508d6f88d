"""
Order fulfillment saga.

``OrderCreationSaga`` is the declarative definition of order placement:

    validate_order -> price_order -> reserve_inventory -> charge_payment
        -> persist_order -> link_reservation -> record_audit -> send_confirmation

``reserve_inventory`` is compensated by releasing the reservation and
``charge_payment`` by refunding the charge. The last three steps are
best-effort: their failures are logged and never undo a placed order.

``OrderSaga`` is the entry point callers use. It builds a fresh creation saga
per order and implements the status-changing operations (update, cancel) on
top of the same collaborators.

Example:
    >>> orders = OrderSaga(
    ...     validator=OrderValidator(catalog, catalog),
    ...     pricing=PricingEngine(catalog, catalog, catalog),
    ...     inventory=InMemoryInventory({"P1": 10}),
    ...     payments=InMemoryPaymentGateway(),
    ...     store=InMemoryOrderStore(),
    ...     audit=InMemoryAuditRecorder(),
    ...     notifier=InMemoryNotificationDispatcher(),
    ... )
    >>> order = await orders.create_order("C1", [{"productId": "P1", "quantity": 2}], "1 Main St")
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from ordersaga.audit import ORDER_CANCELLED, ORDER_CREATED, ORDER_STATUS_CHANGED, AuditRecorder
from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.exceptions import (
    CompensationIncomplete,
    Conflict,
    InsufficientStock,
    NotFound,
    PaymentDeclined,
    PaymentFailed,
    ValidationFailed,
)
from ordersaga.core.logger import get_logger
from ordersaga.core.saga import Saga, action, call_with_timeout, compensate
from ordersaga.core.types import CreationState, OrderStatus, SagaStatus
from ordersaga.inventory.base import InventoryReservationClient
from ordersaga.monitoring.logging import SagaLogger, bind_saga_context
from ordersaga.notifications.base import NotificationDispatcher
from ordersaga.orders.models import Order
from ordersaga.orders.pricing import PricingEngine
from ordersaga.orders.store import OrderStore
from ordersaga.orders.validator import OrderValidator, parse_order_lines
from ordersaga.payments.base import PaymentClient

logger = get_logger(__name__)

T = TypeVar("T")

_STEP_STATES = {
    "validate_order": CreationState.VALIDATING,
    "price_order": CreationState.PRICING,
    "reserve_inventory": CreationState.RESERVING_INVENTORY,
    "charge_payment": CreationState.CHARGING_PAYMENT,
    "persist_order": CreationState.PERSISTING,
    "link_reservation": CreationState.AUDITING_AND_NOTIFYING,
    "record_audit": CreationState.AUDITING_AND_NOTIFYING,
    "send_confirmation": CreationState.AUDITING_AND_NOTIFYING,
}


class OrderCreationSaga(Saga):
    """
    One order placement. Create a new instance for every order.

    Context in: ``customer_id``, ``items``, ``shipping_address``.
    Context out: adds ``customer``, ``lines``, ``pricing``, ``reservation_id``,
    ``payment_reference`` and ``order``.
    """

    saga_name = "order_creation"

    def __init__(
        self,
        validator: OrderValidator,
        pricing: PricingEngine,
        inventory: InventoryReservationClient,
        payments: PaymentClient,
        store: OrderStore,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        config: OrderSagaConfig,
    ):
        self._validator = validator
        self._pricing = pricing
        self._inventory = inventory
        self._payments = payments
        self._store = store
        self._audit = audit
        self._notifier = notifier
        super().__init__(config=config)

    @property
    def state(self) -> CreationState:
        """Where this order placement currently is."""
        if self.status is SagaStatus.COMPLETED:
            return CreationState.CONFIRMED
        if self.status is SagaStatus.COMPENSATING:
            return CreationState.COMPENSATING
        if self.status is SagaStatus.FAILED:
            return CreationState.FAILED
        return _STEP_STATES.get(self.current_step or "", CreationState.VALIDATING)

    def _region(self, shipping_address: Any) -> str:
        if isinstance(shipping_address, Mapping) and shipping_address.get("region"):
            return str(shipping_address["region"])
        return self._config.tax_region

    @action("validate_order")
    async def validate_order(self, ctx: dict[str, Any]) -> dict[str, Any]:
        result = await self._validator.validate(
            ctx.get("customer_id"), ctx.get("items"), ctx.get("shipping_address")
        )
        if not result.valid:
            raise ValidationFailed(result.errors, result.reason or "invalid")
        return {"customer": result.customer, "lines": parse_order_lines(ctx["items"])}

    @action("price_order", depends_on=["validate_order"])
    async def price_order(self, ctx: dict[str, Any]) -> dict[str, Any]:
        breakdown = await self._pricing.calculate_total(
            ctx["lines"], region=self._region(ctx["shipping_address"])
        )
        return {"pricing": breakdown}

    @action("reserve_inventory", depends_on=["price_order"])
    async def reserve_inventory(self, ctx: dict[str, Any]) -> dict[str, Any]:
        result = await self._inventory.reserve(ctx["lines"])
        if not result.reserved:
            raise InsufficientStock(list(result.failures))
        return {"reservation_id": result.reservation_id}

    @compensate("reserve_inventory")
    async def release_inventory(self, ctx: dict[str, Any]) -> None:
        await self._inventory.release(ctx["reservation_id"])

    @action("charge_payment", depends_on=["reserve_inventory"])
    async def charge_payment(self, ctx: dict[str, Any]) -> dict[str, Any]:
        try:
            result = await self._payments.charge(
                ctx["pricing"].total, ctx["customer_id"], self._config.currency
            )
        except PaymentDeclined as e:
            raise PaymentFailed(decline_code=e.decline_code) from e
        if not result.success:
            raise PaymentFailed()
        return {"payment_reference": result.payment_reference}

    @compensate("charge_payment")
    async def refund_payment(self, ctx: dict[str, Any]) -> None:
        await self._payments.refund(ctx["payment_reference"], ctx["pricing"].total)

    @action("persist_order", depends_on=["charge_payment"])
    async def persist_order(self, ctx: dict[str, Any]) -> dict[str, Any]:
        pricing = ctx["pricing"]
        order = Order(
            customer_id=ctx["customer_id"],
            items=pricing.line_items,
            subtotal=pricing.subtotal,
            discount=pricing.discount,
            tax=pricing.tax,
            total=pricing.total,
            shipping_address=ctx["shipping_address"],
            payment_reference=ctx["payment_reference"],
            status=OrderStatus.CONFIRMED,
            reservation_id=ctx["reservation_id"],
            currency=self._config.currency,
        )
        return {"order": await self._store.insert(order)}

    @action("link_reservation", depends_on=["persist_order"], best_effort=True)
    async def link_reservation(self, ctx: dict[str, Any]) -> None:
        await self._inventory.link(ctx["reservation_id"], ctx["order"].id)

    @action("record_audit", depends_on=["persist_order"], best_effort=True)
    async def record_audit(self, ctx: dict[str, Any]) -> None:
        order: Order = ctx["order"]
        await self._audit.record(
            ORDER_CREATED,
            order.id,
            {
                "customer_id": order.customer_id,
                "total": str(order.total),
                "payment_reference": order.payment_reference,
                "reservation_id": order.reservation_id,
                "promotion_id": ctx["pricing"].promotion_id,
            },
        )

    @action("send_confirmation", depends_on=["persist_order"], best_effort=True)
    async def send_confirmation(self, ctx: dict[str, Any]) -> None:
        await self._notifier.notify_order_confirmed(ctx["order"])


class OrderSaga:
    """
    Order operations: create, update status, cancel, read.

    All collaborators are injected; ``config`` supplies timeouts, currency,
    tax defaults and listeners. No state is kept between calls besides what
    the collaborators hold.
    """

    def __init__(
        self,
        validator: OrderValidator,
        pricing: PricingEngine,
        inventory: InventoryReservationClient,
        payments: PaymentClient,
        store: OrderStore,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        config: OrderSagaConfig | None = None,
    ):
        self.validator = validator
        self.pricing = pricing
        self.inventory = inventory
        self.payments = payments
        self.store = store
        self.audit = audit
        self.notifier = notifier
        self.config = config or OrderSagaConfig()
        self.ops_log = SagaLogger()

    # =========================================================================
    # Creation
    # =========================================================================

    def new_creation_saga(self) -> OrderCreationSaga:
        return OrderCreationSaga(
            validator=self.validator,
            pricing=self.pricing,
            inventory=self.inventory,
            payments=self.payments,
            store=self.store,
            audit=self.audit,
            notifier=self.notifier,
            config=self.config,
        )

    async def create_order(
        self, customer_id: Any, items: Any, shipping_address: Any
    ) -> Order:
        """
        Place an order.

        Returns:
            The persisted order in ``confirmed`` status

        Raises:
            ValidationFailed: Bad input or unknown customer/product; no side effects
            InsufficientStock: Nothing reserved, nothing charged
            PaymentFailed: The reservation was released before this is raised
            UpstreamUnavailable: A collaborator timed out or is down, after
                the same compensation as a decline
        """
        saga = self.new_creation_saga()
        started = time.perf_counter()

        with bind_saga_context(operation="create_order", saga_name=saga.saga_name):
            try:
                ctx = await saga.run(
                    {
                        "customer_id": customer_id,
                        "items": items,
                        "shipping_address": shipping_address,
                    }
                )
            except Exception as e:
                self.ops_log.operation_failed("create_order", e, _elapsed_ms(started))
                raise

        order: Order = ctx["order"]
        self.ops_log.operation_succeeded(
            "create_order", _elapsed_ms(started), order_id=order.id, saga_id=saga.saga_id
        )
        return order

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        order = await self._persist(self.store.get(order_id), "get_order")
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def list_orders(
        self,
        status: OrderStatus | str | None = None,
        customer_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Order]:
        wanted = _parse_status(status) if status is not None else None
        return await self._persist(
            self.store.list(status=wanted, customer_id=customer_id, limit=limit, offset=offset),
            "list_orders",
        )

    # =========================================================================
    # Status changes
    # =========================================================================

    async def update_order_status(self, order_id: str, status: OrderStatus | str) -> Order:
        """
        Move an order to a new status.

        A target of ``cancelled`` runs the full cancellation (release and
        refund) instead of a bare status write.

        Raises:
            ValidationFailed: Unknown status
            NotFound: Unknown order
            Conflict: The order is already cancelled, or the target is
                ``cancelled`` and the order has shipped
        """
        target = _parse_status(status)

        with bind_saga_context(operation="update_order_status", order_id=order_id):
            order = await self.get_order(order_id)
            if order.status is OrderStatus.CANCELLED:
                msg = "Cannot update a cancelled order"
                raise Conflict(msg, current_status=order.status)

            if target is OrderStatus.CANCELLED:
                return await self.cancel_order(order_id)

            updated = await self._persist(
                self.store.update_status(order_id, target, expected_status=order.status),
                "update_status",
            )
            logger.info(f"Order {order_id}: {order.status.value} -> {target.value}")

            await self._best_effort(
                "audit",
                lambda: self.audit.record(
                    ORDER_STATUS_CHANGED,
                    order_id,
                    {"from": order.status.value, "to": target.value},
                ),
                self.config.audit_timeout,
            )
            await self._best_effort(
                "notification",
                lambda: self.notifier.notify_status_changed(updated),
                self.config.notification_timeout,
            )
            return updated

    async def cancel_order(self, order_id: str) -> Order:
        """
        Cancel an order, releasing its stock and refunding its payment.

        The status moves to ``cancelled`` first, with a compare-and-set on the
        status that was read, so of two concurrent cancels only one proceeds
        to refund.

        Raises:
            NotFound: Unknown order
            Conflict: The order is shipped or already cancelled (nothing changed)
            CompensationIncomplete: Release or refund failed. The order stays
                cancelled; both calls are idempotent and safe to retry.
        """
        started = time.perf_counter()
        with bind_saga_context(operation="cancel_order", order_id=order_id):
            order = await self.get_order(order_id)
            if order.status is OrderStatus.SHIPPED:
                msg = "Cannot cancel a shipped order"
                raise Conflict(msg, current_status=order.status)
            if order.status is OrderStatus.CANCELLED:
                msg = "Order is already cancelled"
                raise Conflict(msg, current_status=order.status)

            cancelled = await self._persist(
                self.store.update_status(
                    order_id, OrderStatus.CANCELLED, expected_status=order.status
                ),
                "update_status",
            )

            failed: dict[str, Exception] = {}
            await self._undo(
                "release_inventory",
                lambda: self.inventory.release(order.reservation_id or order.id),
                self.config.reservation_timeout,
                failed,
            )
            needs_refund = order.status is not OrderStatus.REFUNDED
            if needs_refund:
                await self._undo(
                    "refund_payment",
                    lambda: self.payments.refund(order.payment_reference, order.total),
                    self.config.payment_budget(self.config.refund_max_attempts),
                    failed,
                )

            await self._best_effort(
                "audit",
                lambda: self.audit.record(
                    ORDER_CANCELLED,
                    order_id,
                    {
                        "previous_status": order.status.value,
                        "refunded": needs_refund and "refund_payment" not in failed,
                        "failed_steps": sorted(failed),
                    },
                ),
                self.config.audit_timeout,
            )
            await self._best_effort(
                "notification",
                lambda: self.notifier.notify_status_changed(cancelled),
                self.config.notification_timeout,
            )

            if failed:
                error = CompensationIncomplete(order_id, failed)
                error.compensation_errors.extend(failed.values())
                self.ops_log.operation_failed("cancel_order", error, _elapsed_ms(started))
                raise error

            self.ops_log.operation_succeeded("cancel_order", _elapsed_ms(started))
            return cancelled

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _persist(self, awaitable: Awaitable[T], operation: str) -> T:
        return await call_with_timeout(awaitable, self.config.persistence_timeout, operation)

    async def _undo(
        self,
        name: str,
        call: Callable[[], Awaitable[Any]],
        timeout: float,
        failed: dict[str, Exception],
    ) -> None:
        """Run one cancellation compensation with the configured bounded retries."""
        retries = self.config.compensation_max_retries
        last_error: Exception | None = None
        for attempt in range(retries + 1):
            if attempt:
                await asyncio.sleep(self.config.compensation_backoff * 2 ** (attempt - 1))
            try:
                await call_with_timeout(call(), timeout, name)
                return
            except Exception as e:
                logger.warning(f"{name} failed (attempt {attempt + 1}/{retries + 1}): {e}")
                last_error = e
        failed[name] = last_error  # type: ignore[assignment]
        self.ops_log.compensation_failed(name, last_error)

    async def _best_effort(
        self, what: str, call: Callable[[], Awaitable[Any]], timeout: float
    ) -> None:
        try:
            await call_with_timeout(call(), timeout, what)
        except Exception as e:
            self.ops_log.side_effect_failed(what, e)


def _parse_status(status: OrderStatus | str) -> OrderStatus:
    if isinstance(status, OrderStatus):
        return status
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationFailed([f"Invalid status: {status}"], reason="invalid") from None


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


