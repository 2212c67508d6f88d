"""
ordersaga - Order fulfillment saga

Places and cancels orders against independent inventory and payment systems,
keeping the order record, stock levels and payment ledger consistent despite
partial failures.

- Declarative saga engine with @action and @compensate decorators
- Compensation in reverse order with bounded retries and per-step timeouts
- Pluggable collaborators (in-memory and HTTP) for inventory, payments,
  notifications, audit and order storage
- Structured JSON logging and Prometheus metrics through saga listeners

Usage:
    >>> from ordersaga import OrderSaga, OrderSagaConfig
    >>> from ordersaga.catalog import InMemoryCatalog
    >>>
    >>> catalog = InMemoryCatalog(customers=[...], products=[...])
    >>> orders = OrderSaga(
    ...     validator=OrderValidator(catalog, catalog),
    ...     pricing=PricingEngine(catalog, catalog, catalog),
    ...     inventory=InMemoryInventory({"P1": 10}),
    ...     payments=InMemoryPaymentGateway(),
    ...     store=InMemoryOrderStore(),
    ...     audit=InMemoryAuditRecorder(),
    ...     notifier=InMemoryNotificationDispatcher(),
    ...     config=OrderSagaConfig.from_env(),
    ... )
    >>> order = await orders.create_order("C1", [{"productId": "P1", "quantity": 2}], "1 Main St")
    >>> await orders.cancel_order(order.id)
"""

from ordersaga.audit import AuditRecorder, InMemoryAuditRecorder
from ordersaga.catalog import InMemoryCatalog
from ordersaga.core import (
    CompensationIncomplete,
    Conflict,
    CreationState,
    InsufficientStock,
    LoggingSagaListener,
    MetricsSagaListener,
    NotFound,
    OrderSagaConfig,
    OrderSagaError,
    OrderStatus,
    PaymentDeclined,
    PaymentFailed,
    Saga,
    SagaListener,
    SagaTimeoutError,
    UpstreamUnavailable,
    ValidationFailed,
    action,
    compensate,
    error_category,
)
from ordersaga.inventory import HttpInventoryClient, InMemoryInventory, InventoryReservationClient
from ordersaga.notifications import (
    HttpNotificationDispatcher,
    InMemoryNotificationDispatcher,
    NotificationDispatcher,
)
from ordersaga.orders import (
    InMemoryOrderStore,
    Order,
    OrderStore,
    OrderValidator,
    PricingEngine,
)
from ordersaga.orders.saga import OrderCreationSaga, OrderSaga
from ordersaga.payments import (
    HttpPaymentClient,
    InMemoryPaymentGateway,
    PaymentClient,
    RetryingPaymentClient,
)

__version__ = "0.1.0"

__all__ = [
    "AuditRecorder",
    "CompensationIncomplete",
    "Conflict",
    "CreationState",
    "HttpInventoryClient",
    "HttpNotificationDispatcher",
    "HttpPaymentClient",
    "InMemoryAuditRecorder",
    "InMemoryCatalog",
    "InMemoryInventory",
    "InMemoryNotificationDispatcher",
    "InMemoryOrderStore",
    "InMemoryPaymentGateway",
    "InsufficientStock",
    "InventoryReservationClient",
    "LoggingSagaListener",
    "MetricsSagaListener",
    "NotFound",
    "NotificationDispatcher",
    "Order",
    "OrderCreationSaga",
    "OrderSaga",
    "OrderSagaConfig",
    "OrderSagaError",
    "OrderStatus",
    "OrderStore",
    "OrderValidator",
    "PaymentClient",
    "PaymentDeclined",
    "PaymentFailed",
    "PricingEngine",
    "RetryingPaymentClient",
    "Saga",
    "SagaListener",
    "SagaTimeoutError",
    "UpstreamUnavailable",
    "ValidationFailed",
    "action",
    "compensate",
    "error_category",
]
