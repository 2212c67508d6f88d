"""
Pytest configuration and shared fixtures for order saga tests

Every fixture builds fresh in-memory collaborators, so tests never share
stock, ledgers or stored orders.
"""

from decimal import Decimal

import pytest

from ordersaga.audit import InMemoryAuditRecorder
from ordersaga.catalog import InMemoryCatalog
from ordersaga.core.config import OrderSagaConfig
from ordersaga.inventory.memory import InMemoryInventory
from ordersaga.notifications.memory import InMemoryNotificationDispatcher
from ordersaga.orders.models import Customer, Product, Promotion
from ordersaga.orders.pricing import PricingEngine
from ordersaga.orders.saga import OrderSaga
from ordersaga.orders.store import InMemoryOrderStore
from ordersaga.orders.validator import OrderValidator
from ordersaga.payments.memory import InMemoryPaymentGateway

# ============================================
# WORLD
# ============================================


@pytest.fixture
def catalog():
    """Two customers, three products, no promotions, default tax rate 0.10"""
    return InMemoryCatalog(
        customers=[
            Customer(id="C1", name="Ada", email="ada@example.com", phone="+15550001"),
            Customer(id="C2", name="Grace", email="grace@example.com"),
        ],
        products=[
            Product(id="P1", name="Widget", price=Decimal("10.00"), sku="W-1"),
            Product(id="P2", name="Gadget", price=Decimal("25.50"), sku="G-1"),
            Product(id="P3", name="Gizmo", price=Decimal("0.99"), sku="Z-1"),
        ],
        tax_rates={"default": Decimal("0.10")},
    )


@pytest.fixture
def spring_sale():
    return Promotion(
        id="SPRING",
        active=True,
        min_amount=Decimal("50"),
        discount_pct=Decimal("10"),
        eligible_product_ids=frozenset({"P2"}),
    )


@pytest.fixture
def inventory():
    return InMemoryInventory({"P1": 10, "P2": 5, "P3": 100})


@pytest.fixture
def payments():
    return InMemoryPaymentGateway()


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def audit():
    return InMemoryAuditRecorder()


@pytest.fixture
def notifier():
    return InMemoryNotificationDispatcher()


@pytest.fixture
def config():
    """Fast retries and no listeners, so failure paths run quickly and quietly"""
    return OrderSagaConfig(logging=False, compensation_backoff=0.0, compensation_max_retries=1)


@pytest.fixture
def orders(catalog, inventory, payments, store, audit, notifier, config):
    return OrderSaga(
        validator=OrderValidator(catalog, catalog),
        pricing=PricingEngine(catalog, catalog, catalog, config.default_tax_rate),
        inventory=inventory,
        payments=payments,
        store=store,
        audit=audit,
        notifier=notifier,
        config=config,
    )


@pytest.fixture
def two_widgets():
    return [{"productId": "P1", "quantity": 2}]
