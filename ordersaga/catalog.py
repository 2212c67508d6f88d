"""
Lookup capabilities consumed by validation and pricing.

Customer, product, promotion and tax-rate data belong to other parts of the
system. The order saga only needs to read them by key, so each capability is
a small protocol. ``InMemoryCatalog`` implements all four for development and
tests.
"""

import asyncio
from collections.abc import Iterable
from decimal import Decimal
from typing import Protocol, runtime_checkable

from ordersaga.orders.models import Customer, Product, Promotion, to_money


@runtime_checkable
class CustomerDirectory(Protocol):
    async def get_customer(self, customer_id: str) -> Customer | None:
        """Return the customer or None if it does not exist."""
        ...


@runtime_checkable
class ProductCatalog(Protocol):
    async def get_product(self, product_id: str) -> Product | None:
        """Return the product (with its current price) or None."""
        ...


@runtime_checkable
class PromotionSource(Protocol):
    async def active_promotions(self) -> list[Promotion]:
        """Return the currently active promotions."""
        ...


@runtime_checkable
class TaxRateSource(Protocol):
    async def get_rate(self, region: str) -> Decimal | None:
        """Return the tax rate configured for a region, or None."""
        ...


class InMemoryCatalog:
    """
    In-memory customers, products, promotions and tax rates.

    Not suitable for production use as state is lost on process restart.
    """

    def __init__(
        self,
        customers: Iterable[Customer] = (),
        products: Iterable[Product] = (),
        promotions: Iterable[Promotion] = (),
        tax_rates: dict[str, Decimal] | None = None,
    ):
        self._customers = {c.id: c for c in customers}
        self._products = {p.id: p for p in products}
        self._promotions = list(promotions)
        self._tax_rates = {k: to_money(v) for k, v in (tax_rates or {}).items()}
        self._lock = asyncio.Lock()

    async def get_customer(self, customer_id: str) -> Customer | None:
        return self._customers.get(customer_id)

    async def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    async def active_promotions(self) -> list[Promotion]:
        return [p for p in self._promotions if p.active]

    async def get_rate(self, region: str) -> Decimal | None:
        return self._tax_rates.get(region)

    async def add_customer(self, customer: Customer) -> None:
        async with self._lock:
            self._customers[customer.id] = customer

    async def set_price(self, product_id: str, price: Decimal | str) -> Product:
        """Change a product's current price. Existing orders keep their captured price."""
        async with self._lock:
            product = self._products.get(product_id)
            if product is None:
                msg = f"Product {product_id} not found"
                raise KeyError(msg)
            updated = Product(id=product.id, name=product.name, price=price, sku=product.sku)
            self._products[product_id] = updated
            return updated

    async def add_product(self, product: Product) -> None:
        async with self._lock:
            self._products[product.id] = product

    async def add_promotion(self, promotion: Promotion) -> None:
        async with self._lock:
            self._promotions.append(promotion)

    async def set_tax_rate(self, region: str, rate: Decimal | str) -> None:
        async with self._lock:
            self._tax_rates[region] = to_money(rate)
