"""
Order pricing.

Unit prices always come from the catalog at the time of pricing. Prices a
client sends along with its items are ignored.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from ordersaga.core.exceptions import NotFound
from ordersaga.core.logger import get_logger
from ordersaga.orders.models import (
    ZERO,
    LineItem,
    OrderLine,
    PriceBreakdown,
    Promotion,
    quantize_money,
)

if TYPE_CHECKING:  # pragma: no cover
    from ordersaga.catalog import ProductCatalog, PromotionSource, TaxRateSource

logger = get_logger(__name__)

DEFAULT_TAX_RATE = Decimal("0.10")


class PricingEngine:
    """Computes subtotal, discount, tax and total for a set of order lines."""

    def __init__(
        self,
        products: "ProductCatalog",
        promotions: "PromotionSource",
        tax_rates: "TaxRateSource",
        default_tax_rate: Decimal = DEFAULT_TAX_RATE,
    ):
        self.products = products
        self.promotions = promotions
        self.tax_rates = tax_rates
        self.default_tax_rate = default_tax_rate

    async def calculate_total(self, items: list[Any], region: str = "default") -> PriceBreakdown:
        lines = [item if isinstance(item, OrderLine) else OrderLine.from_input(item) for item in items]
        line_items = await self._price_lines(lines)
        subtotal = sum((item.line_total for item in line_items), ZERO)

        promotion = await self.best_promotion(subtotal)
        discount = self.apply_discount(subtotal, line_items, promotion)
        tax = await self.calculate_tax(subtotal - discount, region)

        return PriceBreakdown(
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=subtotal - discount + tax,
            line_items=tuple(line_items),
            promotion_id=promotion.id if promotion and discount > ZERO else None,
        )

    async def _price_lines(self, lines: list[OrderLine]) -> list[LineItem]:
        priced = []
        for line in lines:
            product = await self.products.get_product(line.product_id)
            if product is None:
                raise NotFound("Product", line.product_id)
            priced.append(
                LineItem(product_id=line.product_id, quantity=line.quantity, unit_price=product.price)
            )
        return priced

    async def best_promotion(self, subtotal: Decimal) -> Promotion | None:
        """Highest-percentage active promotion whose minimum the subtotal reaches."""
        best: Promotion | None = None
        for promotion in await self.promotions.active_promotions():
            if not promotion.active or promotion.min_amount > subtotal:
                continue
            if best is None or promotion.discount_pct > best.discount_pct:
                best = promotion
        return best

    @staticmethod
    def eligible_quantity(line_items: list[LineItem], promotion: Promotion) -> int:
        return sum(
            item.quantity
            for item in line_items
            if item.product_id in promotion.eligible_product_ids
        )

    def apply_discount(
        self, subtotal: Decimal, line_items: list[LineItem], promotion: Promotion | None
    ) -> Decimal:
        if promotion is None:
            return ZERO
        if self.eligible_quantity(line_items, promotion) == 0:
            logger.debug(f"Promotion {promotion.id} matched but no ordered item is eligible")
            return ZERO
        discount = quantize_money(subtotal * promotion.discount_pct / Decimal(100))
        return min(max(discount, ZERO), subtotal)

    async def calculate_tax(self, amount: Decimal, region: str = "default") -> Decimal:
        rate = await self.tax_rates.get_rate(region)
        if rate is None:
            rate = self.default_tax_rate
        return quantize_money(amount * rate)
