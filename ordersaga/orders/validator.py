"""
Order input validation.

Checks structure first (nothing is looked up while required fields are
missing), then that the referenced customer and products exist. All missing
products are reported together.
"""

from typing import TYPE_CHECKING, Any

from ordersaga.core.logger import get_logger
from ordersaga.orders.models import OrderLine, ValidationResult

if TYPE_CHECKING:  # pragma: no cover
    from ordersaga.catalog import CustomerDirectory, ProductCatalog

logger = get_logger(__name__)

MISSING_FIELD = "missing_field"
INVALID = "invalid"
NOT_FOUND = "not_found"


class OrderValidator:
    """Validates order input against the customer directory and product catalog."""

    def __init__(self, customers: "CustomerDirectory", products: "ProductCatalog"):
        self.customers = customers
        self.products = products

    async def validate(
        self, customer_id: Any, items: Any, shipping_address: Any
    ) -> ValidationResult:
        errors = self._missing_fields(customer_id, items, shipping_address)
        if errors:
            return ValidationResult(valid=False, errors=errors, reason=MISSING_FIELD)

        lines, errors = self._parse_lines(items)
        if errors:
            return ValidationResult(valid=False, errors=errors, reason=INVALID)

        customer = await self.customers.get_customer(customer_id)
        if customer is None:
            return ValidationResult(valid=False, errors=["Customer not found"], reason=NOT_FOUND)

        for line in lines:
            product = await self.products.get_product(line.product_id)
            if product is None:
                errors.append(f"Product {line.product_id} not found")

        if errors:
            logger.debug(f"Order for customer {customer_id} references unknown products: {errors}")
            return ValidationResult(valid=False, errors=errors, reason=NOT_FOUND)

        return ValidationResult(valid=True, customer=customer)

    @staticmethod
    def _missing_fields(customer_id: Any, items: Any, shipping_address: Any) -> list[str]:
        errors = []
        if not customer_id:
            errors.append("customerId is required")
        if not items:
            errors.append("items array must not be empty")
        if not shipping_address:
            errors.append("shippingAddress is required")
        return errors

    @staticmethod
    def _parse_lines(items: Any) -> tuple[list[OrderLine], list[str]]:
        lines: list[OrderLine] = []
        errors: list[str] = []
        if isinstance(items, (str, bytes)) or not hasattr(items, "__iter__"):
            return lines, ["items must be a list"]

        for index, item in enumerate(items):
            line = OrderLine.from_input(item)
            if not line.product_id:
                errors.append(f"items[{index}].productId is required")
            quantity = line.quantity
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                errors.append(f"items[{index}].quantity must be a positive integer")
            lines.append(line)

        return lines, errors


def parse_order_lines(items: Any) -> list[OrderLine]:
    """Normalize already-validated input items into order lines."""
    return [OrderLine.from_input(item) for item in items]
