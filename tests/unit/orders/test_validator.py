"""
Tests for order input validation
"""

import pytest

from ordersaga.orders.validator import OrderValidator, parse_order_lines


@pytest.fixture
def validator(catalog):
    return OrderValidator(catalog, catalog)


class TestMissingFields:
    """Structural checks run first and are collected together"""

    @pytest.mark.asyncio
    async def test_missing_customer_id(self, validator, two_widgets):
        """A missing customer id is reported"""
        result = await validator.validate(None, two_widgets, "1 Main St")
        assert not result.valid
        assert result.errors == ["customerId is required"]
        assert result.reason == "missing_field"

    @pytest.mark.asyncio
    async def test_all_missing_fields_reported(self, validator):
        """Every missing field is reported at once"""
        result = await validator.validate("", [], None)
        assert result.errors == [
            "customerId is required",
            "items array must not be empty",
            "shippingAddress is required",
        ]

    @pytest.mark.asyncio
    async def test_bad_item_structure(self, validator):
        """Malformed items are reported"""
        items = [{"productId": "P1", "quantity": 0}, {"quantity": 1}, {"productId": "P2", "quantity": "2"}]
        result = await validator.validate("C1", items, "1 Main St")
        assert result.reason == "invalid"
        assert result.errors == [
            "items[0].quantity must be a positive integer",
            "items[1].productId is required",
            "items[2].quantity must be a positive integer",
        ]

    @pytest.mark.asyncio
    async def test_boolean_quantity_rejected(self, validator):
        """A boolean is not a quantity"""
        result = await validator.validate("C1", [{"productId": "P1", "quantity": True}], "x")
        assert not result.valid


class TestReferences:
    """Customer and products must exist"""

    @pytest.mark.asyncio
    async def test_unknown_customer(self, validator, two_widgets):
        """An unknown customer is reported"""
        result = await validator.validate("C404", two_widgets, "1 Main St")
        assert result.errors == ["Customer not found"]
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    async def test_customer_checked_before_products(self, validator):
        """The customer is checked before any product lookup"""
        result = await validator.validate("C404", [{"productId": "P9", "quantity": 1}], "x")
        assert result.errors == ["Customer not found"]

    @pytest.mark.asyncio
    async def test_all_unknown_products_collected(self, validator):
        """Every unknown product is collected"""
        items = [
            {"productId": "P9", "quantity": 1},
            {"productId": "P1", "quantity": 1},
            {"product_id": "P8", "quantity": 1},
        ]
        result = await validator.validate("C1", items, "x")
        assert result.errors == ["Product P9 not found", "Product P8 not found"]
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    async def test_valid_order_resolves_customer(self, validator, two_widgets):
        """A valid order carries the resolved customer"""
        result = await validator.validate("C1", two_widgets, {"line1": "1 Main St"})
        assert result.valid
        assert result.errors == []
        assert result.customer.email == "ada@example.com"


def test_parse_order_lines_accepts_both_key_styles():
    """Both camelCase and snake_case item keys are accepted"""
    lines = parse_order_lines([{"productId": "P1", "quantity": 2}, {"product_id": "P2", "quantity": 1}])
    assert [(line.product_id, line.quantity) for line in lines] == [("P1", 2), ("P2", 1)]
