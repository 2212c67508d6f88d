"""
Inventory reservation collaborators.
"""

from ordersaga.inventory.base import (
    INSUFFICIENT_STOCK,
    PRODUCT_NOT_FOUND,
    InventoryReservationClient,
)
from ordersaga.inventory.http import HttpInventoryClient
from ordersaga.inventory.memory import InMemoryInventory

__all__ = [
    "INSUFFICIENT_STOCK",
    "PRODUCT_NOT_FOUND",
    "HttpInventoryClient",
    "InMemoryInventory",
    "InventoryReservationClient",
]
