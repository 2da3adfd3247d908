"""Kernel ORM models: products, the stock ledger and the party directory."""

from inventory_kernel.models.party import Party, PartyType
from inventory_kernel.models.product import Product
from inventory_kernel.models.stock_movement import StockMovement

__all__ = [
    "Party",
    "PartyType",
    "Product",
    "StockMovement",
]
