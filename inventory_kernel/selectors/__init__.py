"""Read-only query selectors."""

from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.stock_selector import (
    LedgerDiscrepancy,
    MovementRecord,
    StockLevel,
    StockSelector,
)

__all__ = [
    "BaseSelector",
    "LedgerDiscrepancy",
    "MovementRecord",
    "StockLevel",
    "StockSelector",
]
