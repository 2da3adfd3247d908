"""
Value objects shared across the inventory core.

Actor is the opaque caller identity supplied by the surrounding
application's authentication layer; StockReference ties a ledger movement
back to the document line that caused it.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


@dataclass(frozen=True)
class Actor:
    """Authenticated caller. Role checks happen before the core is invoked."""

    user_id: UUID
    name: str


class MovementType(str, Enum):
    """Kind of stock ledger movement."""

    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"

    @property
    def is_outbound(self) -> bool:
        return self in (MovementType.STOCK_OUT, MovementType.TRANSFER)


class ReferenceType(str, Enum):
    """Document kind a stock movement originates from."""

    PURCHASE_RECEIPT = "purchase_receipt"
    SALES_SHIPMENT = "sales_shipment"
    MANUAL_ADJUSTMENT = "manual_adjustment"


@dataclass(frozen=True)
class StockReference:
    """Source document (and line) of a stock movement."""

    reference_type: ReferenceType
    reference_id: UUID | None = None
    line_id: UUID | None = None

    @classmethod
    def manual(cls) -> "StockReference":
        return cls(ReferenceType.MANUAL_ADJUSTMENT)
