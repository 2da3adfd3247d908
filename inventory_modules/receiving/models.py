"""
Receiving Domain Models.

Receipts, receipt lines and the condition of received goods.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ReceiptStatus(Enum):
    """Receipt processing states."""
    IN_PROGRESS = "in_progress"
    PENDING_VALIDATION = "pending_validation"
    VALIDATED = "validated"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ItemCondition(Enum):
    """Condition of goods as received."""
    GOOD = "good"
    DAMAGED = "damaged"
    DEFECTIVE = "defective"


@dataclass(frozen=True)
class ReceiptLineInput:
    """
    Caller-supplied receipt line.

    ``quantity_received=None`` receives the full outstanding quantity;
    ``unit_price_received=None`` keeps the ordered price.
    """
    purchase_order_line_id: UUID
    quantity_received: Decimal | None = None
    unit_price_received: Decimal | None = None
    condition: ItemCondition = ItemCondition.GOOD
    damage_notes: str | None = None


@dataclass(frozen=True)
class ReceiptLine:
    """A received line, with variances computed at capture time."""
    id: UUID
    receipt_id: UUID
    purchase_order_line_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    quantity_outstanding: Decimal
    quantity_received: Decimal
    unit_price_ordered: Decimal
    unit_price_received: Decimal | None
    condition: ItemCondition
    quantity_variance: Decimal
    price_variance: Decimal
    damage_notes: str | None = None

    @property
    def effective_unit_price(self) -> Decimal:
        if self.unit_price_received is None:
            return self.unit_price_ordered
        return self.unit_price_received


@dataclass(frozen=True)
class Receipt:
    """An inbound delivery against one purchase order."""
    id: UUID
    business_id: UUID
    purchase_order_id: UUID
    receipt_number: str
    status: ReceiptStatus
    lines: tuple[ReceiptLine, ...] = ()
    has_variances: bool = False
    supplier_delivery_note: str | None = None
    notes: str | None = None
    variance_notes: str | None = None
    rejection_reason: str | None = None
    validated_by_id: UUID | None = None
    validated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity_received for line in self.lines), Decimal("0"))
