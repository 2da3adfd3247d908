"""
Purchasing Domain Models.

The nouns of purchasing: purchase orders and their lines.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PurchaseOrderStatus(Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    RECEIVING = "receiving"
    PARTIALLY_RECEIVED = "partially_received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PurchaseOrderLineStatus(Enum):
    """Per-line receiving state."""
    PENDING = "pending"
    PARTIALLY_RECEIVED = "partially_received"
    FULLY_RECEIVED = "fully_received"
    CANCELLED = "cancelled"
    SHORT_SHIPPED = "short_shipped"


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    """Caller-supplied line for create/update."""
    product_id: UUID
    quantity_ordered: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class PurchaseOrderLine:
    """A line on a purchase order."""
    id: UUID
    purchase_order_id: UUID
    line_number: int
    product_id: UUID
    quantity_ordered: Decimal
    quantity_received: Decimal
    unit_price: Decimal
    status: PurchaseOrderLineStatus = PurchaseOrderLineStatus.PENDING
    closure_reason: str | None = None

    @property
    def quantity_outstanding(self) -> Decimal:
        return max(Decimal("0"), self.quantity_ordered - self.quantity_received)

    @property
    def line_total(self) -> Decimal:
        return self.quantity_ordered * self.unit_price


@dataclass(frozen=True)
class PurchaseOrder:
    """A supplier purchase order."""
    id: UUID
    business_id: UUID
    order_number: str
    supplier_id: UUID
    status: PurchaseOrderStatus
    lines: tuple[PurchaseOrderLine, ...] = ()
    tax_amount: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    expected_delivery_date: date | None = None
    confirmed_delivery_date: date | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    completed_at: datetime | None = None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax_amount + self.shipping_cost

    def line(self, line_id: UUID) -> PurchaseOrderLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise KeyError(line_id)
