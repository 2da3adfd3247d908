"""
Sales Domain Models.

Sales orders, their lines and the picking input captured on the warehouse
floor.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class SalesOrderStatus(Enum):
    """Sales order lifecycle states."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    AWAITING_PICKUP = "awaiting_pickup"
    PICKING = "picking"
    PICKED = "picked"
    PACKING = "packing"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"

    @property
    def ordinal(self) -> int:
        return _ORDINALS[self]

    @property
    def is_progress_step(self) -> bool:
        """Cancelled and on-hold sit outside the fulfillment progression."""
        return self not in (SalesOrderStatus.CANCELLED, SalesOrderStatus.ON_HOLD)

    @classmethod
    def progress_steps(cls) -> tuple["SalesOrderStatus", ...]:
        return tuple(status for status in cls if status.is_progress_step)

    def completed_steps(self) -> tuple["SalesOrderStatus", ...]:
        """Progress steps at or before this status (empty for cancelled/on hold)."""
        if not self.is_progress_step:
            return ()
        return tuple(
            status for status in self.progress_steps() if status.ordinal <= self.ordinal
        )


_ORDINALS = {status: index for index, status in enumerate(SalesOrderStatus)}


class SalesOrderLineStatus(Enum):
    """Per-line fulfillment state."""
    PENDING = "pending"
    ALLOCATED = "allocated"
    PICKED = "picked"
    PACKED = "packed"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class Priority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class SalesOrderLineInput:
    """Caller-supplied line for create/update."""
    product_id: UUID
    quantity_ordered: Decimal
    unit_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class PickedLineInput:
    """Quantity actually picked for one order line."""
    line_id: UUID
    quantity_picked: Decimal


@dataclass(frozen=True)
class SalesOrderLine:
    id: UUID
    sales_order_id: UUID
    line_number: int
    product_id: UUID
    quantity_ordered: Decimal
    quantity_allocated: Decimal
    quantity_picked: Decimal
    quantity_shipped: Decimal
    unit_price: Decimal
    status: SalesOrderLineStatus = SalesOrderLineStatus.PENDING

    @property
    def line_total(self) -> Decimal:
        return self.quantity_ordered * self.unit_price

    @property
    def short_quantity(self) -> Decimal:
        """Ordered quantity not shipped (only meaningful once shipped)."""
        return max(Decimal("0"), self.quantity_ordered - self.quantity_shipped)


@dataclass(frozen=True)
class SalesOrder:
    """A customer sales order."""
    id: UUID
    business_id: UUID
    order_number: str
    status: SalesOrderStatus
    priority: Priority = Priority.NORMAL
    customer_id: UUID | None = None
    lines: tuple[SalesOrderLine, ...] = ()
    status_before_hold: SalesOrderStatus | None = None
    hold_reason: str | None = None
    cancellation_reason: str | None = None
    carrier: str | None = None
    tracking_number: str | None = None
    shipped_date: date | None = None
    delivered_date: date | None = None
    internal_notes: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def progress(self) -> tuple[SalesOrderStatus, ...]:
        return self.status.completed_steps()

    def line(self, line_id: UUID) -> SalesOrderLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise KeyError(line_id)
