"""
SQLAlchemy ORM persistence models for the Purchasing module.

Invariants enforced
-------------------
* Quantities and prices use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Status fields stored as String(30).
* ``(business_id, order_number)`` is unique.
* A line belongs to exactly one order (cascade delete-orphan).
* Orders and lines carry a ``version`` counter; a concurrent writer that
  read a stale row fails with StaleDataError.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A supplier purchase order.

    Maps to the ``PurchaseOrder`` DTO in ``inventory_modules.purchasing.models``.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("business_id", "order_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_supplier", "business_id", "supplier_id"),
        Index("idx_purchase_order_status", "business_id", "status"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("parties.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    shipping_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    confirmed_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version = mapped_column(Integer, nullable=False)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLineModel.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def line(self, line_id: UUID) -> "PurchaseOrderLineModel | None":
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def to_dto(self):
        from inventory_modules.purchasing.models import PurchaseOrder, PurchaseOrderStatus

        return PurchaseOrder(
            id=self.id,
            business_id=self.business_id,
            order_number=self.order_number,
            supplier_id=self.supplier_id,
            status=PurchaseOrderStatus(self.status),
            lines=tuple(line.to_dto() for line in self.lines),
            tax_amount=self.tax_amount,
            shipping_cost=self.shipping_cost,
            expected_delivery_date=self.expected_delivery_date,
            confirmed_delivery_date=self.confirmed_delivery_date,
            notes=self.notes,
            cancellation_reason=self.cancellation_reason,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# PurchaseOrderLineModel
# ---------------------------------------------------------------------------


class PurchaseOrderLineModel(TrackedBase):
    """
    A line item on a purchase order.

    Guarantees:
        - Belongs to exactly one ``PurchaseOrderModel``.
        - (purchase_order_id, line_number) is unique.
    """

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint(
            "purchase_order_id", "line_number",
            name="uq_purchase_order_line_number",
        ),
        Index("idx_po_line_product", "product_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int]
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity_ordered: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    closure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    version = mapped_column(Integer, nullable=False)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="lines",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def quantity_outstanding(self) -> Decimal:
        return max(Decimal("0"), self.quantity_ordered - self.quantity_received)

    def to_dto(self):
        from inventory_modules.purchasing.models import (
            PurchaseOrderLine,
            PurchaseOrderLineStatus,
        )

        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            line_number=self.line_number,
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            quantity_received=self.quantity_received,
            unit_price=self.unit_price,
            status=PurchaseOrderLineStatus(self.status),
            closure_reason=self.closure_reason,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderLineModel #{self.line_number} "
            f"{self.quantity_received}/{self.quantity_ordered} [{self.status}]>"
        )
