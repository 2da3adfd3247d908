"""
SQLAlchemy ORM persistence models for the Sales module.

Invariants enforced
-------------------
* ``(business_id, order_number)`` is unique.
* ``quantity_picked`` and ``quantity_shipped`` never exceed
  ``quantity_ordered`` (checked by the service before writing).
* Orders and lines carry a ``version`` counter.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase


class SalesOrderModel(TrackedBase):
    """
    A customer sales order.

    Maps to the ``SalesOrder`` DTO in ``inventory_modules.sales.models``.
    """

    __tablename__ = "sales_orders"

    __table_args__ = (
        UniqueConstraint("business_id", "order_number", name="uq_sales_order_number"),
        Index("idx_sales_order_status", "business_id", "status"),
        Index("idx_sales_order_customer", "business_id", "customer_id"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID | None] = mapped_column(ForeignKey("parties.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    status_before_hold: Mapped[str | None] = mapped_column(String(30), nullable=True)
    hold_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shipped_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivered_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    version = mapped_column(Integer, nullable=False)

    lines: Mapped[list["SalesOrderLineModel"]] = relationship(
        "SalesOrderLineModel",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderLineModel.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def line(self, line_id: UUID) -> "SalesOrderLineModel | None":
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def to_dto(self):
        from inventory_modules.sales.models import Priority, SalesOrder, SalesOrderStatus

        return SalesOrder(
            id=self.id,
            business_id=self.business_id,
            order_number=self.order_number,
            status=SalesOrderStatus(self.status),
            priority=Priority(self.priority),
            customer_id=self.customer_id,
            lines=tuple(line.to_dto() for line in self.lines),
            status_before_hold=(
                SalesOrderStatus(self.status_before_hold)
                if self.status_before_hold else None
            ),
            hold_reason=self.hold_reason,
            cancellation_reason=self.cancellation_reason,
            carrier=self.carrier,
            tracking_number=self.tracking_number,
            shipped_date=self.shipped_date,
            delivered_date=self.delivered_date,
            internal_notes=self.internal_notes,
        )

    def __repr__(self) -> str:
        return f"<SalesOrderModel {self.order_number} [{self.status}]>"


class SalesOrderLineModel(TrackedBase):
    """A line item on a sales order."""

    __tablename__ = "sales_order_lines"

    __table_args__ = (
        UniqueConstraint("sales_order_id", "line_number", name="uq_sales_order_line_number"),
        Index("idx_so_line_product", "product_id"),
    )

    sales_order_id: Mapped[UUID] = mapped_column(ForeignKey("sales_orders.id"), nullable=False)
    line_number: Mapped[int]
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity_ordered: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_allocated: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quantity_picked: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quantity_shipped: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    version = mapped_column(Integer, nullable=False)

    sales_order: Mapped["SalesOrderModel"] = relationship(
        "SalesOrderModel",
        back_populates="lines",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from inventory_modules.sales.models import SalesOrderLine, SalesOrderLineStatus

        return SalesOrderLine(
            id=self.id,
            sales_order_id=self.sales_order_id,
            line_number=self.line_number,
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            quantity_allocated=self.quantity_allocated,
            quantity_picked=self.quantity_picked,
            quantity_shipped=self.quantity_shipped,
            unit_price=self.unit_price,
            status=SalesOrderLineStatus(self.status),
        )

    def __repr__(self) -> str:
        return (
            f"<SalesOrderLineModel #{self.line_number} "
            f"{self.quantity_shipped}/{self.quantity_ordered} [{self.status}]>"
        )
