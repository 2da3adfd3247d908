"""
SQLAlchemy ORM persistence models for the Receiving module.

Invariants enforced
-------------------
* ``(business_id, receipt_number)`` is unique.
* A receipt references exactly one purchase order; receipt lines reference
  purchase order lines by id only (non-owning).
* Receipts carry a ``version`` counter so two concurrent completions of the
  same receipt cannot both commit.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase


class ReceiptModel(TrackedBase):
    """
    An inbound receipt.

    Maps to the ``Receipt`` DTO in ``inventory_modules.receiving.models``.
    """

    __tablename__ = "receipts"

    __table_args__ = (
        UniqueConstraint("business_id", "receipt_number", name="uq_receipt_number"),
        Index("idx_receipt_purchase_order", "purchase_order_id"),
        Index("idx_receipt_status", "business_id", "status"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)
    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="in_progress")
    has_variances: Mapped[bool] = mapped_column(nullable=False, default=False)
    supplier_delivery_note: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    variance_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    validated_by_id: Mapped[UUID | None]
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version = mapped_column(Integer, nullable=False)

    lines: Mapped[list["ReceiptLineModel"]] = relationship(
        "ReceiptLineModel",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="ReceiptLineModel.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from inventory_modules.receiving.models import Receipt, ReceiptStatus

        return Receipt(
            id=self.id,
            business_id=self.business_id,
            purchase_order_id=self.purchase_order_id,
            receipt_number=self.receipt_number,
            status=ReceiptStatus(self.status),
            lines=tuple(line.to_dto() for line in self.lines),
            has_variances=self.has_variances,
            supplier_delivery_note=self.supplier_delivery_note,
            notes=self.notes,
            variance_notes=self.variance_notes,
            rejection_reason=self.rejection_reason,
            validated_by_id=self.validated_by_id,
            validated_at=self.validated_at,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return f"<ReceiptModel {self.receipt_number} [{self.status}]>"


class ReceiptLineModel(TrackedBase):
    """A line on a receipt, with variances captured at creation."""

    __tablename__ = "receipt_lines"

    __table_args__ = (
        UniqueConstraint("receipt_id", "line_number", name="uq_receipt_line_number"),
        Index("idx_receipt_line_po_line", "purchase_order_line_id"),
    )

    receipt_id: Mapped[UUID] = mapped_column(ForeignKey("receipts.id"), nullable=False)
    line_number: Mapped[int]
    # Non-owning reference: no relationship to the PO line
    purchase_order_line_id: Mapped[UUID] = mapped_column(nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity_ordered: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_outstanding: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price_ordered: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price_received: Mapped[Decimal | None] = mapped_column(nullable=True)
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="good")
    quantity_variance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    price_variance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    damage_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    receipt: Mapped["ReceiptModel"] = relationship(
        "ReceiptModel",
        back_populates="lines",
    )

    @property
    def effective_unit_price(self) -> Decimal:
        if self.unit_price_received is None:
            return self.unit_price_ordered
        return self.unit_price_received

    def to_dto(self):
        from inventory_modules.receiving.models import ItemCondition, ReceiptLine

        return ReceiptLine(
            id=self.id,
            receipt_id=self.receipt_id,
            purchase_order_line_id=self.purchase_order_line_id,
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            quantity_outstanding=self.quantity_outstanding,
            quantity_received=self.quantity_received,
            unit_price_ordered=self.unit_price_ordered,
            unit_price_received=self.unit_price_received,
            condition=ItemCondition(self.condition),
            quantity_variance=self.quantity_variance,
            price_variance=self.price_variance,
            damage_notes=self.damage_notes,
        )
