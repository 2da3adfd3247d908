"""
Module: inventory_kernel.models.stock_movement
Responsibility: The append-only stock ledger row.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - new_stock == previous_stock + quantity (quantity is the signed effect).
    - (product_id, ledger_sequence) is unique; replaying a product's rows in
      ledger_sequence order from zero reproduces Product.current_stock.
    - Rows are never updated or deleted (db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base
from inventory_kernel.domain.values import MovementType, ReferenceType


class StockMovement(Base):
    """One signed change to a product's on-hand quantity."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint(
            "product_id", "ledger_sequence", name="uq_stock_movement_product_seq"
        ),
        Index("idx_stock_movement_reference", "reference_type", "reference_id"),
        Index("idx_stock_movement_business", "business_id"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )

    ledger_sequence: Mapped[int] = mapped_column(nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    previous_stock: Mapped[Decimal] = mapped_column(nullable=False)

    new_stock: Mapped[Decimal] = mapped_column(nullable=False)

    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)

    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)

    reference_line_id: Mapped[UUID | None] = mapped_column(nullable=True)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    actor_id: Mapped[UUID] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def movement_type_enum(self) -> MovementType:
        return MovementType(self.movement_type)

    @property
    def reference_type_enum(self) -> ReferenceType:
        return ReferenceType(self.reference_type)

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.ledger_sequence} {self.movement_type} "
            f"{self.previous_stock} -> {self.new_stock}>"
        )
