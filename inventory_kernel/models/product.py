"""
Module: inventory_kernel.models.product
Responsibility: ORM persistence for stocked products and their on-hand
    aggregate.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - current_stock is written only by StockLedger.apply_movement; every
      change is mirrored by exactly one StockMovement row.
    - movement_count is the number of ledger rows for the product and hands
      out StockMovement.ledger_sequence.
    - version is an optimistic lock: a concurrent writer that read a stale
      row fails with StaleDataError instead of overwriting.

Failure modes:
    - IntegrityError on duplicate (business_id, sku).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """
    A stocked item within one business.

    ``quantity_reserved`` tracks soft allocations made by confirmed sales
    orders; it is bookkeeping only and never produces a ledger movement.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("business_id", "sku", name="uq_product_business_sku"),
        Index("idx_product_business", "business_id"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)

    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    current_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    quantity_reserved: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    minimum_stock_level: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cost_per_unit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    movement_count: Mapped[int] = mapped_column(nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def available_to_promise(self) -> Decimal:
        """On-hand stock not yet allocated to sales order lines."""
        return self.current_stock - self.quantity_reserved

    @property
    def is_below_minimum(self) -> bool:
        return self.current_stock <= self.minimum_stock_level

    def __repr__(self) -> str:
        return f"<Product {self.sku}: {self.current_stock}>"
