"""
Module: inventory_kernel.models.party
Responsibility: Supplier/customer directory rows.  The fulfillment core
    reads them to validate order references and never mutates them.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class PartyType(str, Enum):
    """Classification of parties."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class Party(TrackedBase):
    """A supplier or customer of one business."""

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("business_id", "party_code", name="uq_party_business_code"),
        Index("idx_party_business_type", "business_id", "party_type"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)

    party_code: Mapped[str] = mapped_column(String(50), nullable=False)

    party_type: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_supplier(self) -> bool:
        return self.party_type == PartyType.SUPPLIER.value

    @property
    def is_customer(self) -> bool:
        return self.party_type == PartyType.CUSTOMER.value

    def __repr__(self) -> str:
        return f"<Party {self.party_code}: {self.name} ({self.party_type})>"
