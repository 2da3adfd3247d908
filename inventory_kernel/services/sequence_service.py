"""
OrderNumberSequencer -- per-business document numbering.

Responsibility:
    Hands out human-readable order numbers (``PO-000001``, ``REC-000001``,
    ``SO-000001``) that are unique and strictly increasing within
    ``(business_id, document_type)``.

Architecture position:
    Kernel > Services -- flush-only, runs inside the caller's transaction.

Invariants enforced:
    - One counter row per (business_id, document_type).
    - Each allocation is a single atomic statement:

          INSERT INTO order_number_counters (...) VALUES (..., 1)
          ON CONFLICT (business_id, document_type)
          DO UPDATE SET current_value = current_value + 1
          RETURNING current_value

      The first call creates the row, later calls increment it under the
      row lock the upsert takes.  The read-max-plus-one pattern is never
      used.
    - The increment belongs to the caller's transaction: a rolled-back
      create does not consume a number.

Failure modes:
    - ValueError for an unknown document type or unsupported dialect.
"""

from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Index, String, UniqueConstraint, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, Session, mapped_column

from inventory_kernel.config import DOCUMENT_TYPES, InventoryPolicy
from inventory_kernel.db.base import Base
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Current value of one (business, document type) number sequence."""

    __tablename__ = "order_number_counters"

    __table_args__ = (
        UniqueConstraint(
            "business_id", "document_type", name="uq_order_number_counter_scope"
        ),
        Index("idx_order_number_counter_business", "business_id"),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False)

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class OrderNumberSequencer:
    """
    Atomic counter-backed order numbering.

    Usage:
        sequencer = OrderNumberSequencer(session, policy)
        number = sequencer.next(business_id, "purchase_order")  # "PO-000001"
    """

    PURCHASE_ORDER = "purchase_order"
    RECEIPT = "receipt"
    SALES_ORDER = "sales_order"

    def __init__(self, session: Session, policy: InventoryPolicy | None = None):
        self._session = session
        self._policy = policy or InventoryPolicy()

    def next_value(self, business_id: UUID, document_type: str) -> int:
        """Allocate and return the next raw counter value (always > 0)."""
        if document_type not in DOCUMENT_TYPES:
            raise ValueError(f"Unknown document type: {document_type!r}")

        dialect = self._session.get_bind().dialect.name
        try:
            insert = _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise ValueError(f"Order numbering is not supported on {dialect!r}") from None

        stmt = (
            insert(SequenceCounter)
            .values(
                id=uuid4(),
                business_id=business_id,
                document_type=document_type,
                current_value=1,
            )
            .on_conflict_do_update(
                index_elements=["business_id", "document_type"],
                set_={"current_value": SequenceCounter.current_value + 1},
            )
            .returning(SequenceCounter.current_value)
        )
        value = self._session.execute(stmt).scalar_one()

        logger.debug(
            "order_number_allocated",
            extra={
                "business_id": str(business_id),
                "document_type": document_type,
                "value": value,
            },
        )
        return value

    def format(self, document_type: str, value: int) -> str:
        prefix = self._policy.prefix_for(document_type)
        return f"{prefix}-{value:0{self._policy.order_number_width}d}"

    def next(self, business_id: UUID, document_type: str) -> str:
        """Allocate the next formatted order number for the scope."""
        return self.format(document_type, self.next_value(business_id, document_type))

    def current_value(self, business_id: UUID, document_type: str) -> int | None:
        """Peek at the scope's counter without incrementing. None if unused."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.business_id == business_id,
                SequenceCounter.document_type == document_type,
            )
        ).scalar_one_or_none()
