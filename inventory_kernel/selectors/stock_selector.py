"""
Module: inventory_kernel.selectors.stock_selector
Responsibility: Read-only stock queries: on-hand and available-to-promise
    quantities, movement history, low-stock listing and ledger replay
    verification.
Architecture position: Kernel > Selectors.

Invariants enforced:
    Replaying a product's movements in ledger_sequence order from zero must
    reproduce Product.current_stock, and each row must satisfy
    new_stock == previous_stock + quantity chained from the row before it.
    verify_ledger() reports every product where that fails.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.exceptions import NotFoundError
from inventory_kernel.models.product import Product
from inventory_kernel.models.stock_movement import StockMovement
from inventory_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StockLevel:
    """On-hand position of one product."""

    product_id: UUID
    sku: str
    current_stock: Decimal
    quantity_reserved: Decimal
    minimum_stock_level: Decimal

    @property
    def available_to_promise(self) -> Decimal:
        return self.current_stock - self.quantity_reserved


@dataclass(frozen=True)
class MovementRecord:
    """A single stock ledger row."""

    movement_id: UUID
    product_id: UUID
    ledger_sequence: int
    movement_type: str
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    reference_type: str
    reference_id: UUID | None
    reference_line_id: UUID | None
    actor_id: UUID
    created_at: datetime


@dataclass(frozen=True)
class LedgerDiscrepancy:
    """A product whose ledger does not reproduce its stored stock."""

    product_id: UUID
    sku: str
    stored_stock: Decimal
    replayed_stock: Decimal
    broken_sequences: tuple[int, ...] = ()


class StockSelector(BaseSelector[StockMovement]):
    """Read surface for current stock and movement history."""

    def _product(self, business_id: UUID, product_id: UUID) -> Product:
        product = self.session.execute(
            select(Product).where(
                Product.id == product_id, Product.business_id == business_id
            )
        ).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", str(product_id), str(business_id))
        return product

    def stock_level(self, business_id: UUID, product_id: UUID) -> StockLevel:
        return self._to_level(self._product(business_id, product_id))

    def current_stock(self, business_id: UUID, product_id: UUID) -> Decimal:
        return self._product(business_id, product_id).current_stock

    def available_to_promise(self, business_id: UUID, product_id: UUID) -> Decimal:
        return self._product(business_id, product_id).available_to_promise

    def movement_history(
        self,
        business_id: UUID,
        product_id: UUID,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movements for one product, oldest first."""
        query = (
            select(StockMovement)
            .where(
                StockMovement.business_id == business_id,
                StockMovement.product_id == product_id,
            )
            .order_by(StockMovement.ledger_sequence)
        )
        if limit is not None:
            query = query.limit(limit)
        return [self._to_record(m) for m in self.session.execute(query).scalars()]

    def movements_for_reference(self, reference_id: UUID) -> list[MovementRecord]:
        """Every movement produced by one receipt or sales order."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.reference_id == reference_id)
            .order_by(StockMovement.product_id, StockMovement.ledger_sequence)
        ).scalars()
        return [self._to_record(m) for m in rows]

    def replay_stock(self, business_id: UUID, product_id: UUID) -> Decimal:
        """Sum of signed movement quantities, starting from zero."""
        total = Decimal("0")
        for record in self.movement_history(business_id, product_id):
            total += record.quantity
        return total

    def low_stock_products(self, business_id: UUID) -> list[StockLevel]:
        """Active products at or below their minimum stock level."""
        rows = self.session.execute(
            select(Product)
            .where(
                Product.business_id == business_id,
                Product.is_active.is_(True),
                Product.current_stock <= Product.minimum_stock_level,
            )
            .order_by(Product.sku)
        ).scalars()
        return [self._to_level(p) for p in rows]

    def verify_ledger(self, business_id: UUID) -> list[LedgerDiscrepancy]:
        """Replay every product in the business; empty list means consistent."""
        discrepancies: list[LedgerDiscrepancy] = []
        products = self.session.execute(
            select(Product).where(Product.business_id == business_id)
        ).scalars()
        for product in products:
            running = Decimal("0")
            broken: list[int] = []
            for record in self.movement_history(business_id, product.id):
                if (
                    record.previous_stock != running
                    or record.new_stock != record.previous_stock + record.quantity
                ):
                    broken.append(record.ledger_sequence)
                running += record.quantity
            if running != product.current_stock or broken:
                discrepancies.append(
                    LedgerDiscrepancy(
                        product_id=product.id,
                        sku=product.sku,
                        stored_stock=product.current_stock,
                        replayed_stock=running,
                        broken_sequences=tuple(broken),
                    )
                )
        return discrepancies

    @staticmethod
    def _to_level(product: Product) -> StockLevel:
        return StockLevel(
            product_id=product.id,
            sku=product.sku,
            current_stock=product.current_stock,
            quantity_reserved=product.quantity_reserved,
            minimum_stock_level=product.minimum_stock_level,
        )

    @staticmethod
    def _to_record(movement: StockMovement) -> MovementRecord:
        return MovementRecord(
            movement_id=movement.id,
            product_id=movement.product_id,
            ledger_sequence=movement.ledger_sequence,
            movement_type=movement.movement_type,
            quantity=movement.quantity,
            previous_stock=movement.previous_stock,
            new_stock=movement.new_stock,
            reference_type=movement.reference_type,
            reference_id=movement.reference_id,
            reference_line_id=movement.reference_line_id,
            actor_id=movement.actor_id,
            created_at=movement.created_at,
        )
