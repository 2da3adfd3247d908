"""
StockLedger -- the single writer of on-hand quantity.

Responsibility:
    Appends StockMovement rows and updates Product.current_stock in the same
    flush.  Also owns the soft-reservation counter (quantity_reserved) used
    by sales order allocation.

Architecture position:
    Kernel > Services -- flush-only.  Called by the reconciliation
    coordinator (receipts, shipments) and by manual adjustment callers; the
    caller owns the transaction.

Invariants enforced:
    - quantity > 0 on every request; the sign comes from the movement type
      (stock_out/transfer decrease, stock_in increases, adjustment per
      ``decrease``).
    - new_stock == previous_stock + signed quantity on every row.
    - Product.current_stock is changed nowhere else.
    - Outbound movements never drive stock below zero unless
      ``allow_negative_stock`` is set.
    - The product row is read with SELECT ... FOR UPDATE (refreshed from the
      database) and carries a version counter, so concurrent writers
      serialize or fail with StaleDataError; they never overwrite.

Failure modes:
    - ValidationError: non-positive quantity.
    - InsufficientStockError: outbound quantity or reservation exceeds
      what is available.
    - NotFoundError: product missing or in another business.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryPolicy
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import (
    Actor,
    MovementType,
    ReferenceType,
    StockReference,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product import Product
from inventory_kernel.models.stock_movement import StockMovement
from inventory_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

_COST_QUANTUM = Decimal("0.000000001")


class StockLedger(BaseService[StockMovement]):
    """
    Append-only stock ledger.

    Usage:
        ledger = StockLedger(session, policy, clock)
        movement = ledger.apply_movement(
            business_id, product_id, MovementType.STOCK_IN, Decimal("60"),
            StockReference(ReferenceType.PURCHASE_RECEIPT, receipt.id, line.id),
            actor,
        )
    """

    def __init__(
        self,
        session: Session,
        policy: InventoryPolicy | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._policy = policy or InventoryPolicy()
        self._clock = clock or SystemClock()

    def lock_product(self, business_id: UUID, product_id: UUID) -> Product:
        """Load a product row for update, bypassing the identity map cache."""
        product = self.session.execute(
            select(Product)
            .where(Product.id == product_id, Product.business_id == business_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", str(product_id), str(business_id))
        return product

    def apply_movement(
        self,
        business_id: UUID,
        product_id: UUID,
        movement_type: MovementType,
        quantity: Decimal,
        reference: StockReference,
        actor: Actor,
        *,
        decrease: bool = False,
        reason: str | None = None,
        unit_cost: Decimal | None = None,
    ) -> StockMovement:
        """
        Record one stock movement and update the product aggregate.

        Args:
            quantity: Positive magnitude of the movement.
            decrease: For ADJUSTMENT only; True removes stock.
            unit_cost: Inbound cost; folds into the weighted average cost on
                stock_in when the policy enables it.

        Returns:
            The flushed StockMovement row.
        """
        movement_type = MovementType(movement_type)
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise ValidationError("quantity", f"must be > 0, got {quantity}")

        outbound = movement_type.is_outbound or (
            movement_type == MovementType.ADJUSTMENT and decrease
        )
        signed_quantity = -quantity if outbound else quantity

        product = self.lock_product(business_id, product_id)
        previous_stock = product.current_stock
        new_stock = previous_stock + signed_quantity

        # INVARIANT: outbound movements never go negative without policy
        if outbound and new_stock < 0 and not self._policy.allow_negative_stock:
            logger.warning(
                "stock_movement_rejected_insufficient",
                extra={
                    "product_id": str(product_id),
                    "movement_type": movement_type.value,
                    "requested": quantity,
                    "available": previous_stock,
                },
            )
            raise InsufficientStockError(str(product_id), quantity, previous_stock)

        if (
            movement_type == MovementType.STOCK_IN
            and unit_cost is not None
            and self._policy.update_weighted_average_cost
        ):
            product.cost_per_unit = self._weighted_average_cost(
                previous_stock, product.cost_per_unit, quantity, Decimal(unit_cost)
            )

        product.movement_count += 1
        product.current_stock = new_stock
        product.updated_by_id = actor.user_id

        movement = StockMovement(
            business_id=business_id,
            product_id=product_id,
            ledger_sequence=product.movement_count,
            movement_type=movement_type.value,
            quantity=signed_quantity,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reference_type=ReferenceType(reference.reference_type).value,
            reference_id=reference.reference_id,
            reference_line_id=reference.line_id,
            reason=reason,
            unit_cost=unit_cost,
            actor_id=actor.user_id,
            created_at=self._clock.now(),
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "stock_movement_applied",
            extra={
                "product_id": str(product_id),
                "movement_id": str(movement.id),
                "movement_type": movement_type.value,
                "quantity": signed_quantity,
                "previous_stock": previous_stock,
                "new_stock": new_stock,
                "reference_type": movement.reference_type,
                "reference_id": str(reference.reference_id) if reference.reference_id else None,
            },
        )
        return movement

    def adjust_stock(
        self,
        business_id: UUID,
        product_id: UUID,
        delta: Decimal,
        actor: Actor,
        reason: str,
    ) -> StockMovement:
        """Manual correction; the sign of ``delta`` picks the direction."""
        delta = Decimal(delta)
        if delta == 0:
            raise ValidationError("delta", "adjustment must be non-zero")
        if not reason or not reason.strip():
            raise ValidationError("reason", "manual adjustments require a reason")
        return self.apply_movement(
            business_id,
            product_id,
            MovementType.ADJUSTMENT,
            abs(delta),
            StockReference.manual(),
            actor,
            decrease=delta < 0,
            reason=reason,
        )

    def reserve(self, business_id: UUID, product_id: UUID, quantity: Decimal) -> Product:
        """Soft-allocate available-to-promise stock. No ledger movement."""
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise ValidationError("quantity", f"must be > 0, got {quantity}")
        product = self.lock_product(business_id, product_id)
        available = product.available_to_promise
        if quantity > available and not self._policy.allow_negative_stock:
            raise InsufficientStockError(str(product_id), quantity, available)
        product.quantity_reserved += quantity
        self.session.flush()
        logger.debug(
            "stock_reserved",
            extra={
                "product_id": str(product_id),
                "quantity": quantity,
                "quantity_reserved": product.quantity_reserved,
            },
        )
        return product

    def release(self, business_id: UUID, product_id: UUID, quantity: Decimal) -> Product:
        """Drop a soft allocation; never takes the reserved total below zero."""
        quantity = Decimal(quantity)
        product = self.lock_product(business_id, product_id)
        if quantity > 0:
            product.quantity_reserved = max(
                Decimal("0"), product.quantity_reserved - quantity
            )
            self.session.flush()
            logger.debug(
                "stock_reservation_released",
                extra={
                    "product_id": str(product_id),
                    "quantity": quantity,
                    "quantity_reserved": product.quantity_reserved,
                },
            )
        return product

    @staticmethod
    def _weighted_average_cost(
        on_hand: Decimal,
        current_cost: Decimal,
        received: Decimal,
        received_cost: Decimal,
    ) -> Decimal:
        if on_hand <= 0:
            return received_cost.quantize(_COST_QUANTUM)
        total = on_hand + received
        blended = (on_hand * current_cost + received * received_cost) / total
        return blended.quantize(_COST_QUANTUM)
