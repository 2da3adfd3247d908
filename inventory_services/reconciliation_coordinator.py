"""
inventory_services.reconciliation_coordinator -- Cross-document cascades.

Responsibility:
    The named operations that touch more than one aggregate:

    * ``apply_receipt``: Receipt -> PurchaseOrderLine -> PurchaseOrder ->
      Product stock (StockIn movements).
    * ``allocate_sales_order`` / ``release_sales_order``: SalesOrderLine ->
      Product reservation (or StockOut when stock is decremented at confirm).
    * ``apply_shipment``: SalesOrderLine -> SalesOrder -> Product stock
      (StockOut movements).
    * ``recompute_purchase_order_status``: aggregate PO status from lines.

Architecture position:
    Services layer, flush-only.  Every method runs inside the calling module
    service's transaction; the caller's TransactionRunner commits all of it
    or none of it.

Invariants enforced:
    - Stock changes only through StockLedger.apply_movement.
    - PurchaseOrderLine.quantity_received never decreases and never exceeds
      quantity_ordered beyond the over-receipt allowance.
    - Product rows are locked in ascending product id order within one
      cascade, so two cascades over the same products cannot deadlock.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

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
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.stock_movement import StockMovement
from inventory_kernel.services.stock_ledger import StockLedger
from inventory_modules.purchasing.orm import PurchaseOrderLineModel, PurchaseOrderModel
from inventory_modules.purchasing.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    RECEIVABLE_STATES,
)
from inventory_modules.receiving.orm import ReceiptModel
from inventory_modules.sales.orm import SalesOrderLineModel, SalesOrderModel
from inventory_modules.sales.workflows import SALES_ORDER_WORKFLOW
from inventory_services.workflow_executor import WorkflowExecutor

logger = get_logger("services.reconciliation")

_ZERO = Decimal("0")

_CLOSED_LINE_STATES = ("fully_received", "short_shipped")


def _by_product(lines):
    return sorted(lines, key=lambda line: str(line.product_id))


class ReconciliationCoordinator:
    """
    Orchestrates the receipt and shipment cascades as single units.

    Usage:
        coordinator = ReconciliationCoordinator(session, ledger, executor, policy, clock)
        movements = coordinator.apply_receipt(receipt, order, actor)
    """

    def __init__(
        self,
        session: Session,
        ledger: StockLedger,
        executor: WorkflowExecutor,
        policy: InventoryPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._executor = executor
        self._policy = policy or InventoryPolicy()
        self._clock = clock or SystemClock()

    # =========================================================================
    # Receipts
    # =========================================================================

    def apply_receipt(
        self,
        receipt: ReceiptModel,
        order: PurchaseOrderModel,
        actor: Actor,
    ) -> list[StockMovement]:
        """
        Apply a completed receipt to stock and to its purchase order.

        Steps: StockIn per stocked line, PO line increments and statuses,
        PO aggregate status, receipt marked completed.
        """
        if order.status not in RECEIVABLE_STATES:
            raise InvalidStateTransitionError(
                "PurchaseOrder", str(order.id), order.status, "receive"
            )

        # Receiving precedes any line update
        self.begin_receiving(order, actor)

        movements: list[StockMovement] = []
        for receipt_line in _by_product(receipt.lines):
            quantity = receipt_line.quantity_received
            if quantity <= _ZERO:
                continue

            po_line = order.line(receipt_line.purchase_order_line_id)
            if po_line is None:
                raise NotFoundError(
                    "PurchaseOrderLine",
                    str(receipt_line.purchase_order_line_id),
                    str(order.business_id),
                )
            if po_line.status in ("cancelled", "short_shipped"):
                raise ValidationError(
                    "purchase_order_line_id",
                    f"line {po_line.line_number} is closed ({po_line.status})",
                )
            self._check_over_receipt(po_line, quantity)

            if receipt_line.condition == "good" or self._policy.stock_non_good_receipts:
                movements.append(
                    self._ledger.apply_movement(
                        receipt.business_id,
                        receipt_line.product_id,
                        MovementType.STOCK_IN,
                        quantity,
                        StockReference(
                            ReferenceType.PURCHASE_RECEIPT, receipt.id, receipt_line.id
                        ),
                        actor,
                        unit_cost=receipt_line.effective_unit_price,
                    )
                )

            po_line.quantity_received += quantity
            po_line.status = (
                "fully_received"
                if po_line.quantity_outstanding == _ZERO
                else "partially_received"
            )
            po_line.updated_by_id = actor.user_id

        self.recompute_purchase_order_status(order, actor)

        receipt.status = "completed"
        receipt.completed_at = self._clock.now()
        receipt.updated_by_id = actor.user_id
        self._session.flush()

        logger.info(
            "receipt_applied",
            extra={
                "receipt_id": str(receipt.id),
                "receipt_number": receipt.receipt_number,
                "purchase_order_id": str(order.id),
                "purchase_order_status": order.status,
                "movement_count": len(movements),
            },
        )
        return movements

    def begin_receiving(self, order: PurchaseOrderModel, actor: Actor) -> None:
        """Move a confirmed order to receiving; no-op once receiving started."""
        if order.status == "confirmed":
            self._advance_order(order, "begin_receiving", actor)

    def recompute_purchase_order_status(
        self, order: PurchaseOrderModel, actor: Actor
    ) -> str:
        """
        Derive the PO status from its lines.

        Completed when every non-cancelled line is fully received or
        short-closed; partially received once anything arrived; otherwise
        unchanged.
        """
        active = [line for line in order.lines if line.status != "cancelled"]
        if not active:
            return order.status

        if all(line.status in _CLOSED_LINE_STATES for line in active):
            action = "receive_complete"
        elif any(line.quantity_received > _ZERO for line in active):
            action = "receive_partial"
        else:
            return order.status

        self.begin_receiving(order, actor)
        self._advance_order(order, action, actor)
        if order.status == "completed":
            order.completed_at = self._clock.now()
        return order.status

    def _advance_order(self, order: PurchaseOrderModel, action: str, actor: Actor) -> None:
        transition = self._executor.execute_transition(
            PURCHASE_ORDER_WORKFLOW, "PurchaseOrder", order.id, order.status, action,
            context=order,
        )
        order.status = transition.to_state
        order.updated_by_id = actor.user_id

    def _check_over_receipt(self, po_line: PurchaseOrderLineModel, quantity: Decimal) -> None:
        allowance = po_line.quantity_ordered * self._policy.allow_over_receipt_percent / Decimal("100")
        limit = po_line.quantity_ordered + allowance
        if po_line.quantity_received + quantity > limit:
            raise ValidationError(
                "quantity_received",
                f"receiving {quantity} on line {po_line.line_number} exceeds "
                f"ordered {po_line.quantity_ordered} (already received "
                f"{po_line.quantity_received}, allowance {allowance})",
            )

    # =========================================================================
    # Sales orders
    # =========================================================================

    def allocate_sales_order(self, order: SalesOrderModel, actor: Actor) -> None:
        """
        Allocate every open line against available-to-promise stock.

        All-or-nothing: the first shortfall raises InsufficientStockError and
        the caller's rollback discards the reservations made so far.
        """
        decrement_now = self._policy.stock_decrement_point == "confirm"
        for line in _by_product(self._open_lines(order)):
            quantity = line.quantity_ordered
            if decrement_now:
                self._ledger.apply_movement(
                    order.business_id,
                    line.product_id,
                    MovementType.STOCK_OUT,
                    quantity,
                    StockReference(ReferenceType.SALES_SHIPMENT, order.id, line.id),
                    actor,
                    reason="allocated at confirmation",
                )
            else:
                self._ledger.reserve(order.business_id, line.product_id, quantity)
            line.quantity_allocated = quantity
            line.status = "allocated"
            line.updated_by_id = actor.user_id

        logger.info(
            "sales_order_allocated",
            extra={
                "sales_order_id": str(order.id),
                "order_number": order.order_number,
                "decrement_point": self._policy.stock_decrement_point,
            },
        )

    def release_sales_order(
        self,
        order: SalesOrderModel,
        actor: Actor,
        line_ids: tuple[UUID, ...] | None = None,
    ) -> None:
        """
        Drop allocations for the given lines (all open lines by default).

        Reservations are released.  Stock already decremented at confirm is
        not returned: cancellation never reverses ledger movements.
        """
        lines = [
            line for line in self._open_lines(order)
            if line_ids is None or line.id in line_ids
        ]
        for line in _by_product(lines):
            if line.quantity_allocated > _ZERO and self._policy.stock_decrement_point == "ship":
                self._ledger.release(order.business_id, line.product_id, line.quantity_allocated)
            line.quantity_allocated = _ZERO
            line.updated_by_id = actor.user_id

    def apply_shipment(
        self,
        order: SalesOrderModel,
        actor: Actor,
        carrier: str | None = None,
        tracking_number: str | None = None,
        shipped_date: date | None = None,
    ) -> list[StockMovement]:
        """
        Convert picked quantities into shipped stock.

        StockOut per line for its picked quantity (the irreversible
        decrement), reservation released, lines and order marked shipped.
        """
        transition = self._executor.execute_transition(
            SALES_ORDER_WORKFLOW, "SalesOrder", order.id, order.status, "ship",
            context=order,
        )

        movements: list[StockMovement] = []
        decrement_at_ship = self._policy.stock_decrement_point == "ship"

        for line in _by_product(self._open_lines(order)):
            picked = line.quantity_picked
            reference = StockReference(ReferenceType.SALES_SHIPMENT, order.id, line.id)
            if decrement_at_ship:
                if picked > _ZERO:
                    movements.append(
                        self._ledger.apply_movement(
                            order.business_id,
                            line.product_id,
                            MovementType.STOCK_OUT,
                            picked,
                            reference,
                            actor,
                        )
                    )
                if line.quantity_allocated > _ZERO:
                    self._ledger.release(
                        order.business_id, line.product_id, line.quantity_allocated
                    )
            elif line.quantity_allocated > picked:
                # Decremented in full at confirm; return what was not picked.
                movements.append(
                    self._ledger.apply_movement(
                        order.business_id,
                        line.product_id,
                        MovementType.ADJUSTMENT,
                        line.quantity_allocated - picked,
                        reference,
                        actor,
                        reason="unpicked allocation returned at shipment",
                    )
                )
            line.quantity_shipped = picked
            line.quantity_allocated = _ZERO
            line.status = "shipped"
            line.updated_by_id = actor.user_id

        order.status = transition.to_state
        order.carrier = carrier
        order.tracking_number = tracking_number
        order.shipped_date = shipped_date or self._clock.today()
        order.updated_by_id = actor.user_id
        self._session.flush()
        logger.info(
            "shipment_applied",
            extra={
                "sales_order_id": str(order.id),
                "order_number": order.order_number,
                "movement_count": len(movements),
            },
        )
        return movements

    @staticmethod
    def _open_lines(order: SalesOrderModel) -> list[SalesOrderLineModel]:
        return [line for line in order.lines if line.status not in ("cancelled", "shipped")]
