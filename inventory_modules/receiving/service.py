"""
Receiving Module Service (``inventory_modules.receiving.service``).

Responsibility
--------------
Capture receipts against purchase orders, compute per-line quantity and
price variances, route receipts with variances through validation, and
complete receipts through the reconciliation coordinator.

Invariants
----------
- Each public method owns its transaction boundary (TransactionRunner).
- ``complete`` is the only operation that changes stock; the receipt row
  is locked and versioned, so two concurrent completions of one receipt
  cannot both apply stock.
- Variances are computed once, at capture (or update), against the PO
  line's outstanding quantity at that moment.

Failure Modes
-------------
- InvalidStateTransitionError: PO not receivable, action not allowed from
  the receipt's status, completing twice, deleting a completed receipt.
- ValidationError: missing variance notes on approve, bad line input,
  over-receipt beyond policy.
- NotFoundError: receipt or purchase order outside the business scope.

Usage::

    service = ReceiptService(session, policy, clock)
    receipt = service.create_receipt(
        business_id, po.id, actor,
        lines=[ReceiptLineInput(po.lines[0].id, quantity_received=Decimal("60"))],
    )
    receipt = service.complete(business_id, receipt.id, actor)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.config import InventoryPolicy
from inventory_kernel.domain.values import Actor
from inventory_kernel.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.sequence_service import OrderNumberSequencer
from inventory_modules._service import ModuleService
from inventory_modules.purchasing.orm import PurchaseOrderLineModel, PurchaseOrderModel
from inventory_modules.purchasing.workflows import RECEIVABLE_STATES
from inventory_modules.receiving import workflows
from inventory_modules.receiving.models import (
    ItemCondition,
    Receipt,
    ReceiptLineInput,
    ReceiptStatus,
)
from inventory_modules.receiving.orm import ReceiptLineModel, ReceiptModel
from inventory_modules.receiving.workflows import RECEIPT_WORKFLOW, UNDELETABLE_STATES
from inventory_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.receiving.service")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

_OPEN_PO_LINE_STATES = ("pending", "partially_received")


def line_has_variance(line: ReceiptLineModel, policy: InventoryPolicy) -> bool:
    """
    Whether a receipt line needs review before its stock can be applied.

    Flags a price difference beyond ``price_variance_tolerance``, any
    non-good condition, an over-delivery beyond
    ``quantity_variance_tolerance_percent`` of the ordered quantity and, when
    ``partial_delivery_is_variance`` is set, an under-delivery beyond the
    same tolerance.
    """
    if abs(line.price_variance) > policy.price_variance_tolerance:
        return True
    if line.condition != ItemCondition.GOOD.value:
        return True
    tolerance = line.quantity_ordered * policy.quantity_variance_tolerance_percent / _HUNDRED
    if line.quantity_variance > tolerance:
        return True
    if policy.partial_delivery_is_variance and -line.quantity_variance > tolerance:
        return True
    return False


class ReceiptService(ModuleService):
    """Facade for receipt operations."""

    ENTITY_TYPE = "Receipt"
    MODEL = ReceiptModel

    def _register_guards(self, executor: WorkflowExecutor) -> None:
        workflows.register_guards(executor.guards)

    # =========================================================================
    # Capture
    # =========================================================================

    def create_receipt(
        self,
        business_id: UUID,
        purchase_order_id: UUID,
        actor: Actor,
        lines: Sequence[ReceiptLineInput] | None = None,
        supplier_delivery_note: str | None = None,
        notes: str | None = None,
    ) -> Receipt:
        """
        Record a delivery against a confirmed/receiving purchase order.

        ``lines=None`` receives every open PO line in full.  A receipt with
        variances starts in pending_validation.
        """

        def _create() -> Receipt:
            order = self._load_order(business_id, purchase_order_id)
            if order.status not in RECEIVABLE_STATES:
                raise InvalidStateTransitionError(
                    "PurchaseOrder", str(order.id), order.status, "receive"
                )

            receipt = ReceiptModel(
                business_id=business_id,
                purchase_order_id=order.id,
                receipt_number=self._sequencer.next(
                    business_id, OrderNumberSequencer.RECEIPT
                ),
                status=RECEIPT_WORKFLOW.initial_state,
                supplier_delivery_note=supplier_delivery_note,
                notes=notes,
                created_by_id=actor.user_id,
            )
            receipt.lines = self._build_lines(order, lines, actor)
            receipt.has_variances = any(
                line_has_variance(line, self._policy) for line in receipt.lines
            )
            self._session.add(receipt)
            self._session.flush()

            if receipt.has_variances:
                self._transition(RECEIPT_WORKFLOW, receipt, "submit_for_validation", actor)

            self._coordinator.begin_receiving(order, actor)
            self._session.flush()

            logger.info(
                "receipt_created",
                extra={
                    "receipt_id": str(receipt.id),
                    "receipt_number": receipt.receipt_number,
                    "purchase_order_id": str(order.id),
                    "line_count": len(receipt.lines),
                    "has_variances": receipt.has_variances,
                    "status": receipt.status,
                },
            )
            return receipt.to_dto()

        return self._run("receipt.create", business_id, actor, None, _create)

    def update_receipt(
        self,
        business_id: UUID,
        receipt_id: UUID,
        actor: Actor,
        lines: Sequence[ReceiptLineInput] | None = None,
        supplier_delivery_note: str | None = None,
        notes: str | None = None,
    ) -> Receipt:
        """Re-capture lines or header fields while the receipt is in progress."""

        def _update() -> Receipt:
            receipt = self._load(business_id, receipt_id)
            self._transition(RECEIPT_WORKFLOW, receipt, "update", actor)
            if lines is not None:
                order = self._load_order(business_id, receipt.purchase_order_id)
                receipt.lines.clear()
                self._session.flush()
                receipt.lines.extend(self._build_lines(order, lines, actor))
                receipt.has_variances = any(
                    line_has_variance(line, self._policy) for line in receipt.lines
                )
            if supplier_delivery_note is not None:
                receipt.supplier_delivery_note = supplier_delivery_note
            if notes is not None:
                receipt.notes = notes
            self._session.flush()
            if receipt.has_variances:
                self._transition(RECEIPT_WORKFLOW, receipt, "submit_for_validation", actor)
                self._session.flush()
            logger.info(
                "receipt_updated",
                extra={
                    "receipt_id": str(receipt.id),
                    "has_variances": receipt.has_variances,
                    "status": receipt.status,
                },
            )
            return receipt.to_dto()

        return self._run("receipt.update", business_id, actor, receipt_id, _update)

    def delete(self, business_id: UUID, receipt_id: UUID, actor: Actor) -> None:
        """Delete a receipt that has not been completed."""

        def _delete() -> None:
            receipt = self._load(business_id, receipt_id)
            if receipt.status in UNDELETABLE_STATES:
                raise InvalidStateTransitionError(
                    self.ENTITY_TYPE, str(receipt.id), receipt.status, "delete"
                )
            self._session.delete(receipt)
            self._session.flush()
            logger.info(
                "receipt_deleted",
                extra={"receipt_id": str(receipt_id), "receipt_number": receipt.receipt_number},
            )

        self._run("receipt.delete", business_id, actor, receipt_id, _delete)

    # =========================================================================
    # Validation
    # =========================================================================

    def submit_for_validation(self, business_id: UUID, receipt_id: UUID, actor: Actor) -> Receipt:
        """Send an in-progress receipt for manual review."""

        def _submit() -> Receipt:
            receipt = self._load(business_id, receipt_id)
            self._transition(RECEIPT_WORKFLOW, receipt, "submit_for_validation", actor)
            self._session.flush()
            logger.info("receipt_submitted_for_validation", extra={"receipt_id": str(receipt.id)})
            return receipt.to_dto()

        return self._run("receipt.submit_for_validation", business_id, actor, receipt_id, _submit)

    def approve(
        self,
        business_id: UUID,
        receipt_id: UUID,
        variance_notes: str | None,
        actor: Actor,
    ) -> Receipt:
        """Pending validation -> validated. Notes are mandatory when variances exist."""

        def _approve() -> Receipt:
            receipt = self._load(business_id, receipt_id)
            self._transition(
                RECEIPT_WORKFLOW, receipt, "approve", actor,
                context={"receipt": receipt, "variance_notes": variance_notes},
            )
            receipt.variance_notes = variance_notes
            receipt.validated_by_id = actor.user_id
            receipt.validated_at = self._clock.now()
            self._session.flush()
            logger.info(
                "receipt_approved",
                extra={"receipt_id": str(receipt.id), "has_variances": receipt.has_variances},
            )
            return receipt.to_dto()

        return self._run("receipt.approve", business_id, actor, receipt_id, _approve)

    def reject(self, business_id: UUID, receipt_id: UUID, reason: str, actor: Actor) -> Receipt:
        """Pending validation -> rejected. Stock is untouched."""

        def _reject() -> Receipt:
            receipt = self._load(business_id, receipt_id)
            self._transition(
                RECEIPT_WORKFLOW, receipt, "reject", actor,
                context={"receipt": receipt, "reason": reason},
            )
            receipt.rejection_reason = reason
            self._session.flush()
            logger.info(
                "receipt_rejected",
                extra={"receipt_id": str(receipt.id), "reason": reason},
            )
            return receipt.to_dto()

        return self._run("receipt.reject", business_id, actor, receipt_id, _reject)

    # =========================================================================
    # Completion
    # =========================================================================

    def complete(self, business_id: UUID, receipt_id: UUID, actor: Actor) -> Receipt:
        """
        Apply the receipt: stock in, PO lines and PO status, receipt completed.

        Allowed from validated, or from in_progress when the receipt has no
        variances.  A second call finds the receipt completed and raises
        InvalidStateTransitionError without touching stock.
        """

        def _complete() -> Receipt:
            receipt = self._load(business_id, receipt_id)
            self._executor.execute_transition(
                RECEIPT_WORKFLOW, self.ENTITY_TYPE, receipt.id, receipt.status,
                "complete", context=receipt,
            )
            order = self._load_order(business_id, receipt.purchase_order_id)
            movements = self._coordinator.apply_receipt(receipt, order, actor)
            logger.info(
                "receipt_completed",
                extra={
                    "receipt_id": str(receipt.id),
                    "receipt_number": receipt.receipt_number,
                    "movement_count": len(movements),
                    "purchase_order_status": order.status,
                },
            )
            return receipt.to_dto()

        return self._run("receipt.complete", business_id, actor, receipt_id, _complete)

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, business_id: UUID, receipt_id: UUID) -> Receipt:
        return self._read(
            "receipt.get",
            business_id,
            lambda: self._load(business_id, receipt_id, for_update=False).to_dto(),
        )

    def list_for_purchase_order(self, business_id: UUID, purchase_order_id: UUID) -> list[Receipt]:
        return self._list(
            business_id, ReceiptModel.purchase_order_id == purchase_order_id
        )

    def list_pending_validation(self, business_id: UUID) -> list[Receipt]:
        return self._list(
            business_id, ReceiptModel.status == ReceiptStatus.PENDING_VALIDATION.value
        )

    def _list(self, business_id: UUID, criterion) -> list[Receipt]:
        def _query() -> list[Receipt]:
            rows = self._session.execute(
                select(ReceiptModel)
                .where(ReceiptModel.business_id == business_id, criterion)
                .order_by(ReceiptModel.receipt_number)
            ).scalars()
            return [row.to_dto() for row in rows]

        return self._read("receipt.list", business_id, _query)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_order(self, business_id: UUID, order_id: UUID) -> PurchaseOrderModel:
        order = self._session.execute(
            select(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.id == order_id,
                PurchaseOrderModel.business_id == business_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("PurchaseOrder", str(order_id), str(business_id))
        return order

    def _build_lines(
        self,
        order: PurchaseOrderModel,
        inputs: Sequence[ReceiptLineInput] | None,
        actor: Actor,
    ) -> list[ReceiptLineModel]:
        if inputs is None:
            inputs = [
                ReceiptLineInput(line.id)
                for line in order.lines
                if line.status in _OPEN_PO_LINE_STATES and line.quantity_outstanding > _ZERO
            ]
        if not inputs:
            raise ValidationError("lines", "receipt must have at least one line")

        seen: set[UUID] = set()
        built: list[ReceiptLineModel] = []
        for number, item in enumerate(inputs, start=1):
            if item.purchase_order_line_id in seen:
                raise ValidationError(
                    "purchase_order_line_id",
                    f"{item.purchase_order_line_id} appears more than once",
                )
            seen.add(item.purchase_order_line_id)
            po_line = order.line(item.purchase_order_line_id)
            if po_line is None:
                raise ValidationError(
                    "purchase_order_line_id",
                    f"{item.purchase_order_line_id} is not a line of order {order.order_number}",
                )
            built.append(self._build_line(number, po_line, item, actor))

        if all(line.quantity_received == _ZERO for line in built):
            raise ValidationError("quantity_received", "receipt must receive a positive quantity")
        return built

    def _build_line(
        self,
        number: int,
        po_line: PurchaseOrderLineModel,
        item: ReceiptLineInput,
        actor: Actor,
    ) -> ReceiptLineModel:
        if po_line.status not in _OPEN_PO_LINE_STATES:
            raise ValidationError(
                "purchase_order_line_id",
                f"line {po_line.line_number} is {po_line.status}",
            )
        outstanding = po_line.quantity_outstanding
        received = outstanding if item.quantity_received is None else Decimal(item.quantity_received)
        if received < _ZERO:
            raise ValidationError("quantity_received", f"line {number} must be >= 0")

        allowance = po_line.quantity_ordered * self._policy.allow_over_receipt_percent / _HUNDRED
        if received > outstanding + allowance:
            raise ValidationError(
                "quantity_received",
                f"line {number}: {received} exceeds outstanding {outstanding} "
                f"plus allowance {allowance}",
            )

        price_received = (
            None if item.unit_price_received is None else Decimal(item.unit_price_received)
        )
        if price_received is not None and price_received < _ZERO:
            raise ValidationError("unit_price_received", f"line {number} must be >= 0")
        effective_price = po_line.unit_price if price_received is None else price_received
        condition = ItemCondition(item.condition)

        return ReceiptLineModel(
            line_number=number,
            purchase_order_line_id=po_line.id,
            product_id=po_line.product_id,
            quantity_ordered=po_line.quantity_ordered,
            quantity_outstanding=outstanding,
            quantity_received=received,
            unit_price_ordered=po_line.unit_price,
            unit_price_received=price_received,
            condition=condition.value,
            quantity_variance=received - outstanding,
            price_variance=effective_price - po_line.unit_price,
            damage_notes=item.damage_notes,
            created_by_id=actor.user_id,
        )
