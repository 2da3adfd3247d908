"""
Purchasing Module Service (``inventory_modules.purchasing.service``).

Responsibility
--------------
Purchase order lifecycle operations: create/update while draft, submit,
confirm, cancel, delete, explicit line short-close, and read queries.

Invariants
----------
- Each public method owns its transaction boundary (TransactionRunner):
  commit on success, rollback on any error, whole-operation retry on a
  lost update.
- Every status change is a declared ``PURCHASE_ORDER_WORKFLOW`` transition.
- The order number comes from the OrderNumberSequencer exactly once.

Failure Modes
-------------
- InvalidStateTransitionError: action not allowed from the current status.
- ValidationError: no lines / non-positive quantity on submit, bad input.
- NotFoundError: order, supplier or product outside the business scope.

Usage::

    service = PurchaseOrderService(session, policy, clock)
    order = service.create_purchase_order(
        business_id, supplier_id,
        [PurchaseOrderLineInput(product_id, Decimal("100"), Decimal("5.00"))],
        actor,
    )
    order = service.submit(business_id, order.id, actor)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.values import Actor
from inventory_kernel.exceptions import InvalidStateTransitionError, ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.party import PartyType
from inventory_kernel.services.sequence_service import OrderNumberSequencer
from inventory_modules._service import ModuleService
from inventory_modules.purchasing import workflows
from inventory_modules.purchasing.models import (
    PurchaseOrder,
    PurchaseOrderLineInput,
    PurchaseOrderStatus,
)
from inventory_modules.purchasing.orm import PurchaseOrderLineModel, PurchaseOrderModel
from inventory_modules.purchasing.workflows import DELETABLE_STATES, PURCHASE_ORDER_WORKFLOW
from inventory_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.purchasing.service")

_ZERO = Decimal("0")


class PurchaseOrderService(ModuleService):
    """
    Facade for purchase order operations.

    Receiving itself (stock in, line increments, aggregate status) happens in
    ``ReceiptService.complete`` through the reconciliation coordinator.
    """

    ENTITY_TYPE = "PurchaseOrder"
    MODEL = PurchaseOrderModel

    def _register_guards(self, executor: WorkflowExecutor) -> None:
        workflows.register_guards(executor.guards)

    # =========================================================================
    # Draft editing
    # =========================================================================

    def create_purchase_order(
        self,
        business_id: UUID,
        supplier_id: UUID,
        lines: Sequence[PurchaseOrderLineInput],
        actor: Actor,
        expected_delivery_date: date | None = None,
        tax_amount: Decimal = _ZERO,
        shipping_cost: Decimal = _ZERO,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Create a draft purchase order with a freshly allocated number."""

        def _create() -> PurchaseOrder:
            self._require_party(business_id, supplier_id, PartyType.SUPPLIER.value)
            self._validate_amounts(tax_amount, shipping_cost)
            order = PurchaseOrderModel(
                business_id=business_id,
                order_number=self._sequencer.next(
                    business_id, OrderNumberSequencer.PURCHASE_ORDER
                ),
                supplier_id=supplier_id,
                status=PURCHASE_ORDER_WORKFLOW.initial_state,
                tax_amount=Decimal(tax_amount),
                shipping_cost=Decimal(shipping_cost),
                expected_delivery_date=expected_delivery_date,
                notes=notes,
                created_by_id=actor.user_id,
            )
            order.lines = self._build_lines(business_id, lines, actor)
            self._session.add(order)
            self._session.flush()

            logger.info(
                "purchase_order_created",
                extra={
                    "purchase_order_id": str(order.id),
                    "order_number": order.order_number,
                    "supplier_id": str(supplier_id),
                    "line_count": len(order.lines),
                },
            )
            return order.to_dto()

        return self._run("purchase_order.create", business_id, actor, None, _create)

    def update_purchase_order(
        self,
        business_id: UUID,
        order_id: UUID,
        actor: Actor,
        lines: Sequence[PurchaseOrderLineInput] | None = None,
        expected_delivery_date: date | None = None,
        tax_amount: Decimal | None = None,
        shipping_cost: Decimal | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Replace lines and/or header fields. Draft orders only."""

        def _update() -> PurchaseOrder:
            order = self._load(business_id, order_id)
            self._transition(PURCHASE_ORDER_WORKFLOW, order, "update", actor)
            self._validate_amounts(
                _ZERO if tax_amount is None else tax_amount,
                _ZERO if shipping_cost is None else shipping_cost,
            )
            if lines is not None:
                order.lines.clear()
                self._session.flush()
                order.lines.extend(self._build_lines(business_id, lines, actor))
            if expected_delivery_date is not None:
                order.expected_delivery_date = expected_delivery_date
            if tax_amount is not None:
                order.tax_amount = Decimal(tax_amount)
            if shipping_cost is not None:
                order.shipping_cost = Decimal(shipping_cost)
            if notes is not None:
                order.notes = notes
            self._session.flush()
            logger.info(
                "purchase_order_updated",
                extra={"purchase_order_id": str(order.id), "line_count": len(order.lines)},
            )
            return order.to_dto()

        return self._run("purchase_order.update", business_id, actor, order_id, _update)

    def delete(self, business_id: UUID, order_id: UUID, actor: Actor) -> None:
        """Delete a draft order. Non-draft orders can only be cancelled."""

        def _delete() -> None:
            order = self._load(business_id, order_id)
            if order.status not in DELETABLE_STATES:
                raise InvalidStateTransitionError(
                    self.ENTITY_TYPE, str(order.id), order.status, "delete"
                )
            self._session.delete(order)
            self._session.flush()
            logger.info(
                "purchase_order_deleted",
                extra={"purchase_order_id": str(order_id), "order_number": order.order_number},
            )

        self._run("purchase_order.delete", business_id, actor, order_id, _delete)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def submit(self, business_id: UUID, order_id: UUID, actor: Actor) -> PurchaseOrder:
        """Draft -> Submitted. Requires >= 1 line, every quantity > 0."""

        def _submit() -> PurchaseOrder:
            order = self._load(business_id, order_id)
            self._transition(PURCHASE_ORDER_WORKFLOW, order, "submit", actor)
            self._session.flush()
            logger.info(
                "purchase_order_submitted",
                extra={"purchase_order_id": str(order.id), "order_number": order.order_number},
            )
            return order.to_dto()

        return self._run("purchase_order.submit", business_id, actor, order_id, _submit)

    def confirm(
        self,
        business_id: UUID,
        order_id: UUID,
        confirmed_delivery_date: date | None,
        actor: Actor,
    ) -> PurchaseOrder:
        """Submitted -> Confirmed, recording the supplier-confirmed date."""

        def _confirm() -> PurchaseOrder:
            order = self._load(business_id, order_id)
            self._transition(PURCHASE_ORDER_WORKFLOW, order, "confirm", actor)
            order.confirmed_delivery_date = confirmed_delivery_date
            self._session.flush()
            logger.info(
                "purchase_order_confirmed",
                extra={
                    "purchase_order_id": str(order.id),
                    "confirmed_delivery_date": confirmed_delivery_date,
                },
            )
            return order.to_dto()

        return self._run("purchase_order.confirm", business_id, actor, order_id, _confirm)

    def cancel(
        self,
        business_id: UUID,
        order_id: UUID,
        reason: str,
        actor: Actor,
    ) -> PurchaseOrder:
        """
        Cancel from any non-terminal status.

        Lines still awaiting goods become cancelled.  Stock already received
        stays on hand; no reversing movement is written.
        """

        def _cancel() -> PurchaseOrder:
            order = self._load(business_id, order_id)
            self._transition(PURCHASE_ORDER_WORKFLOW, order, "cancel", actor)
            order.cancellation_reason = reason
            cancelled_lines = 0
            for line in order.lines:
                if line.status in ("pending", "partially_received"):
                    line.status = "cancelled"
                    line.closure_reason = reason
                    line.updated_by_id = actor.user_id
                    cancelled_lines += 1
            self._session.flush()
            logger.info(
                "purchase_order_cancelled",
                extra={
                    "purchase_order_id": str(order.id),
                    "reason": reason,
                    "cancelled_lines": cancelled_lines,
                },
            )
            return order.to_dto()

        return self._run("purchase_order.cancel", business_id, actor, order_id, _cancel)

    def short_close_line(
        self,
        business_id: UUID,
        order_id: UUID,
        line_id: UUID,
        reason: str,
        actor: Actor,
    ) -> PurchaseOrder:
        """
        Close a line the supplier will not deliver in full.

        The line becomes ``short_shipped`` and the order status is
        recomputed; closing the last open line completes the order.
        """

        def _short_close() -> PurchaseOrder:
            order = self._load(business_id, order_id)
            self._executor.execute_transition(
                PURCHASE_ORDER_WORKFLOW, self.ENTITY_TYPE, order.id, order.status,
                "short_close_line", context=order,
            )
            line = order.line(line_id)
            if line is None:
                raise ValidationError("line_id", f"{line_id} is not a line of this order")
            if line.status not in ("pending", "partially_received"):
                raise InvalidStateTransitionError(
                    "PurchaseOrderLine", str(line.id), line.status, "short_close"
                )
            line.status = "short_shipped"
            line.closure_reason = reason
            line.updated_by_id = actor.user_id
            self._coordinator.recompute_purchase_order_status(order, actor)
            self._session.flush()
            logger.info(
                "purchase_order_line_short_closed",
                extra={
                    "purchase_order_id": str(order.id),
                    "line_id": str(line.id),
                    "quantity_short": line.quantity_outstanding,
                    "order_status": order.status,
                },
            )
            return order.to_dto()

        return self._run("purchase_order.short_close_line", business_id, actor, order_id, _short_close)

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, business_id: UUID, order_id: UUID) -> PurchaseOrder:
        return self._read(
            "purchase_order.get",
            business_id,
            lambda: self._load(business_id, order_id, for_update=False).to_dto(),
        )

    def list_orders(
        self,
        business_id: UUID,
        status: PurchaseOrderStatus | None = None,
    ) -> list[PurchaseOrder]:
        def _list() -> list[PurchaseOrder]:
            query = select(PurchaseOrderModel).where(
                PurchaseOrderModel.business_id == business_id
            )
            if status is not None:
                query = query.where(PurchaseOrderModel.status == status.value)
            rows = self._session.execute(
                query.order_by(PurchaseOrderModel.order_number)
            ).scalars()
            return [row.to_dto() for row in rows]

        return self._read("purchase_order.list", business_id, _list)

    def list_outstanding(self, business_id: UUID) -> list[PurchaseOrder]:
        """Orders still expecting goods (confirmed or receiving)."""
        return [
            order
            for order in self.list_orders(business_id)
            if order.status.value in workflows.RECEIVABLE_STATES
        ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_lines(
        self,
        business_id: UUID,
        lines: Sequence[PurchaseOrderLineInput],
        actor: Actor,
    ) -> list[PurchaseOrderLineModel]:
        built: list[PurchaseOrderLineModel] = []
        for number, line in enumerate(lines, start=1):
            self._require_product(business_id, line.product_id)
            quantity = Decimal(line.quantity_ordered)
            unit_price = Decimal(line.unit_price)
            if quantity < _ZERO:
                raise ValidationError("quantity_ordered", f"line {number} must be >= 0")
            if unit_price < _ZERO:
                raise ValidationError("unit_price", f"line {number} must be >= 0")
            built.append(
                PurchaseOrderLineModel(
                    line_number=number,
                    product_id=line.product_id,
                    quantity_ordered=quantity,
                    quantity_received=_ZERO,
                    unit_price=unit_price,
                    status="pending",
                    created_by_id=actor.user_id,
                )
            )
        return built

    @staticmethod
    def _validate_amounts(tax_amount: Decimal, shipping_cost: Decimal) -> None:
        if Decimal(tax_amount) < _ZERO:
            raise ValidationError("tax_amount", "must be >= 0")
        if Decimal(shipping_cost) < _ZERO:
            raise ValidationError("shipping_cost", "must be >= 0")
