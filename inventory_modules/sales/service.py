"""
Sales Module Service (``inventory_modules.sales.service``).

Responsibility
--------------
Sales order lifecycle: draft editing, submission, confirmation with stock
allocation, warehouse progression (release, pick, pack), shipment through
the reconciliation coordinator, delivery, holds and cancellation.

Invariants
----------
- Each public method owns its transaction boundary (TransactionRunner).
- Confirmation allocates all open lines or fails with InsufficientStockError
  and leaves nothing reserved.
- ``ship`` is the only operation that writes a StockOut under the default
  ``stock_decrement_point="ship"`` policy.
- Cancelling releases reservations; stock movements already written are
  never reversed.

Failure Modes
-------------
- InvalidStateTransitionError: action not allowed from the current status.
- InsufficientStockError: confirmation short of available-to-promise.
- ValidationError: bad lines, incomplete or out-of-range picking input.
- NotFoundError: order, customer or product outside the business scope.

Usage::

    service = SalesOrderService(session, policy, clock)
    order = service.create_sales_order(
        business_id, [SalesOrderLineInput(product_id, Decimal("30"))], actor,
    )
    order = service.submit(business_id, order.id, actor)
    order = service.confirm(business_id, order.id, actor)
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
from inventory_modules.sales import workflows
from inventory_modules.sales.models import (
    PickedLineInput,
    Priority,
    SalesOrder,
    SalesOrderLineInput,
    SalesOrderStatus,
)
from inventory_modules.sales.orm import SalesOrderLineModel, SalesOrderModel
from inventory_modules.sales.workflows import DELETABLE_STATES, SALES_ORDER_WORKFLOW
from inventory_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.sales.service")

_ZERO = Decimal("0")


class SalesOrderService(ModuleService):
    """Facade for sales order operations."""

    ENTITY_TYPE = "SalesOrder"
    MODEL = SalesOrderModel

    def _register_guards(self, executor: WorkflowExecutor) -> None:
        workflows.register_guards(executor.guards)

    # =========================================================================
    # Draft editing
    # =========================================================================

    def create_sales_order(
        self,
        business_id: UUID,
        lines: Sequence[SalesOrderLineInput],
        actor: Actor,
        customer_id: UUID | None = None,
        priority: Priority = Priority.NORMAL,
        internal_notes: str | None = None,
    ) -> SalesOrder:
        """Create a draft sales order with a freshly allocated number."""

        def _create() -> SalesOrder:
            if customer_id is not None:
                self._require_party(business_id, customer_id, PartyType.CUSTOMER.value)
            order = SalesOrderModel(
                business_id=business_id,
                order_number=self._sequencer.next(
                    business_id, OrderNumberSequencer.SALES_ORDER
                ),
                customer_id=customer_id,
                status=SALES_ORDER_WORKFLOW.initial_state,
                priority=Priority(priority).value,
                internal_notes=internal_notes,
                created_by_id=actor.user_id,
            )
            order.lines = self._build_lines(business_id, lines, actor)
            self._session.add(order)
            self._session.flush()
            logger.info(
                "sales_order_created",
                extra={
                    "sales_order_id": str(order.id),
                    "order_number": order.order_number,
                    "line_count": len(order.lines),
                    "priority": order.priority,
                },
            )
            return order.to_dto()

        return self._run("sales_order.create", business_id, actor, None, _create)

    def update_sales_order(
        self,
        business_id: UUID,
        order_id: UUID,
        actor: Actor,
        lines: Sequence[SalesOrderLineInput] | None = None,
        priority: Priority | None = None,
        internal_notes: str | None = None,
    ) -> SalesOrder:
        """Replace lines and/or header fields. Draft orders only."""

        def _update() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._transition(SALES_ORDER_WORKFLOW, order, "update", actor)
            if lines is not None:
                order.lines.clear()
                self._session.flush()
                order.lines.extend(self._build_lines(business_id, lines, actor))
            if priority is not None:
                order.priority = Priority(priority).value
            if internal_notes is not None:
                order.internal_notes = internal_notes
            self._session.flush()
            logger.info(
                "sales_order_updated",
                extra={"sales_order_id": str(order.id), "line_count": len(order.lines)},
            )
            return order.to_dto()

        return self._run("sales_order.update", business_id, actor, order_id, _update)

    def delete(self, business_id: UUID, order_id: UUID, actor: Actor) -> None:
        """Delete a draft order. Later orders can only be cancelled."""

        def _delete() -> None:
            order = self._load(business_id, order_id)
            if order.status not in DELETABLE_STATES:
                raise InvalidStateTransitionError(
                    self.ENTITY_TYPE, str(order.id), order.status, "delete"
                )
            self._session.delete(order)
            self._session.flush()
            logger.info(
                "sales_order_deleted",
                extra={"sales_order_id": str(order_id), "order_number": order.order_number},
            )

        self._run("sales_order.delete", business_id, actor, order_id, _delete)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def submit(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        """Draft -> Submitted. Requires >= 1 line, every quantity > 0."""
        return self._simple_transition(business_id, order_id, "submit", actor)

    def confirm(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        """
        Submitted -> Confirmed, allocating every open line.

        Raises InsufficientStockError when any product's available-to-promise
        falls short; the rollback leaves no partial reservation behind.
        """

        def _confirm() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._transition(SALES_ORDER_WORKFLOW, order, "confirm", actor)
            self._coordinator.allocate_sales_order(order, actor)
            self._session.flush()
            logger.info(
                "sales_order_confirmed",
                extra={"sales_order_id": str(order.id), "order_number": order.order_number},
            )
            return order.to_dto()

        return self._run("sales_order.confirm", business_id, actor, order_id, _confirm)

    def release_to_warehouse(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        return self._simple_transition(business_id, order_id, "release_to_warehouse", actor)

    def start_picking(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        return self._simple_transition(business_id, order_id, "start_picking", actor)

    def complete_picking(
        self,
        business_id: UUID,
        order_id: UUID,
        lines: Sequence[PickedLineInput],
        actor: Actor,
    ) -> SalesOrder:
        """
        Picking -> Picked, recording the picked quantity of every open line.

        Every non-cancelled line must be present exactly once with
        ``0 <= quantity_picked <= quantity_ordered``.
        """

        def _complete_picking() -> SalesOrder:
            order = self._load(business_id, order_id)
            if order.status != "picking":
                raise InvalidStateTransitionError(
                    self.ENTITY_TYPE, str(order.id), order.status, "complete_picking"
                )
            picked = self._validate_picking(order, lines)
            for line in order.lines:
                if line.id in picked:
                    line.quantity_picked = picked[line.id]
                    line.status = "picked"
                    line.updated_by_id = actor.user_id
            self._transition(SALES_ORDER_WORKFLOW, order, "complete_picking", actor)
            self._session.flush()
            logger.info(
                "sales_order_picked",
                extra={
                    "sales_order_id": str(order.id),
                    "short_lines": sum(
                        1 for line in order.lines
                        if line.id in picked and line.quantity_picked < line.quantity_ordered
                    ),
                },
            )
            return order.to_dto()

        return self._run("sales_order.complete_picking", business_id, actor, order_id, _complete_picking)

    def start_packing(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        return self._simple_transition(business_id, order_id, "start_packing", actor)

    def complete_packing(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        """Packing -> Packed; picked lines become packed."""

        def _complete_packing() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._transition(SALES_ORDER_WORKFLOW, order, "complete_packing", actor)
            for line in order.lines:
                if line.status == "picked":
                    line.status = "packed"
                    line.updated_by_id = actor.user_id
            self._session.flush()
            logger.info("sales_order_packed", extra={"sales_order_id": str(order.id)})
            return order.to_dto()

        return self._run("sales_order.complete_packing", business_id, actor, order_id, _complete_packing)

    def ship(
        self,
        business_id: UUID,
        order_id: UUID,
        actor: Actor,
        carrier: str | None = None,
        tracking_number: str | None = None,
        shipped_date: date | None = None,
    ) -> SalesOrder:
        """Packed -> Shipped: StockOut of each line's picked quantity."""

        def _ship() -> SalesOrder:
            order = self._load(business_id, order_id)
            movements = self._coordinator.apply_shipment(
                order, actor, carrier, tracking_number, shipped_date
            )
            logger.info(
                "sales_order_shipped",
                extra={
                    "sales_order_id": str(order.id),
                    "order_number": order.order_number,
                    "carrier": carrier,
                    "tracking_number": tracking_number,
                    "movement_count": len(movements),
                },
            )
            return order.to_dto()

        return self._run("sales_order.ship", business_id, actor, order_id, _ship)

    def deliver(
        self,
        business_id: UUID,
        order_id: UUID,
        actor: Actor,
        delivered_date: date | None = None,
    ) -> SalesOrder:
        """Shipped -> Delivered."""

        def _deliver() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._transition(SALES_ORDER_WORKFLOW, order, "deliver", actor)
            order.delivered_date = delivered_date or self._clock.today()
            self._session.flush()
            logger.info(
                "sales_order_delivered",
                extra={"sales_order_id": str(order.id), "delivered_date": order.delivered_date},
            )
            return order.to_dto()

        return self._run("sales_order.deliver", business_id, actor, order_id, _deliver)

    # =========================================================================
    # Holds and cancellation
    # =========================================================================

    def hold(self, business_id: UUID, order_id: UUID, reason: str, actor: Actor) -> SalesOrder:
        """Park an open order, remembering where it was."""

        def _hold() -> SalesOrder:
            order = self._load(business_id, order_id)
            previous = order.status
            self._transition(SALES_ORDER_WORKFLOW, order, "hold", actor)
            order.status_before_hold = previous
            order.hold_reason = reason
            self._session.flush()
            logger.info(
                "sales_order_held",
                extra={"sales_order_id": str(order.id), "held_from": previous, "reason": reason},
            )
            return order.to_dto()

        return self._run("sales_order.hold", business_id, actor, order_id, _hold)

    def release_hold(self, business_id: UUID, order_id: UUID, actor: Actor) -> SalesOrder:
        """On hold -> the status the order was held from."""

        def _release() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._transition(
                SALES_ORDER_WORKFLOW, order, "release_hold", actor,
                to_state=order.status_before_hold,
            )
            order.status_before_hold = None
            order.hold_reason = None
            self._session.flush()
            logger.info(
                "sales_order_hold_released",
                extra={"sales_order_id": str(order.id), "status": order.status},
            )
            return order.to_dto()

        return self._run("sales_order.release_hold", business_id, actor, order_id, _release)

    def cancel(self, business_id: UUID, order_id: UUID, reason: str, actor: Actor) -> SalesOrder:
        """Cancel any order not yet shipped, releasing its reservations."""

        def _cancel() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._transition(SALES_ORDER_WORKFLOW, order, "cancel", actor)
            self._coordinator.release_sales_order(order, actor)
            for line in order.lines:
                if line.status != "cancelled":
                    line.status = "cancelled"
                    line.updated_by_id = actor.user_id
            order.cancellation_reason = reason
            order.status_before_hold = None
            self._session.flush()
            logger.info(
                "sales_order_cancelled",
                extra={"sales_order_id": str(order.id), "reason": reason},
            )
            return order.to_dto()

        return self._run("sales_order.cancel", business_id, actor, order_id, _cancel)

    def cancel_line(
        self,
        business_id: UUID,
        order_id: UUID,
        line_id: UUID,
        actor: Actor,
    ) -> SalesOrder:
        """Cancel one line before picking starts, releasing its reservation."""

        def _cancel_line() -> SalesOrder:
            order = self._load(business_id, order_id)
            self._executor.execute_transition(
                SALES_ORDER_WORKFLOW, self.ENTITY_TYPE, order.id, order.status,
                "cancel_line", context=order,
            )
            line = order.line(line_id)
            if line is None:
                raise ValidationError("line_id", f"{line_id} is not a line of this order")
            if line.status == "cancelled":
                raise InvalidStateTransitionError(
                    "SalesOrderLine", str(line.id), line.status, "cancel"
                )
            self._coordinator.release_sales_order(order, actor, line_ids=(line.id,))
            line.status = "cancelled"
            line.updated_by_id = actor.user_id
            self._session.flush()
            logger.info(
                "sales_order_line_cancelled",
                extra={"sales_order_id": str(order.id), "line_id": str(line.id)},
            )
            return order.to_dto()

        return self._run("sales_order.cancel_line", business_id, actor, order_id, _cancel_line)

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, business_id: UUID, order_id: UUID) -> SalesOrder:
        return self._read(
            "sales_order.get",
            business_id,
            lambda: self._load(business_id, order_id, for_update=False).to_dto(),
        )

    def list_orders(
        self,
        business_id: UUID,
        status: SalesOrderStatus | None = None,
    ) -> list[SalesOrder]:
        def _list() -> list[SalesOrder]:
            query = select(SalesOrderModel).where(SalesOrderModel.business_id == business_id)
            if status is not None:
                query = query.where(SalesOrderModel.status == status.value)
            rows = self._session.execute(query.order_by(SalesOrderModel.order_number)).scalars()
            return [row.to_dto() for row in rows]

        return self._read("sales_order.list", business_id, _list)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _simple_transition(
        self, business_id: UUID, order_id: UUID, action: str, actor: Actor
    ) -> SalesOrder:
        def _apply() -> SalesOrder:
            order = self._load(business_id, order_id)
            previous = order.status
            self._transition(SALES_ORDER_WORKFLOW, order, action, actor)
            self._session.flush()
            logger.info(
                "sales_order_transitioned",
                extra={
                    "sales_order_id": str(order.id),
                    "action": action,
                    "from_state": previous,
                    "to_state": order.status,
                },
            )
            return order.to_dto()

        return self._run(f"sales_order.{action}", business_id, actor, order_id, _apply)

    def _build_lines(
        self,
        business_id: UUID,
        lines: Sequence[SalesOrderLineInput],
        actor: Actor,
    ) -> list[SalesOrderLineModel]:
        built: list[SalesOrderLineModel] = []
        for number, line in enumerate(lines, start=1):
            self._require_product(business_id, line.product_id)
            quantity = Decimal(line.quantity_ordered)
            unit_price = Decimal(line.unit_price)
            if quantity < _ZERO:
                raise ValidationError("quantity_ordered", f"line {number} must be >= 0")
            if unit_price < _ZERO:
                raise ValidationError("unit_price", f"line {number} must be >= 0")
            built.append(
                SalesOrderLineModel(
                    line_number=number,
                    product_id=line.product_id,
                    quantity_ordered=quantity,
                    quantity_allocated=_ZERO,
                    quantity_picked=_ZERO,
                    quantity_shipped=_ZERO,
                    unit_price=unit_price,
                    status="pending",
                    created_by_id=actor.user_id,
                )
            )
        return built

    @staticmethod
    def _validate_picking(
        order: SalesOrderModel, lines: Sequence[PickedLineInput]
    ) -> dict[UUID, Decimal]:
        open_lines = {line.id: line for line in order.lines if line.status != "cancelled"}
        picked: dict[UUID, Decimal] = {}
        for item in lines:
            line = open_lines.get(item.line_id)
            if line is None:
                raise ValidationError("line_id", f"{item.line_id} is not an open line of this order")
            if item.line_id in picked:
                raise ValidationError("line_id", f"{item.line_id} appears more than once")
            quantity = Decimal(item.quantity_picked)
            if quantity < _ZERO or quantity > line.quantity_ordered:
                raise ValidationError(
                    "quantity_picked",
                    f"line {line.line_number}: {quantity} outside 0..{line.quantity_ordered}",
                )
            picked[item.line_id] = quantity
        missing = [line.line_number for line_id, line in open_lines.items() if line_id not in picked]
        if missing:
            raise ValidationError("lines", f"picked quantity missing for lines {sorted(missing)}")
        return picked
