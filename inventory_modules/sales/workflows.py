"""
Sales Workflows.

State machine for sales orders.  ``confirm`` and ``ship`` are the two
transitions that reach the stock ledger (allocation and decrement); the
remaining ones are warehouse bookkeeping.
"""

from decimal import Decimal

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger
from inventory_services.workflow_executor import GuardExecutor

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_ORDERABLE_LINES = Guard(
    name="so_has_orderable_lines",
    description="Order must have at least one line and every quantity_ordered > 0",
)

ALL_LINES_PICKED = Guard(
    name="so_all_lines_picked",
    description="Every non-cancelled line must be picked before picking completes",
)

logger.info(
    "sales_workflow_guards_defined",
    extra={"guards": [HAS_ORDERABLE_LINES.name, ALL_LINES_PICKED.name]},
)

_PICKED_OR_LATER = ("picked", "packed", "shipped")


def _has_orderable_lines(order) -> bool:
    lines = [line for line in order.lines if line.status != "cancelled"]
    return bool(lines) and all(line.quantity_ordered > Decimal("0") for line in lines)


def _all_lines_picked(order) -> bool:
    return all(
        line.status in _PICKED_OR_LATER
        for line in order.lines
        if line.status != "cancelled"
    )


def register_guards(guards: GuardExecutor) -> None:
    """Register sales order guard evaluators."""
    guards.register(HAS_ORDERABLE_LINES.name, _has_orderable_lines, field="lines")
    guards.register(ALL_LINES_PICKED.name, _all_lines_picked, field="lines")


# -----------------------------------------------------------------------------
# Sales Order Workflow
# -----------------------------------------------------------------------------

_STATES = (
    "draft",
    "submitted",
    "confirmed",
    "awaiting_pickup",
    "picking",
    "picked",
    "packing",
    "packed",
    "shipped",
    "delivered",
    "cancelled",
    "on_hold",
)

# An order may be put on hold from (and released back to) these states.
HOLDABLE_STATES = (
    "draft",
    "submitted",
    "confirmed",
    "awaiting_pickup",
    "picking",
    "picked",
    "packing",
    "packed",
)

CANCELLABLE_STATES = HOLDABLE_STATES + ("on_hold",)

# Individual lines may be cancelled only before picking starts.
LINE_CANCELLABLE_STATES = ("draft", "submitted", "confirmed", "awaiting_pickup")

DELETABLE_STATES = ("draft",)

SALES_ORDER_WORKFLOW = Workflow(
    name="sales_order",
    description="Customer sales order fulfillment lifecycle",
    initial_state="draft",
    states=_STATES,
    transitions=(
        Transition("draft", "draft", action="update"),
        Transition("draft", "submitted", action="submit", guard=HAS_ORDERABLE_LINES),
        Transition("submitted", "confirmed", action="confirm", moves_stock=True),
        Transition("confirmed", "awaiting_pickup", action="release_to_warehouse"),
        Transition("confirmed", "picking", action="start_picking"),
        Transition("awaiting_pickup", "picking", action="start_picking"),
        Transition("picking", "picked", action="complete_picking", guard=ALL_LINES_PICKED),
        Transition("picked", "packing", action="start_packing"),
        Transition("packing", "packed", action="complete_packing"),
        Transition("packed", "shipped", action="ship", moves_stock=True),
        Transition("shipped", "delivered", action="deliver"),
        *(Transition(state, "on_hold", action="hold") for state in HOLDABLE_STATES),
        *(Transition("on_hold", state, action="release_hold") for state in HOLDABLE_STATES),
        *(Transition(state, state, action="cancel_line") for state in LINE_CANCELLABLE_STATES),
        *(Transition(state, "cancelled", action="cancel") for state in CANCELLABLE_STATES),
    ),
    terminal_states=("delivered", "cancelled"),
)

logger.info(
    "sales_workflow_registered",
    extra={
        "workflow": SALES_ORDER_WORKFLOW.name,
        "state_count": len(SALES_ORDER_WORKFLOW.states),
        "transition_count": len(SALES_ORDER_WORKFLOW.transitions),
    },
)
