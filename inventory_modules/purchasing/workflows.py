"""
Purchasing Workflows.

State machine for purchase orders.  Receiving transitions
(``begin_receiving``, ``receive_partial``, ``receive_complete``) are fired
only by the reconciliation coordinator; callers drive the rest.
"""

from decimal import Decimal

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger
from inventory_services.workflow_executor import GuardExecutor

logger = get_logger("modules.purchasing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_ORDERABLE_LINES = Guard(
    name="po_has_orderable_lines",
    description="Order must have at least one line and every quantity_ordered > 0",
)

logger.info(
    "purchasing_workflow_guards_defined",
    extra={"guards": [HAS_ORDERABLE_LINES.name]},
)


def _has_orderable_lines(order) -> bool:
    lines = list(order.lines)
    return bool(lines) and all(line.quantity_ordered > Decimal("0") for line in lines)


def register_guards(guards: GuardExecutor) -> None:
    """Register purchase order guard evaluators."""
    guards.register(HAS_ORDERABLE_LINES.name, _has_orderable_lines, field="lines")


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

_OPEN_STATES = ("draft", "submitted", "confirmed", "receiving", "partially_received")

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Supplier purchase order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "confirmed",
        "receiving",
        "partially_received",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "draft", action="update"),
        Transition("draft", "submitted", action="submit", guard=HAS_ORDERABLE_LINES),
        Transition("submitted", "confirmed", action="confirm"),
        Transition("confirmed", "receiving", action="begin_receiving"),
        Transition("receiving", "partially_received", action="receive_partial", moves_stock=True),
        Transition("receiving", "completed", action="receive_complete", moves_stock=True),
        Transition("partially_received", "partially_received", action="receive_partial", moves_stock=True),
        Transition("partially_received", "completed", action="receive_complete", moves_stock=True),
        Transition("confirmed", "confirmed", action="short_close_line"),
        Transition("receiving", "receiving", action="short_close_line"),
        Transition("partially_received", "partially_received", action="short_close_line"),
        *(Transition(state, "cancelled", action="cancel") for state in _OPEN_STATES),
    ),
    terminal_states=("completed", "cancelled"),
)

# Orders may be deleted (not just cancelled) only while in these states.
DELETABLE_STATES = ("draft",)

# A receipt may be recorded against an order only in these states.
RECEIVABLE_STATES = ("confirmed", "receiving", "partially_received")

logger.info(
    "purchasing_workflow_registered",
    extra={
        "workflow": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
    },
)
