"""
Receiving Workflows.

State machine for receipts.  A receipt with variances is moved to
pending_validation as soon as it is captured and can only complete after
approval; a clean receipt may complete straight from in_progress.
"""

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger
from inventory_services.workflow_executor import GuardExecutor

logger = get_logger("modules.receiving.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

VARIANCE_NOTES_PRESENT = Guard(
    name="receipt_variance_notes_present",
    description="Variance notes are required to approve a receipt with variances",
)

REJECTION_REASON_PRESENT = Guard(
    name="receipt_rejection_reason_present",
    description="A reason is required to reject a receipt",
)

NO_VARIANCES = Guard(
    name="receipt_has_no_variances",
    description="Receipt has no variances pending review",
)

logger.info(
    "receiving_workflow_guards_defined",
    extra={
        "guards": [
            VARIANCE_NOTES_PRESENT.name,
            REJECTION_REASON_PRESENT.name,
            NO_VARIANCES.name,
        ],
    },
)


def _blank(text: str | None) -> bool:
    return text is None or not text.strip()


def _variance_notes_present(context) -> bool:
    return not context["receipt"].has_variances or not _blank(context["variance_notes"])


def _rejection_reason_present(context) -> bool:
    return not _blank(context["reason"])


def _no_variances(receipt) -> bool:
    return not receipt.has_variances


def register_guards(guards: GuardExecutor) -> None:
    """Register receipt guard evaluators."""
    guards.register(VARIANCE_NOTES_PRESENT.name, _variance_notes_present, field="variance_notes")
    guards.register(REJECTION_REASON_PRESENT.name, _rejection_reason_present, field="reason")
    guards.register(NO_VARIANCES.name, _no_variances)


# -----------------------------------------------------------------------------
# Receipt Workflow
# -----------------------------------------------------------------------------

RECEIPT_WORKFLOW = Workflow(
    name="receipt",
    description="Inbound receipt capture, validation and completion",
    initial_state="in_progress",
    states=(
        "in_progress",
        "pending_validation",
        "validated",
        "completed",
        "rejected",
    ),
    transitions=(
        Transition("in_progress", "in_progress", action="update"),
        Transition("in_progress", "pending_validation", action="submit_for_validation"),
        Transition("pending_validation", "validated", action="approve", guard=VARIANCE_NOTES_PRESENT),
        Transition("pending_validation", "rejected", action="reject", guard=REJECTION_REASON_PRESENT),
        Transition("validated", "completed", action="complete", moves_stock=True),
        Transition("in_progress", "completed", action="complete", guard=NO_VARIANCES, moves_stock=True),
    ),
    terminal_states=("completed", "rejected"),
)

# Receipts may be deleted in any state except these.
UNDELETABLE_STATES = ("completed",)

logger.info(
    "receiving_workflow_registered",
    extra={
        "workflow": RECEIPT_WORKFLOW.name,
        "state_count": len(RECEIPT_WORKFLOW.states),
        "transition_count": len(RECEIPT_WORKFLOW.transitions),
    },
)
