"""
Tests for WorkflowExecutor and GuardExecutor.

Transition lookup, guard evaluation semantics (input guards raise
ValidationError, state guards raise InvalidStateTransitionError) and the
workflow_transition trace.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.exceptions import InvalidStateTransitionError, ValidationError
from inventory_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW
from inventory_modules.receiving.workflows import RECEIPT_WORKFLOW
from inventory_modules.sales.workflows import SALES_ORDER_WORKFLOW
from inventory_services.workflow_executor import GuardExecutor, WorkflowExecutor

NOTE_REQUIRED = Guard("note_required", "A note is required")
READY = Guard("ready", "Document must be ready")

DOOR = Workflow(
    name="door",
    description="test workflow",
    initial_state="closed",
    states=("closed", "open", "locked", "archived"),
    transitions=(
        Transition("closed", "open", action="open"),
        Transition("open", "closed", action="close", guard=NOTE_REQUIRED),
        Transition("closed", "locked", action="lock", guard=READY),
        Transition("locked", "closed", action="reset"),
        Transition("locked", "open", action="reset"),
        Transition("closed", "archived", action="archive", moves_stock=True),
    ),
    terminal_states=("archived",),
)


@pytest.fixture
def executor():
    guards = GuardExecutor()
    guards.register(NOTE_REQUIRED.name, lambda ctx: bool(ctx.get("note")), field="note")
    guards.register(READY.name, lambda ctx: ctx.get("ready", False))
    return WorkflowExecutor(guards)


class TestWorkflowDefinition:

    def test_unknown_state_in_transition_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="bad", description="", initial_state="a", states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_terminal_state_with_outgoing_transition_rejected(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="bad", description="", initial_state="a", states=("a", "b"),
                transitions=(Transition("b", "a", action="back"),),
                terminal_states=("b",),
            )

    def test_initial_state_must_be_declared(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(name="bad", description="", initial_state="z", states=("a",), transitions=())

    def test_actions_from(self):
        assert DOOR.actions_from("closed") == ("open", "lock", "archive")

    @pytest.mark.parametrize(
        "workflow", [PURCHASE_ORDER_WORKFLOW, RECEIPT_WORKFLOW, SALES_ORDER_WORKFLOW]
    )
    def test_terminal_states_are_dead_ends(self, workflow):
        for state in workflow.terminal_states:
            assert workflow.actions_from(state) == ()


class TestExecuteTransition:

    def test_allowed_transition_returned(self, executor):
        transition = executor.execute_transition(DOOR, "Door", uuid4(), "closed", "open")

        assert transition.to_state == "open"

    def test_missing_transition_raises(self, executor):
        entity_id = uuid4()

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            executor.execute_transition(DOOR, "Door", entity_id, "open", "lock")

        err = exc_info.value
        assert err.code == "INVALID_STATE_TRANSITION"
        assert err.entity_id == str(entity_id)
        assert err.current_state == "open"
        assert err.action == "lock"

    def test_failed_input_guard_raises_validation_error(self, executor):
        with pytest.raises(ValidationError) as exc_info:
            executor.execute_transition(DOOR, "Door", uuid4(), "open", "close", context={"note": ""})

        assert exc_info.value.field == "note"

    def test_failed_state_guard_raises_invalid_transition(self, executor):
        with pytest.raises(InvalidStateTransitionError):
            executor.execute_transition(DOOR, "Door", uuid4(), "closed", "lock", context={})

    def test_guard_without_evaluator_fails_closed(self):
        bare = WorkflowExecutor()

        with pytest.raises(InvalidStateTransitionError):
            bare.execute_transition(DOOR, "Door", uuid4(), "closed", "lock", context={"ready": True})

    def test_evaluator_exception_counts_as_failure(self):
        guards = GuardExecutor()
        guards.register(READY.name, lambda ctx: ctx["missing"])
        with pytest.raises(InvalidStateTransitionError):
            WorkflowExecutor(guards).execute_transition(
                DOOR, "Door", uuid4(), "closed", "lock", context={}
            )

    def test_to_state_selects_among_targets(self, executor):
        first = executor.execute_transition(DOOR, "Door", uuid4(), "locked", "reset")
        chosen = executor.execute_transition(
            DOOR, "Door", uuid4(), "locked", "reset", to_state="open"
        )

        assert first.to_state == "closed"
        assert chosen.to_state == "open"

    def test_can_transition(self, executor):
        assert executor.can_transition(DOOR, "closed", "lock", {"ready": True})
        assert not executor.can_transition(DOOR, "closed", "lock", {"ready": False})
        assert not executor.can_transition(DOOR, "archived", "open")


class TestWorkflowTrace:

    def test_success_trace(self, executor, captured_logs):
        executor.execute_transition(DOOR, "Door", uuid4(), "closed", "archive")

        traces = [r for r in captured_logs() if r["message"] == "workflow_transition"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["trace_type"] == "WORKFLOW_TRANSITION"
        assert trace["workflow"] == "door"
        assert trace["outcome"] == "success"
        assert trace["from_state"] == "closed"
        assert trace["to_state"] == "archived"
        assert trace["moves_stock"] is True

    def test_rejected_trace(self, executor, captured_logs):
        with pytest.raises(InvalidStateTransitionError):
            executor.execute_transition(DOOR, "Door", uuid4(), "archived", "open")

        trace = [r for r in captured_logs() if r["message"] == "workflow_transition"][0]
        assert trace["outcome"] == "no_transition"
