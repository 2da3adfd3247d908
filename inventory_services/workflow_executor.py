"""
inventory_services.workflow_executor -- Workflow transition execution.

Responsibility:
    Looks up the (current state, action) transition in a document workflow,
    evaluates its guard and emits a structured ``workflow_transition`` trace.
    The caller applies the returned transition's ``to_state``.

Architecture position:
    Services layer.  Used by every module service before it mutates a
    document's status.

Invariants enforced:
    - A status change happens only through a declared transition; a
      missing transition raises InvalidStateTransitionError before any write.
    - A guard that does not pass raises ValidationError (input guards) or
      InvalidStateTransitionError (state guards).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable
from uuid import UUID

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.exceptions import InvalidStateTransitionError, ValidationError
from inventory_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"


def _emit_workflow_trace(
    workflow_name: str,
    action: str,
    entity_type: str,
    entity_id: UUID,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
    moves_stock: bool = False,
) -> None:
    """Emit a structured workflow transition record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": datetime.now(UTC).isoformat(),
        "workflow": workflow_name,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
        "moves_stock": moves_stock,
    }
    if to_state is not None:
        record["to_state"] = to_state
    for key, val in LogContext.get_all().items():
        record.setdefault(key, val)
    logger.info("workflow_transition", extra=record)


# ---------------------------------------------------------------------------
# Guard evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _GuardEvaluator:
    fn: Callable[[Any], bool]
    field: str | None


class GuardExecutor:
    """Evaluates workflow guards against a context object.

    Guards are declared on transitions (name + description).  Module
    services register the evaluation logic per guard name.  An evaluator
    registered with a ``field`` is an input guard: failing it is a
    ValidationError on that field.  Without a field, failing it means the
    document is not in a state that allows the action.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, _GuardEvaluator] = {}

    def register(
        self,
        guard_name: str,
        evaluator: Callable[[Any], bool],
        field: str | None = None,
    ) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = _GuardEvaluator(evaluator, field)

    def field_for(self, guard: Guard) -> str | None:
        entry = self._evaluators.get(guard.name)
        return entry.field if entry is not None else None

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        """Evaluate a guard against context. Returns True if the guard passes."""
        entry = self._evaluators.get(guard.name)
        if entry is None:
            logger.warning("guard_no_evaluator", extra={"guard_name": guard.name})
            return False
        try:
            return bool(entry.fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.name, "error": str(e)},
            )
            return False


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class WorkflowExecutor:
    """
    Resolves and checks one transition of a document workflow.

    Usage:
        transition = executor.execute_transition(
            PURCHASE_ORDER_WORKFLOW, "PurchaseOrder", order.id,
            order.status, "submit", context=order,
        )
        order.status = transition.to_state
    """

    def __init__(self, guards: GuardExecutor | None = None) -> None:
        self._guards = guards or GuardExecutor()

    @property
    def guards(self) -> GuardExecutor:
        return self._guards

    def execute_transition(
        self,
        workflow: Workflow,
        entity_type: str,
        entity_id: UUID,
        current_state: str,
        action: str,
        context: Any = None,
        to_state: str | None = None,
    ) -> Transition:
        """
        Find and validate the transition for ``action`` from ``current_state``.

        ``to_state`` narrows the match when one action has several targets
        (releasing a hold returns to whichever state preceded it).
        """
        start = time.monotonic()
        transition = self._find_transition(workflow, current_state, action, to_state)

        if transition is None:
            _emit_workflow_trace(
                workflow.name, action, entity_type, entity_id, current_state,
                OUTCOME_NO_TRANSITION,
                f"No transition for {action!r} from {current_state!r}",
                (time.monotonic() - start) * 1000,
            )
            raise InvalidStateTransitionError(
                entity_type, str(entity_id), current_state, action
            )

        guard = transition.guard
        if guard is not None and not self._guards.evaluate(guard, context):
            _emit_workflow_trace(
                workflow.name, action, entity_type, entity_id, current_state,
                OUTCOME_GUARD_FAILED,
                f"Guard {guard.name!r} not satisfied: {guard.description}",
                (time.monotonic() - start) * 1000,
                to_state=transition.to_state,
            )
            field = self._guards.field_for(guard)
            if field is not None:
                raise ValidationError(field, guard.description)
            raise InvalidStateTransitionError(
                entity_type, str(entity_id), current_state, action
            )

        _emit_workflow_trace(
            workflow.name, action, entity_type, entity_id, current_state,
            OUTCOME_SUCCESS,
            "Transition allowed",
            (time.monotonic() - start) * 1000,
            to_state=transition.to_state,
            moves_stock=transition.moves_stock,
        )
        return transition

    def can_transition(
        self,
        workflow: Workflow,
        current_state: str,
        action: str,
        context: Any = None,
    ) -> bool:
        """Non-raising check, for callers that only need a yes/no."""
        transition = self._find_transition(workflow, current_state, action, None)
        if transition is None:
            return False
        if transition.guard is None:
            return True
        return self._guards.evaluate(transition.guard, context)

    def _find_transition(
        self,
        workflow: Workflow,
        current_state: str,
        action: str,
        to_state: str | None,
    ) -> Transition | None:
        for t in workflow.transitions:
            if t.from_state != current_state or t.action != action:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        return None
