"""
Hypothesis fuzzing of the document workflows and the receipt variance rule.

- Any (state, action) pair against any workflow either yields a declared
  transition or raises one of the two typed workflow errors.
- Terminal states never leave.
- The variance rule is symmetric in the sign of a price difference and
  never flags a line that matches its order.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from inventory_kernel.config import InventoryPolicy
from inventory_kernel.exceptions import InvalidStateTransitionError, ValidationError
from inventory_modules.purchasing import workflows as purchasing_workflows
from inventory_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW
from inventory_modules.receiving import workflows as receiving_workflows
from inventory_modules.receiving.orm import ReceiptLineModel
from inventory_modules.receiving.service import line_has_variance
from inventory_modules.receiving.workflows import RECEIPT_WORKFLOW
from inventory_modules.sales import workflows as sales_workflows
from inventory_modules.sales.workflows import SALES_ORDER_WORKFLOW
from inventory_services.workflow_executor import WorkflowExecutor

ALL_WORKFLOWS = (PURCHASE_ORDER_WORKFLOW, RECEIPT_WORKFLOW, SALES_ORDER_WORKFLOW)


def _executor() -> WorkflowExecutor:
    executor = WorkflowExecutor()
    purchasing_workflows.register_guards(executor.guards)
    receiving_workflows.register_guards(executor.guards)
    sales_workflows.register_guards(executor.guards)
    return executor


@st.composite
def workflow_state_action(draw):
    """Draw (workflow, state, action); the pair may or may not be declared."""
    workflow = draw(st.sampled_from(ALL_WORKFLOWS))
    if draw(st.booleans()):
        transition = draw(st.sampled_from(workflow.transitions))
        return workflow, transition.from_state, transition.action
    state = draw(st.sampled_from(workflow.states))
    action = draw(
        st.one_of(
            st.sampled_from([t.action for t in workflow.transitions]),
            st.text(alphabet=st.characters(whitelist_categories=("Ll",)), max_size=20),
        )
    )
    return workflow, state, action


quantities = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("100000"), places=3,
    allow_nan=False, allow_infinity=False,
)


class TestWorkflowFuzzing:

    @given(case=workflow_state_action())
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_transition_declared_or_typed_error(self, case):
        workflow, state, action = case
        executor = _executor()

        try:
            transition = executor.execute_transition(
                workflow, "Fuzzed", uuid4(), state, action, context=None
            )
        except (InvalidStateTransitionError, ValidationError):
            return

        assert transition in workflow.transitions
        assert transition.from_state == state
        assert transition.action == action

    @given(workflow=st.sampled_from(ALL_WORKFLOWS), action=st.text(max_size=20), data=st.data())
    @settings(max_examples=100)
    def test_terminal_states_never_transition(self, workflow, action, data):
        state = data.draw(st.sampled_from(workflow.terminal_states))

        with pytest.raises(InvalidStateTransitionError):
            _executor().execute_transition(workflow, "Fuzzed", uuid4(), state, action)


class TestVarianceRuleFuzzing:

    @given(ordered=quantities.filter(lambda q: q > 0), price=quantities)
    @settings(max_examples=200)
    def test_exact_match_never_flagged(self, ordered, price):
        line = ReceiptLineModel(
            quantity_ordered=ordered,
            quantity_outstanding=ordered,
            quantity_received=ordered,
            unit_price_ordered=price,
            condition="good",
            quantity_variance=Decimal("0"),
            price_variance=Decimal("0"),
        )

        assert not line_has_variance(line, InventoryPolicy())

    @given(difference=quantities)
    @settings(max_examples=200)
    def test_price_sign_does_not_matter(self, difference):
        policy = InventoryPolicy(price_variance_tolerance=Decimal("0.01"))

        def _flagged(variance: Decimal) -> bool:
            return line_has_variance(
                ReceiptLineModel(
                    quantity_ordered=Decimal("10"),
                    quantity_outstanding=Decimal("10"),
                    quantity_received=Decimal("10"),
                    unit_price_ordered=Decimal("5"),
                    condition="good",
                    quantity_variance=Decimal("0"),
                    price_variance=variance,
                ),
                policy,
            )

        assert _flagged(difference) == _flagged(-difference)
        assert _flagged(difference) == (difference > Decimal("0.01"))
