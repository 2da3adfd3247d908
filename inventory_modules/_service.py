"""
Shared plumbing for the module service facades.

Each document service (purchasing, receiving, sales) owns its transaction
boundary: every public operation runs through ``TransactionRunner`` so the
reads, guard checks and writes of one transition commit together, and a lost
update re-runs the operation from scratch.  The kernel services it composes
(StockLedger, OrderNumberSequencer, ReconciliationCoordinator) are
flush-only.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryPolicy
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import Actor
from inventory_kernel.domain.workflow import Transition, Workflow
from inventory_kernel.exceptions import NotFoundError
from inventory_kernel.logging_config import LogContext
from inventory_kernel.models.party import Party
from inventory_kernel.models.product import Product
from inventory_kernel.services.sequence_service import OrderNumberSequencer
from inventory_kernel.services.stock_ledger import StockLedger
from inventory_kernel.services.transaction import TransactionRunner
from inventory_services.reconciliation_coordinator import ReconciliationCoordinator
from inventory_services.workflow_executor import WorkflowExecutor

T = TypeVar("T")


class ModuleService:
    """Base for document services; subclasses set ENTITY_TYPE and MODEL."""

    ENTITY_TYPE: str = ""
    MODEL: Any = None

    def __init__(
        self,
        session: Session,
        policy: InventoryPolicy | None = None,
        clock: Clock | None = None,
        workflow_executor: WorkflowExecutor | None = None,
    ):
        self._session = session
        self._policy = policy or InventoryPolicy()
        self._clock = clock or SystemClock()
        self._executor = workflow_executor or WorkflowExecutor()
        self._register_guards(self._executor)
        self._sequencer = OrderNumberSequencer(session, self._policy)
        self._ledger = StockLedger(session, self._policy, self._clock)
        self._coordinator = ReconciliationCoordinator(
            session, self._ledger, self._executor, self._policy, self._clock
        )
        self._runner = TransactionRunner(session, self._policy.max_conflict_retries)

    def _register_guards(self, executor: WorkflowExecutor) -> None:
        """Hook for subclasses to register their guard evaluators."""

    # -------------------------------------------------------------------------
    # Transaction helpers
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        business_id: UUID,
        actor: Actor | None,
        document_id: UUID | None,
        fn: Callable[[], T],
    ) -> T:
        with LogContext.bind(
            business_id=business_id,
            actor_id=actor.user_id if actor is not None else None,
            document_id=document_id,
        ):
            return self._runner.run(operation, fn)

    def _read(self, operation: str, business_id: UUID, fn: Callable[[], T]) -> T:
        """Run a query and end its transaction so no lock outlives the call."""
        return self._run(operation, business_id, None, None, fn)

    def _transition(
        self,
        workflow: Workflow,
        entity: Any,
        action: str,
        actor: Actor,
        context: Any = None,
        to_state: str | None = None,
    ) -> Transition:
        transition = self._executor.execute_transition(
            workflow,
            self.ENTITY_TYPE,
            entity.id,
            entity.status,
            action,
            context=entity if context is None else context,
            to_state=to_state,
        )
        entity.status = transition.to_state
        entity.updated_by_id = actor.user_id
        return transition

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _load(self, business_id: UUID, entity_id: UUID, for_update: bool = True):
        """Load a document row (locked for update) or raise NotFoundError."""
        model = self.MODEL
        query = select(model).where(model.id == entity_id, model.business_id == business_id)
        if for_update:
            query = query.with_for_update()
        row = self._session.execute(
            query.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(self.ENTITY_TYPE, str(entity_id), str(business_id))
        return row

    def _require_product(self, business_id: UUID, product_id: UUID) -> Product:
        product = self._session.execute(
            select(Product).where(
                Product.id == product_id, Product.business_id == business_id
            )
        ).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product", str(product_id), str(business_id))
        return product

    def _require_party(self, business_id: UUID, party_id: UUID, party_type: str) -> Party:
        party = self._session.execute(
            select(Party).where(
                Party.id == party_id,
                Party.business_id == business_id,
                Party.party_type == party_type,
            )
        ).scalar_one_or_none()
        if party is None:
            raise NotFoundError(party_type.capitalize(), str(party_id), str(business_id))
        return party
