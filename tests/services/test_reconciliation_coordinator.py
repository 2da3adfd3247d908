"""
Tests for ReconciliationCoordinator cascades not covered by the module
service tests: over-receipt at completion, non-good stocking policy and PO
status derivation.
"""

from decimal import Decimal

import pytest

from inventory_kernel.config import InventoryPolicy
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.stock_ledger import StockLedger
from inventory_modules.purchasing.models import PurchaseOrderStatus
from inventory_modules.purchasing.orm import PurchaseOrderModel
from inventory_modules.receiving.models import ItemCondition, ReceiptLineInput, ReceiptStatus
from inventory_modules.receiving.service import ReceiptService
from inventory_services.reconciliation_coordinator import ReconciliationCoordinator
from inventory_services.workflow_executor import WorkflowExecutor


@pytest.fixture
def widget(create_product):
    return create_product(sku="WIDGET")


class TestApplyReceipt:

    def test_over_receipt_caught_at_completion(
        self, session, business_id, actor, widget, confirmed_purchase_order, receipt_service,
    ):
        order = confirmed_purchase_order([(widget, "100", "5")])
        line_id = order.lines[0].id
        # Both captured while 100 was still outstanding
        first = receipt_service.create_receipt(
            business_id, order.id, actor, lines=[ReceiptLineInput(line_id, Decimal("60"))]
        )
        second = receipt_service.create_receipt(
            business_id, order.id, actor, lines=[ReceiptLineInput(line_id, Decimal("60"))]
        )
        receipt_service.complete(business_id, first.id, actor)

        with pytest.raises(ValidationError) as exc_info:
            receipt_service.complete(business_id, second.id, actor)

        assert exc_info.value.field == "quantity_received"
        assert receipt_service.get(business_id, second.id).status == ReceiptStatus.IN_PROGRESS
        assert StockSelector(session).current_stock(business_id, widget.id) == Decimal("60")
        session.commit()

    def test_non_good_goods_stocked_when_policy_allows(
        self, session, business_id, actor, widget, confirmed_purchase_order, deterministic_clock,
    ):
        order = confirmed_purchase_order([(widget, "10", "5")])
        service = ReceiptService(
            session, InventoryPolicy(stock_non_good_receipts=True), deterministic_clock
        )
        receipt = service.create_receipt(
            business_id, order.id, actor,
            lines=[ReceiptLineInput(order.lines[0].id, condition=ItemCondition.DAMAGED)],
        )
        service.approve(business_id, receipt.id, "sellable as seconds", actor)

        service.complete(business_id, receipt.id, actor)

        assert StockSelector(session).current_stock(business_id, widget.id) == Decimal("10")
        session.commit()


class TestRecomputeStatus:

    def _coordinator(self, session, policy, clock):
        return ReconciliationCoordinator(
            session, StockLedger(session, policy, clock), WorkflowExecutor(), policy, clock
        )

    def test_nothing_received_leaves_status(
        self, session, actor, policy, deterministic_clock, widget, confirmed_purchase_order,
    ):
        order = confirmed_purchase_order([(widget, "10", "5")])
        model = session.get(PurchaseOrderModel, order.id)

        status = self._coordinator(session, policy, deterministic_clock).recompute_purchase_order_status(
            model, actor
        )

        assert status == PurchaseOrderStatus.CONFIRMED.value
        session.rollback()

    def test_partially_received_passes_through_receiving(
        self, session, actor, policy, deterministic_clock, create_product,
        confirmed_purchase_order,
    ):
        gadget = create_product(sku="GADGET")
        widget = create_product(sku="WIDGET-2")
        order = confirmed_purchase_order([(widget, "10", "5"), (gadget, "10", "5")])
        model = session.get(PurchaseOrderModel, order.id)
        model.lines[0].quantity_received = Decimal("10")
        model.lines[0].status = "fully_received"

        status = self._coordinator(session, policy, deterministic_clock).recompute_purchase_order_status(
            model, actor
        )

        assert status == PurchaseOrderStatus.PARTIALLY_RECEIVED.value
        session.rollback()

    def test_all_lines_closed_completes(
        self, session, actor, policy, deterministic_clock, widget, confirmed_purchase_order,
    ):
        order = confirmed_purchase_order([(widget, "10", "5")])
        model = session.get(PurchaseOrderModel, order.id)
        model.lines[0].status = "short_shipped"

        status = self._coordinator(session, policy, deterministic_clock).recompute_purchase_order_status(
            model, actor
        )

        assert status == PurchaseOrderStatus.COMPLETED.value
        assert model.completed_at == deterministic_clock.now()
        session.rollback()
