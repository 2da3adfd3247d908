"""
Tests for StockLedger: the single writer of Product.current_stock.

Every movement must satisfy new_stock == previous_stock + quantity, be
numbered by a per-product ledger_sequence, and refuse to drive stock negative
unless the policy allows it.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.config import InventoryPolicy
from inventory_kernel.domain.values import (
    MovementType,
    ReferenceType,
    StockReference,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.stock_ledger import StockLedger


@pytest.fixture
def ledger(session, policy, deterministic_clock):
    return StockLedger(session, policy, deterministic_clock)


def _receipt_ref():
    return StockReference(ReferenceType.PURCHASE_RECEIPT, uuid4(), uuid4())


class TestApplyMovement:

    def test_stock_in_increases_and_records_previous_and_new(
        self, ledger, session, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("10"))

        movement = ledger.apply_movement(
            business_id, product.id, MovementType.STOCK_IN, Decimal("60"),
            _receipt_ref(), actor,
        )
        session.commit()

        assert movement.previous_stock == Decimal("10")
        assert movement.new_stock == Decimal("70")
        assert movement.quantity == Decimal("60")
        assert movement.movement_type == "stock_in"
        assert product.current_stock == Decimal("70")

    def test_stock_out_records_negative_signed_quantity(
        self, ledger, session, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("25"))

        movement = ledger.apply_movement(
            business_id, product.id, MovementType.STOCK_OUT, Decimal("10"),
            StockReference(ReferenceType.SALES_SHIPMENT, uuid4()), actor,
        )

        assert movement.quantity == Decimal("-10")
        assert movement.new_stock == movement.previous_stock + movement.quantity
        assert product.current_stock == Decimal("15")

    def test_stock_out_beyond_on_hand_is_rejected(
        self, ledger, session, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("5"))

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.apply_movement(
                business_id, product.id, MovementType.STOCK_OUT, Decimal("6"),
                StockReference(ReferenceType.SALES_SHIPMENT, uuid4()), actor,
            )
        session.rollback()

        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert exc_info.value.requested == Decimal("6")
        assert StockSelector(session).current_stock(business_id, product.id) == Decimal("5")

    def test_negative_stock_allowed_by_policy(
        self, session, business_id, actor, create_product, deterministic_clock,
    ):
        product = create_product(stock=Decimal("2"))
        permissive = StockLedger(
            session, InventoryPolicy(allow_negative_stock=True), deterministic_clock
        )

        movement = permissive.apply_movement(
            business_id, product.id, MovementType.STOCK_OUT, Decimal("5"),
            StockReference(ReferenceType.SALES_SHIPMENT, uuid4()), actor,
        )

        assert movement.new_stock == Decimal("-3")

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
    def test_non_positive_quantity_is_rejected(
        self, ledger, business_id, actor, create_product, quantity,
    ):
        product = create_product()

        with pytest.raises(ValidationError) as exc_info:
            ledger.apply_movement(
                business_id, product.id, MovementType.STOCK_IN, quantity,
                _receipt_ref(), actor,
            )
        assert exc_info.value.field == "quantity"

    def test_unknown_product_raises_not_found(self, ledger, business_id, actor, engine):
        with pytest.raises(NotFoundError):
            ledger.apply_movement(
                business_id, uuid4(), MovementType.STOCK_IN, Decimal("1"),
                _receipt_ref(), actor,
            )

    def test_product_of_another_business_is_not_visible(
        self, ledger, actor, create_product,
    ):
        product = create_product(stock=Decimal("5"))

        with pytest.raises(NotFoundError):
            ledger.apply_movement(
                uuid4(), product.id, MovementType.STOCK_IN, Decimal("1"),
                _receipt_ref(), actor,
            )

    def test_ledger_sequence_is_per_product_and_gapless(
        self, ledger, session, business_id, actor, create_product,
    ):
        first = create_product()
        second = create_product()

        for _ in range(3):
            ledger.apply_movement(
                business_id, first.id, MovementType.STOCK_IN, Decimal("1"),
                _receipt_ref(), actor,
            )
        ledger.apply_movement(
            business_id, second.id, MovementType.STOCK_IN, Decimal("1"),
            _receipt_ref(), actor,
        )
        session.commit()

        selector = StockSelector(session)
        assert [m.ledger_sequence for m in selector.movement_history(business_id, first.id)] == [1, 2, 3]
        assert [m.ledger_sequence for m in selector.movement_history(business_id, second.id)] == [1]

    def test_reference_is_recorded(self, ledger, session, business_id, actor, create_product):
        product = create_product()
        reference = _receipt_ref()

        movement = ledger.apply_movement(
            business_id, product.id, MovementType.STOCK_IN, Decimal("4"),
            reference, actor,
        )

        assert movement.reference_type == "purchase_receipt"
        assert movement.reference_id == reference.reference_id
        assert movement.reference_line_id == reference.line_id
        assert movement.actor_id == actor.user_id


class TestWeightedAverageCost:

    def test_first_receipt_sets_cost(self, ledger, business_id, actor, create_product):
        product = create_product()

        ledger.apply_movement(
            business_id, product.id, MovementType.STOCK_IN, Decimal("10"),
            _receipt_ref(), actor, unit_cost=Decimal("4.00"),
        )

        assert product.cost_per_unit == Decimal("4.00")

    def test_later_receipt_blends_cost(self, ledger, business_id, actor, create_product):
        product = create_product(stock=Decimal("10"), cost=Decimal("4.00"))

        ledger.apply_movement(
            business_id, product.id, MovementType.STOCK_IN, Decimal("30"),
            _receipt_ref(), actor, unit_cost=Decimal("6.00"),
        )

        # (10 * 4 + 30 * 6) / 40
        assert product.cost_per_unit == Decimal("5.5")

    def test_cost_untouched_when_disabled(
        self, session, business_id, actor, create_product, deterministic_clock,
    ):
        product = create_product(stock=Decimal("10"), cost=Decimal("4.00"))
        ledger = StockLedger(
            session, InventoryPolicy(update_weighted_average_cost=False), deterministic_clock
        )

        ledger.apply_movement(
            business_id, product.id, MovementType.STOCK_IN, Decimal("30"),
            _receipt_ref(), actor, unit_cost=Decimal("6.00"),
        )

        assert product.cost_per_unit == Decimal("4.00")


class TestAdjustStock:

    def test_positive_delta_is_increasing_adjustment(
        self, ledger, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("3"))

        movement = ledger.adjust_stock(business_id, product.id, Decimal("2"), actor, "cycle count")

        assert movement.movement_type == "adjustment"
        assert movement.reference_type == "manual_adjustment"
        assert movement.quantity == Decimal("2")
        assert movement.reason == "cycle count"
        assert product.current_stock == Decimal("5")

    def test_negative_delta_is_decreasing_adjustment(
        self, ledger, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("3"))

        movement = ledger.adjust_stock(business_id, product.id, Decimal("-3"), actor, "shrinkage")

        assert movement.quantity == Decimal("-3")
        assert product.current_stock == Decimal("0")

    def test_decrease_below_zero_is_rejected(self, ledger, business_id, actor, create_product):
        product = create_product(stock=Decimal("1"))

        with pytest.raises(InsufficientStockError):
            ledger.adjust_stock(business_id, product.id, Decimal("-2"), actor, "shrinkage")

    def test_zero_delta_is_rejected(self, ledger, business_id, actor, create_product):
        product = create_product()

        with pytest.raises(ValidationError) as exc_info:
            ledger.adjust_stock(business_id, product.id, Decimal("0"), actor, "noop")
        assert exc_info.value.field == "delta"

    def test_reason_is_required(self, ledger, business_id, actor, create_product):
        product = create_product()

        with pytest.raises(ValidationError) as exc_info:
            ledger.adjust_stock(business_id, product.id, Decimal("1"), actor, "  ")
        assert exc_info.value.field == "reason"


class TestReservations:

    def test_reserve_reduces_available_to_promise_only(
        self, ledger, session, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("10"))

        ledger.reserve(business_id, product.id, Decimal("4"))
        session.commit()

        level = StockSelector(session).stock_level(business_id, product.id)
        assert level.current_stock == Decimal("10")
        assert level.quantity_reserved == Decimal("4")
        assert level.available_to_promise == Decimal("6")
        assert StockSelector(session).movement_history(business_id, product.id)[-1].ledger_sequence == 1

    def test_reserve_beyond_available_is_rejected(
        self, ledger, business_id, actor, create_product,
    ):
        product = create_product(stock=Decimal("10"))
        ledger.reserve(business_id, product.id, Decimal("8"))

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.reserve(business_id, product.id, Decimal("3"))
        assert exc_info.value.available == Decimal("2")

    def test_release_never_goes_below_zero(self, ledger, business_id, actor, create_product):
        product = create_product(stock=Decimal("10"))
        ledger.reserve(business_id, product.id, Decimal("2"))

        ledger.release(business_id, product.id, Decimal("5"))

        assert product.quantity_reserved == Decimal("0")
