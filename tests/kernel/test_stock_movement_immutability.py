"""
Stock movements are append-only.

The ORM listeners must reject any UPDATE or DELETE of a flushed
StockMovement before SQL reaches the database.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.models.stock_movement import StockMovement


@pytest.fixture
def movement(session, create_product, business_id):
    product = create_product(stock=Decimal("10"))
    return session.execute(
        select(StockMovement).where(StockMovement.product_id == product.id)
    ).scalar_one()


class TestStockMovementImmutability:

    def test_update_is_rejected(self, session, movement):
        movement_id = movement.id
        movement.reason = "rewritten history"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"
        assert exc_info.value.entity_type == "StockMovement"
        assert exc_info.value.entity_id == str(movement_id)

    def test_quantity_change_is_rejected(self, session, movement):
        movement.quantity = Decimal("1000")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_is_rejected(self, session, movement):
        session.delete(movement)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_registration_is_idempotent(self, session, movement):
        register_immutability_listeners()
        register_immutability_listeners()
        movement.reason = "again"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_unregister_lifts_the_guard(self, session, movement):
        unregister_immutability_listeners()
        try:
            movement.reason = "allowed without listeners"
            session.flush()
        finally:
            session.rollback()
            register_immutability_listeners()
