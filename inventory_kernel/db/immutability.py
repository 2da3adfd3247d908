"""
ORM-level immutability enforcement for the stock ledger.

StockMovement rows are append-only.  Corrections are new movements
(an adjustment), never edits, so replaying the ledger always reproduces the
product's on-hand quantity.

SQLAlchemy fires mapper events before UPDATE/DELETE SQL is emitted:

    session.flush()
         |
         v
    [before_update] --> _check_stock_movement_update() --> ImmutabilityViolationError
    [before_delete] --> _check_stock_movement_delete() --> ImmutabilityViolationError

A failed check aborts the flush; the database is never modified.

Usage:

    register_immutability_listeners()    # engine init calls this
    unregister_immutability_listeners()  # tests only
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockMovement",
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=str(target.id),
        reason="Stock movements are append-only; record a new adjustment instead",
    )


def _check_stock_movement_update(mapper, connection, target):
    _reject(target, "UPDATE")


def _check_stock_movement_delete(mapper, connection, target):
    _reject(target, "DELETE")


_LISTENERS = (
    ("before_update", _check_stock_movement_update),
    ("before_delete", _check_stock_movement_delete),
)


def register_immutability_listeners() -> None:
    """Register stock movement listeners. Safe to call repeatedly."""
    from inventory_kernel.models.stock_movement import StockMovement

    for event_name, listener_fn in _LISTENERS:
        if not event.contains(StockMovement, event_name, listener_fn):
            event.listen(StockMovement, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove stock movement listeners.

    WARNING: Only use this in tests that deliberately violate immutability.
    """
    from inventory_kernel.models.stock_movement import StockMovement

    for event_name, listener_fn in _LISTENERS:
        if event.contains(StockMovement, event_name, listener_fn):
            event.remove(StockMovement, event_name, listener_fn)
