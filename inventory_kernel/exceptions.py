"""
Typed Exception Hierarchy for the Inventory Kernel.

Every error the core raises is a subclass of InventoryKernelError and
carries:
  1. a TYPED class (catch by type, not message)
  2. a CODE attribute (machine-readable, API-safe)
  3. structured DATA attributes (entity ids, quantities, states)

Example:
    try:
        orders.confirm(business_id, order_id, actor)
    except InsufficientStockError as e:
        api_response(code=e.code, product=e.product_id, available=e.available)

Hierarchy:

    InventoryKernelError (base)
    |
    +-- InvalidStateTransitionError
    +-- ValidationError
    +-- NotFoundError
    +-- StockError
    |   +-- InsufficientStockError
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

The surrounding application maps codes to user text; messages here are for
logs and developers only.
"""

from decimal import Decimal


class InventoryKernelError(Exception):
    """Base exception for all inventory kernel errors."""

    code: str = "INVENTORY_KERNEL_ERROR"


# State machine exceptions


class InvalidStateTransitionError(InventoryKernelError):
    """Action is not permitted from the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in status '{current_state}'"
        )


class ValidationError(InventoryKernelError):
    """Missing or invalid input (variance notes, quantity out of range)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class NotFoundError(InventoryKernelError):
    """Referenced entity does not exist within the business scope."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str, business_id: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.business_id = business_id
        scope = f" in business {business_id}" if business_id else ""
        super().__init__(f"{entity_type} {entity_id} not found{scope}")


# Stock exceptions


class StockError(InventoryKernelError):
    """Base exception for stock ledger errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """A stock-out or reservation would exceed the available quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: Decimal, available: Decimal):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# Concurrency exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    A concurrent writer changed the same rows and retries were exhausted.

    The caller should retry the whole transition.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int, detail: str | None = None):
        self.operation = operation
        self.attempts = attempts
        self.detail = detail
        super().__init__(
            f"Concurrency conflict in {operation} after {attempts} attempt(s)"
            + (f": {detail}" if detail else "")
        )


# Immutability exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a stock movement."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
