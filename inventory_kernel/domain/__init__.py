"""Pure domain types: clock, workflow definitions and value objects."""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.values import (
    Actor,
    MovementType,
    ReferenceType,
    StockReference,
)
from inventory_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Actor",
    "Clock",
    "DeterministicClock",
    "Guard",
    "MovementType",
    "ReferenceType",
    "StockReference",
    "SystemClock",
    "Transition",
    "Workflow",
]
