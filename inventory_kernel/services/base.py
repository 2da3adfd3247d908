"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract.  Kernel services
    receive a SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries belong to the caller (a module service running
    the operation through TransactionRunner).  A kernel service that
    commits would split the receipt/shipment cascade into separately
    committed pieces.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods; those live in selectors/.
    """

    def __init__(self, session: Session):
        self.session = session
