"""
TransactionRunner -- one atomic transaction per state transition.

Responsibility:
    Runs an operation (reads, guard evaluation, every write) inside a single
    transaction, commits on success and rolls back on any failure.  When a
    concurrent writer wins a race on a contended row the whole operation is
    re-run from the top against fresh state.

Architecture position:
    Kernel > Services -- the commit/rollback boundary used by the module
    services (purchasing, receiving, sales).  Kernel services below it are
    flush-only.

Conflict signals (retried):
    - ``StaleDataError``: a versioned row (product, order, line) was changed
      by another transaction between read and write.
    - ``OperationalError`` for lock contention: PostgreSQL deadlock /
      serialization / lock-not-available, or SQLite "database is locked".

Failure modes:
    - ConcurrencyConflictError after ``max_retries`` attempts.
    - Any other exception: rolled back and re-raised unchanged.  Business
      rule errors (InvalidStateTransitionError, InsufficientStockError, ...)
      are never retried.
"""

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.exceptions import ConcurrencyConflictError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.transaction")

T = TypeVar("T")

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_PGCODES = frozenset({"40001", "40P01", "55P03"})

_RETRYABLE_MESSAGES = (
    "database is locked",
    "deadlock detected",
    "could not serialize",
)


def is_lock_conflict(exc: OperationalError) -> bool:
    """True when an OperationalError signals lock contention, not an outage."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


class TransactionRunner:
    """
    Commit-or-rollback wrapper with whole-operation retry.

    Usage:
        runner = TransactionRunner(session, max_retries=5)
        dto = runner.run("receipt.complete", lambda: self._complete(...))
    """

    def __init__(
        self,
        session: Session,
        max_retries: int = 5,
        backoff_seconds: float = 0.01,
    ):
        self._session = session
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds

    def run(self, operation: str, fn: Callable[[], T]) -> T:
        """
        Execute ``fn`` in a transaction and commit.

        ``fn`` must be safe to call again from scratch: it re-reads every
        row it depends on.
        """
        for attempt in range(1, self._max_retries + 1):
            try:
                result = fn()
                self._session.commit()
            except (StaleDataError, OperationalError) as exc:
                self._session.rollback()
                if isinstance(exc, OperationalError) and not is_lock_conflict(exc):
                    raise
                if attempt >= self._max_retries:
                    logger.error(
                        "transaction_conflict_exhausted",
                        extra={"operation": operation, "attempts": attempt},
                    )
                    raise ConcurrencyConflictError(
                        operation, attempt, type(exc).__name__
                    ) from exc
                logger.warning(
                    "transaction_conflict_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_retries": self._max_retries,
                        "conflict": type(exc).__name__,
                    },
                )
                time.sleep(self._backoff_seconds * attempt)
                continue
            except Exception:
                self._session.rollback()
                raise

            if attempt > 1:
                logger.info(
                    "transaction_committed_after_retry",
                    extra={"operation": operation, "attempts": attempt},
                )
            return result

        raise AssertionError("unreachable")  # pragma: no cover
