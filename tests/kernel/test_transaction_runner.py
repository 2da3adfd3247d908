"""
Tests for TransactionRunner commit, rollback and conflict retry.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.exceptions import ConcurrencyConflictError, ValidationError
from inventory_kernel.models.product import Product
from inventory_kernel.services.transaction import TransactionRunner, is_lock_conflict


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("conflict")
        self.pgcode = pgcode


def _operational(orig: Exception) -> OperationalError:
    return OperationalError("UPDATE products ...", {}, orig)


class TestIsLockConflict:

    def test_sqlite_busy(self):
        assert is_lock_conflict(_operational(Exception("database is locked")))

    @pytest.mark.parametrize("pgcode", ["40001", "40P01", "55P03"])
    def test_postgres_conflict_codes(self, pgcode):
        assert is_lock_conflict(_operational(_PgError(pgcode)))

    def test_connection_failure_is_not_a_conflict(self):
        assert not is_lock_conflict(_operational(Exception("could not connect to server")))


class TestRun:

    def test_commits_on_success(self, session, business_id, create_product):
        product = create_product(sku="RUN-1")
        runner = TransactionRunner(session)

        def _rename():
            product.name = "renamed"
            return "done"

        assert runner.run("product.rename", _rename) == "done"
        session.expire_all()
        assert session.get(Product, product.id).name == "renamed"

    def test_rolls_back_and_reraises_business_errors(self, session, create_product):
        product = create_product(sku="RUN-2")
        runner = TransactionRunner(session)
        calls = []

        def _fail():
            calls.append(1)
            product.name = "never saved"
            session.flush()
            raise ValidationError("name", "rejected")

        with pytest.raises(ValidationError):
            runner.run("product.rename", _fail)

        assert calls == [1]
        assert session.get(Product, product.id).name != "never saved"

    def test_retries_stale_data_then_succeeds(self, session, engine):
        runner = TransactionRunner(session, max_retries=3, backoff_seconds=0)
        attempts = []

        def _flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StaleDataError("version mismatch")
            return len(attempts)

        assert runner.run("flaky", _flaky) == 3

    def test_exhausted_retries_raise_concurrency_conflict(self, session, engine):
        runner = TransactionRunner(session, max_retries=2, backoff_seconds=0)

        def _always_stale():
            raise StaleDataError("version mismatch")

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            runner.run("receipt.complete", _always_stale)

        assert exc_info.value.code == "CONCURRENCY_CONFLICT"
        assert exc_info.value.attempts == 2
        assert exc_info.value.operation == "receipt.complete"

    def test_lock_busy_is_retried(self, session, engine):
        runner = TransactionRunner(session, max_retries=2, backoff_seconds=0)
        attempts = []

        def _busy_once():
            attempts.append(1)
            if len(attempts) == 1:
                raise _operational(Exception("database is locked"))
            return Decimal("1")

        assert runner.run("busy", _busy_once) == Decimal("1")
        assert len(attempts) == 2

    def test_non_conflict_operational_error_is_not_retried(self, session, engine):
        runner = TransactionRunner(session, max_retries=5, backoff_seconds=0)
        attempts = []

        def _outage():
            attempts.append(1)
            raise _operational(Exception("disk I/O error"))

        with pytest.raises(OperationalError):
            runner.run("outage", _outage)
        assert len(attempts) == 1
