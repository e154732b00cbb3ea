# tests/test_transactions.py
"""
Tests for the retrying unit of work (core/transactions.py).

Uses an in-memory fake session: only commit/rollback are observed.

Run:
    pytest tests/test_transactions.py -v
"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from config import Config
from core.transactions import (
    backoffDelay,
    executeWithRetry,
    failureMessage,
    isTransient,
)
from ledger_system.errors import ConflictError, NotFoundError, TransientError


class FakeSession:
    """Counts commits and rollbacks."""

    def __init__(self, commitFailures=()):
        self.commits = 0
        self.rollbacks = 0
        self.commitFailures = list(commitFailures)

    def commit(self):
        if self.commitFailures:
            raise self.commitFailures.pop(0)
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _flaky(*errors, result="done"):
    """Work that raises the given errors in order, then returns result."""
    queue = list(errors)
    calls = []

    def _work(session):
        calls.append(session)
        if queue:
            raise queue.pop(0)
        return result

    _work.calls = calls
    return _work


def _locked():
    return OperationalError("UPDATE users", {}, Exception("database is locked"))


# =============================================================================
# TEST CLASS: Retry
# =============================================================================

class TestExecuteWithRetry:

    def test_first_attempt_succeeds(self, run):
        session = FakeSession()

        txn = run(executeWithRetry(session, _flaky(result=42)))

        assert txn.success is True
        assert txn.result == 42
        assert txn.retryCount == 0
        assert session.commits == 1
        assert session.rollbacks == 0

    @pytest.mark.parametrize("error", [
        StaleDataError("version mismatch"),
        _locked(),
        IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")),
        TransientError("busy"),
    ])
    def test_transient_errors_retried(self, run, error):
        session = FakeSession()
        work = _flaky(error)

        txn = run(executeWithRetry(session, work))

        assert txn.success is True
        assert txn.retryCount == 1
        assert len(work.calls) == 2
        assert session.rollbacks == 1

    def test_commit_conflict_retried(self, run):
        """TEST: version conflict raised at commit → work runs again."""
        session = FakeSession(commitFailures=[StaleDataError("stale")])
        work = _flaky()

        txn = run(executeWithRetry(session, work))

        assert txn.success is True
        assert len(work.calls) == 2
        assert session.commits == 1

    def test_exhaustion_reports_transient_error(self, run):
        session = FakeSession()
        work = _flaky(_locked(), _locked(), _locked(), _locked())

        txn = run(executeWithRetry(session, work, maxAttempts=3))

        assert txn.success is False
        assert isinstance(txn.error, TransientError)
        assert isinstance(txn.error.__cause__, OperationalError)
        assert txn.retryCount == 2
        assert len(work.calls) == 3
        assert session.rollbacks == 3

    def test_attempts_follow_config(self, run):
        Config.set(Config.TRANSACTION_MAX_ATTEMPTS, 5)
        work = _flaky(*[StaleDataError("x") for _ in range(4)])

        txn = run(executeWithRetry(FakeSession(), work))

        assert txn.success is True
        assert txn.retryCount == 4

    def test_ledger_error_not_retried(self, run):
        session = FakeSession()
        work = _flaky(ConflictError("Receipt is already approved"))

        txn = run(executeWithRetry(session, work))

        assert txn.success is False
        assert isinstance(txn.error, ConflictError)
        assert len(work.calls) == 1
        assert session.rollbacks == 1
        assert session.commits == 0

    def test_database_error_not_retried(self, run):
        work = _flaky(SQLAlchemyError("broken"))

        txn = run(executeWithRetry(FakeSession(), work))

        assert txn.success is False
        assert len(work.calls) == 1

    def test_programming_error_propagates(self, run):
        session = FakeSession()

        with pytest.raises(KeyError):
            run(executeWithRetry(session, _flaky(KeyError("amount"))))

        assert session.rollbacks == 1


# =============================================================================
# TEST CLASS: Helpers
# =============================================================================

class TestRetryHelpers:

    def test_backoff_grows_and_is_capped(self):
        assert 0.1 <= backoffDelay(0, 100, 5000) <= 0.11
        assert 0.4 <= backoffDelay(2, 100, 5000) <= 0.44
        assert 5.0 <= backoffDelay(10, 100, 5000) <= 5.5

    def test_is_transient(self):
        assert isTransient(StaleDataError("x"))
        assert isTransient(TransientError("x"))
        assert not isTransient(NotFoundError("x"))
        assert not isTransient(ValueError("x"))

    def test_failure_message(self):
        assert failureMessage(NotFoundError("Seller not found"), "migrate seller") == "Seller not found"
        assert failureMessage(SQLAlchemyError("boom"), "migrate seller") == "Failed to migrate seller"
