# core/transactions.py
"""
Retrying unit of work for ledger writes.

Every read-modify-write of the ledger runs through executeWithRetry():
work(session) is executed, then the session is committed. Transient
failures (optimistic version conflict, locked database, concurrent
insert of the same key) roll back and retry with exponential backoff.
Ledger errors roll back and are returned at once.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config import Config
from ledger_system.errors import LedgerError, TransientError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (StaleDataError, OperationalError, IntegrityError, TransientError)


@dataclass
class TransactionResult:
    """Outcome of executeWithRetry."""
    success: bool
    result: Any = None
    error: Optional[Exception] = None
    retryCount: int = 0


def isTransient(error: Exception) -> bool:
    return isinstance(error, TRANSIENT_ERRORS)


def backoffDelay(attempt: int, baseDelayMs: int, maxDelayMs: int) -> float:
    """Delay in seconds before retry number attempt+1 (attempt starts at 0)."""
    delay = min(baseDelayMs * (2 ** attempt), maxDelayMs)
    jitter = random.uniform(0, delay * 0.1)
    return (delay + jitter) / 1000.0


async def executeWithRetry(
        session: Session,
        work: Callable[[Session], Any],
        maxAttempts: Optional[int] = None,
        baseDelayMs: Optional[int] = None,
        maxDelayMs: Optional[int] = None,
        operation: str = "transaction"
) -> TransactionResult:
    """
    Run work(session) and commit, retrying transient failures.

    Args:
        session: SQLAlchemy session owned by the calling service
        work: Callable doing all reads and writes of the unit of work
        maxAttempts: Attempt ceiling (Config.TRANSACTION_MAX_ATTEMPTS)
        baseDelayMs: First backoff delay (Config.TRANSACTION_BASE_DELAY_MS)
        maxDelayMs: Backoff cap (Config.TRANSACTION_MAX_DELAY_MS)
        operation: Name used in log messages

    Returns:
        TransactionResult. Ledger and database errors are reported in
        .error; anything else propagates.
    """
    maxAttempts = maxAttempts or Config.get(Config.TRANSACTION_MAX_ATTEMPTS)
    baseDelayMs = baseDelayMs if baseDelayMs is not None else Config.get(Config.TRANSACTION_BASE_DELAY_MS)
    maxDelayMs = maxDelayMs if maxDelayMs is not None else Config.get(Config.TRANSACTION_MAX_DELAY_MS)

    lastError: Optional[Exception] = None

    for attempt in range(maxAttempts):
        try:
            result = work(session)
            session.commit()
            if attempt > 0:
                logger.info(f"{operation} succeeded after {attempt} retries")
            return TransactionResult(success=True, result=result, retryCount=attempt)

        except TRANSIENT_ERRORS as e:
            session.rollback()
            lastError = e
            if attempt == maxAttempts - 1:
                break
            delay = backoffDelay(attempt, baseDelayMs, maxDelayMs)
            logger.warning(
                f"{operation}: transient failure on attempt {attempt + 1}/{maxAttempts} "
                f"({type(e).__name__}: {e}), retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)

        except (LedgerError, SQLAlchemyError) as e:
            session.rollback()
            return TransactionResult(success=False, error=e, retryCount=attempt)

        except Exception:
            session.rollback()
            raise

    logger.error(f"{operation} failed after {maxAttempts} attempts: {lastError}")
    if isinstance(lastError, TransientError):
        error = lastError
    else:
        error = TransientError(f"Operation failed after {maxAttempts} attempts, please retry")
        error.__cause__ = lastError
    return TransactionResult(success=False, error=error, retryCount=maxAttempts - 1)


def failureMessage(error: Exception, operation: str) -> str:
    """
    Human-readable message for a failed TransactionResult.

    Ledger errors carry their own message; anything else is logged
    and replaced by a generic one.
    """
    if isinstance(error, LedgerError):
        return error.message

    logger.error(f"Failed to {operation}: {error}", exc_info=error)
    return f"Failed to {operation}"
