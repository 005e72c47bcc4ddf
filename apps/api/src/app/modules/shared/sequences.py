"""
Counter Transaction Helpers

Per-tenant counters (admission and staff sequences) are incremented with a
single atomic upsert, each in its own short transaction. Concurrent writers
can still hit transient conflicts (SQLite "database is locked", PostgreSQL
serialization failures and deadlocks); ``run_with_retry`` re-runs the unit of
work with bounded exponential backoff and jitter.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

_SQLITE_TRANSIENT_MESSAGES = ("database is locked", "database table is locked", "busy")


class RetriesExhaustedError(Exception):
    """Raised when a unit of work keeps failing transiently."""

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


def _sqlstate(error: DBAPIError) -> str | None:
    orig = error.orig
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def is_transient_db_error(error: BaseException) -> bool:
    """True for database errors that are worth retrying as-is."""
    if not isinstance(error, DBAPIError):
        return False
    if _sqlstate(error) in TRANSIENT_SQLSTATES:
        return True
    if isinstance(error, OperationalError):
        message = str(error.orig).lower()
        return any(fragment in message for fragment in _SQLITE_TRANSIENT_MESSAGES)
    return False


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Exponential backoff with full jitter for 1-based ``attempt``."""
    ceiling = base_delay * (2 ** (attempt - 1))
    return random.uniform(ceiling / 2, ceiling)


async def run_with_retry(
    operation: str,
    work: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
) -> T:
    """
    Run ``work`` until it succeeds or ``max_attempts`` transient failures occur.

    ``work`` must open and close its own transaction so that each attempt
    starts clean. Non-transient errors propagate immediately.

    Raises:
        RetriesExhaustedError: Every attempt failed transiently
    """
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await work()
        except DBAPIError as e:
            if not is_transient_db_error(e):
                raise
            last_error = e
            if attempt == max_attempts:
                break
            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                f"Transient conflict in {operation} (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.3f}s: {e.orig}"
            )
            await asyncio.sleep(delay)

    logger.error(f"{operation} gave up after {max_attempts} attempts: {last_error}")
    raise RetriesExhaustedError(operation, max_attempts, last_error)
