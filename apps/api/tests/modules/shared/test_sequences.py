"""
Tests for the counter transaction helpers (transient error detection and retry).
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.modules.shared.sequences import (
    RetriesExhaustedError,
    backoff_delay,
    is_transient_db_error,
    run_with_retry,
)


class _PgError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _locked() -> OperationalError:
    return OperationalError("UPDATE admission_sequences ...", {}, Exception("database is locked"))


class TestIsTransientDbError:
    """Tests for is_transient_db_error."""

    def test_sqlite_locked_is_transient(self):
        assert is_transient_db_error(_locked()) is True

    def test_sqlite_busy_is_transient(self):
        error = OperationalError("INSERT ...", {}, Exception("SQLITE_BUSY: busy"))
        assert is_transient_db_error(error) is True

    @pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
    def test_postgres_conflict_codes_are_transient(self, sqlstate):
        error = OperationalError("INSERT ...", {}, _PgError(sqlstate))
        assert is_transient_db_error(error) is True

    def test_integrity_error_is_not_transient(self):
        error = IntegrityError("INSERT ...", {}, _PgError("23505"))
        assert is_transient_db_error(error) is False

    def test_other_operational_error_is_not_transient(self):
        error = OperationalError("SELECT ...", {}, Exception("no such table: schools"))
        assert is_transient_db_error(error) is False

    def test_non_database_error_is_not_transient(self):
        assert is_transient_db_error(ValueError("database is locked")) is False


class TestBackoffDelay:
    """Backoff doubles per attempt and jitters within [ceiling/2, ceiling]."""

    @pytest.mark.parametrize("attempt,ceiling", [(1, 0.1), (2, 0.2), (3, 0.4), (5, 1.6)])
    def test_delay_within_bounds(self, attempt, ceiling):
        for _ in range(50):
            delay = backoff_delay(attempt, 0.1)
            assert ceiling / 2 <= delay <= ceiling


class TestRunWithRetry:
    """Tests for run_with_retry."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        work = AsyncMock(return_value=7)

        result = await run_with_retry("op", work, max_attempts=3, base_delay=0)

        assert result == 7
        work.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_transient_errors_then_succeeds(self):
        work = AsyncMock(side_effect=[_locked(), _locked(), 3])

        with patch("app.modules.shared.sequences.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await run_with_retry("op", work, max_attempts=5, base_delay=0.01)

        assert result == 3
        assert work.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        work = AsyncMock(side_effect=_locked())

        with patch("app.modules.shared.sequences.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RetriesExhaustedError) as exc_info:
                await run_with_retry("staff increment", work, max_attempts=4, base_delay=0.01)

        assert exc_info.value.attempts == 4
        assert exc_info.value.operation == "staff increment"
        assert isinstance(exc_info.value.last_error, OperationalError)
        assert work.await_count == 4
        # No sleep after the final attempt
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_error_propagates_immediately(self):
        error = IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed"))
        work = AsyncMock(side_effect=error)

        with pytest.raises(IntegrityError):
            await run_with_retry("op", work, max_attempts=5, base_delay=0)

        work.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_non_database_error_propagates_immediately(self):
        work = AsyncMock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            await run_with_retry("op", work, max_attempts=5, base_delay=0)

        work.assert_awaited_once()
