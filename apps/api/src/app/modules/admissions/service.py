"""
Admission Sequence Service Layer

Issues admission numbers: per-school, per-academic-year sequence numbers
rendered through the school's configured format.

This module implements:
1. Sequence generation (``AdmissionSequenceGenerator.next``):
   - One atomic upsert per issuance in its own short transaction
   - First issuance for a year creates the counter in the same statement
   - Transient lock / serialization conflicts retried with bounded backoff
2. Administration:
   - ``current_value`` (read-only, never creates a counter)
   - ``reset`` (explicit overwrite; callers must stop admissions meanwhile)
   - ``repair`` (raise counters to the highest number on record; never lowers)
3. Admission numbers:
   - ``generate_admission_number`` validates school and branch, issues the
     next sequence and renders it
   - ``preview_next_admission_number`` renders without issuing
   - ``validate_admission_number`` checks an identifier against the school's format

The counter is shared by every branch of a school. The generator works from
a session factory rather than a caller's session so a retry never has to
unwind the caller's transaction. A number issued for an admission that later
fails is not reused; sequences may have gaps but never duplicates.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import get_session_maker
from app.core.tenancy import TenantScope, require_tenant_scope
from app.modules.admissions import codec, repository
from app.modules.admissions.codec import AdmissionFormat, AdmissionNumberFormatError
from app.modules.schools.repository import SchoolRepository
from app.modules.shared.scoping import ScopedSession
from app.modules.shared.sequences import RetriesExhaustedError, run_with_retry

logger = logging.getLogger(__name__)


class AdmissionServiceError(Exception):
    """Base exception for admission service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class SchoolNotFoundError(AdmissionServiceError):
    """Raised when the school does not exist (or is outside the caller's scope)."""

    def __init__(self, school_id: str | None = None):
        super().__init__(
            message=f"School {school_id} not found" if school_id else "School not found",
            error_code="SCHOOL_NOT_FOUND",
            status_code=404,
        )


class BranchNotFoundError(AdmissionServiceError):
    """Raised when a branch code does not exist in the school."""

    def __init__(self, branch_code: str, school_id: str):
        super().__init__(
            message=f"Branch with code {branch_code} not found in school {school_id}",
            error_code="BRANCH_NOT_FOUND",
            status_code=404,
        )


class BranchRequiredError(AdmissionServiceError):
    """Raised when the school's format embeds a branch code but none was given."""

    def __init__(self, admission_format: AdmissionFormat):
        super().__init__(
            message=f"Admission format {admission_format.value} requires a branch code",
            error_code="BRANCH_REQUIRED",
            status_code=400,
        )


class InvalidSequenceValueError(AdmissionServiceError):
    """Raised for out-of-range academic years or counter values."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="INVALID_SEQUENCE_VALUE",
            status_code=400,
        )


class SequenceConflictError(AdmissionServiceError):
    """Raised when the counter stays contended after every retry."""

    def __init__(self, school_id: str, academic_year: int | None = None):
        target = f"school {school_id} in {academic_year}" if academic_year else f"school {school_id}"
        super().__init__(
            message=f"Number sequence for {target} is busy. Please retry.",
            error_code="SEQUENCE_CONFLICT",
            status_code=503,
        )


@dataclass(frozen=True)
class SequenceAdjustment:
    """One counter raised by repair."""

    academic_year: int
    previous_value: int
    new_value: int


@dataclass
class RepairReport:
    """Outcome of a repair run for one school."""

    school_id: str
    scanned: int = 0
    adjustments: list[SequenceAdjustment] = field(default_factory=list)
    in_sync_years: list[int] = field(default_factory=list)
    unparseable: list[str] = field(default_factory=list)

    @property
    def drift_detected(self) -> bool:
        return bool(self.adjustments)


@dataclass(frozen=True)
class _SchoolFormat:
    school_id: str
    admission_format: AdmissionFormat
    separator: str


def _check_year(academic_year: int) -> None:
    if isinstance(academic_year, bool) or not isinstance(academic_year, int):
        raise InvalidSequenceValueError(f"Academic year must be an integer, got {academic_year!r}")
    if not 1000 <= academic_year <= 9999:
        raise InvalidSequenceValueError(f"Academic year {academic_year} must have four digits")


class AdmissionSequenceGenerator:
    """
    Admission number issuance for one request (or job) scope.

    Every operation takes the target school explicitly and narrows the scope
    to it; a tenant-bound scope asking for another school raises
    TenantMismatchError before touching the database.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        scope: TenantScope,
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ):
        self._session_maker = session_maker
        self._scope = scope
        self._max_attempts = max_attempts or settings.sequence_max_retries
        self._base_delay = settings.sequence_retry_base_delay if base_delay is None else base_delay

    @property
    def scope(self) -> TenantScope:
        return self._scope

    @asynccontextmanager
    async def _transaction(
        self,
        school_id: str,
        *,
        school_wide: bool = False,
    ) -> AsyncIterator[ScopedSession]:
        scope = self._scope.with_school(school_id)
        if school_wide:
            scope = scope.school_wide()
        async with self._session_maker() as session:
            async with session.begin():
                yield ScopedSession(session, scope)

    async def _retrying(self, operation: str, school_id: str, academic_year: int | None, work):
        try:
            return await run_with_retry(
                operation,
                work,
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
            )
        except RetriesExhaustedError as e:
            raise SequenceConflictError(school_id, academic_year) from e

    # ------------------------------------------------------------------
    # Counter operations
    # ------------------------------------------------------------------

    async def next(self, school_id: str, academic_year: int) -> int:
        """
        Issue the next sequence number for (school, academic year).

        Raises:
            TenantMismatchError: school_id is outside the generator's scope
            InvalidSequenceValueError: academic_year is not a four digit year
            SequenceConflictError: Still conflicting after every retry
        """
        _check_year(academic_year)

        async def attempt() -> int:
            async with self._transaction(school_id) as db:
                return await repository.increment(db, db.scope.school_id, academic_year)

        value = await self._retrying(
            f"admission sequence increment ({school_id}/{academic_year})",
            school_id,
            academic_year,
            attempt,
        )
        logger.debug(f"Issued sequence {value} for school {school_id} in {academic_year}")
        return value

    async def current_value(self, school_id: str, academic_year: int) -> int:
        """Highest number issued so far; 0 before the first issuance."""
        _check_year(academic_year)
        async with self._transaction(school_id) as db:
            return await repository.get_current_value(db, db.scope.school_id, academic_year)

    async def reset(self, school_id: str, academic_year: int, value: int) -> None:
        """
        Overwrite the counter for (school, academic year).

        Not coordinated with ``next``: the caller must make sure no
        admission is issued for the same year while a reset runs.
        """
        _check_year(academic_year)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidSequenceValueError(
                f"Sequence value must be a non-negative integer, got {value!r}"
            )

        async def attempt() -> None:
            async with self._transaction(school_id) as db:
                sid = db.scope.school_id
                if await SchoolRepository.get_by_id(db, sid) is None:
                    raise SchoolNotFoundError(school_id)
                await repository.set_value(db, sid, academic_year, value)

        await self._retrying(
            f"admission sequence reset ({school_id}/{academic_year})",
            school_id,
            academic_year,
            attempt,
        )
        logger.warning(
            f"Admission sequence for school {school_id} in {academic_year} reset to {value} "
            f"by user {self._scope.user_id}"
        )

    async def repair(self, school_id: str) -> RepairReport:
        """
        Raise each year's counter to the highest sequence found on record.

        Identifiers that do not parse under the school's format are skipped
        and reported, never guessed at. Counters are never lowered.

        Raises:
            SchoolNotFoundError: The school does not exist
        """

        async def attempt() -> RepairReport:
            async with self._transaction(school_id, school_wide=True) as db:
                sid = db.scope.school_id
                school = await SchoolRepository.get_by_id(db, sid)
                if school is None:
                    raise SchoolNotFoundError(school_id)

                report = RepairReport(school_id=sid)
                observed: dict[int, int] = {}
                for number in await repository.list_admission_numbers(db, sid):
                    report.scanned += 1
                    try:
                        parsed = codec.parse(number, school.admission_format, school.branch_separator)
                    except AdmissionNumberFormatError:
                        report.unparseable.append(number)
                        continue
                    year = parsed.academic_year
                    observed[year] = max(observed.get(year, 0), parsed.sequence)

                for year, highest in sorted(observed.items()):
                    current = await repository.get_current_value(db, sid, year)
                    if highest > current and await repository.raise_to(db, sid, year, highest):
                        report.adjustments.append(
                            SequenceAdjustment(
                                academic_year=year,
                                previous_value=current,
                                new_value=highest,
                            )
                        )
                    else:
                        report.in_sync_years.append(year)
                return report

        report = await self._retrying(
            f"admission sequence repair ({school_id})", school_id, None, attempt
        )

        for adjustment in report.adjustments:
            logger.warning(
                f"Admission sequence drift for school {report.school_id} in "
                f"{adjustment.academic_year}: raised {adjustment.previous_value} -> "
                f"{adjustment.new_value}"
            )
        if report.unparseable:
            logger.warning(
                f"Skipped {len(report.unparseable)} admission numbers in school "
                f"{report.school_id} that do not match its format"
            )
        if not report.drift_detected:
            logger.info(
                f"Admission sequences for school {report.school_id} in sync "
                f"({report.scanned} numbers scanned)"
            )
        return report

    # ------------------------------------------------------------------
    # Admission numbers
    # ------------------------------------------------------------------

    async def _school_format(
        self, school_id: str, branch_code: str | None
    ) -> tuple[_SchoolFormat, str | None]:
        async with self._transaction(school_id) as db:
            sid = db.scope.school_id
            school = await SchoolRepository.get_by_id(db, sid)
            if school is None:
                raise SchoolNotFoundError(school_id)
            fmt = _SchoolFormat(
                school_id=sid,
                admission_format=school.admission_format,
                separator=school.branch_separator,
            )

            if fmt.admission_format.includes_branch and branch_code is None:
                raise BranchRequiredError(fmt.admission_format)
            if branch_code is not None:
                branch = await SchoolRepository.get_branch_by_code(db, sid, branch_code)
                if branch is None:
                    raise BranchNotFoundError(branch_code, sid)

        code = branch_code if fmt.admission_format.includes_branch else None
        return fmt, code

    async def generate_admission_number(
        self,
        school_id: str,
        academic_year: int,
        branch_code: str | None = None,
    ) -> str:
        """
        Issue and render the next admission number.

        Args:
            school_id: Target school
            academic_year: Four digit academic year
            branch_code: Branch code; required when the school's format embeds one

        Returns:
            Rendered admission number, e.g. ``KB-ADM-2025-003``
        """
        _check_year(academic_year)
        fmt, code = await self._school_format(school_id, branch_code)
        sequence = await self.next(fmt.school_id, academic_year)
        admission_number = codec.render(
            fmt.admission_format, fmt.separator, code, academic_year, sequence
        )
        logger.info(f"Generated admission number {admission_number} for school {fmt.school_id}")
        return admission_number

    async def preview_next_admission_number(
        self,
        school_id: str,
        academic_year: int,
        branch_code: str | None = None,
    ) -> str:
        """Render the number the next issuance would produce, without issuing it."""
        _check_year(academic_year)
        fmt, code = await self._school_format(school_id, branch_code)
        current = await self.current_value(fmt.school_id, academic_year)
        return codec.render(fmt.admission_format, fmt.separator, code, academic_year, current + 1)

    async def validate_admission_number(
        self,
        school_id: str,
        identifier: str,
        expected_year: int,
    ) -> bool:
        """Check ``identifier`` against the school's own format and the expected year."""
        async with self._transaction(school_id) as db:
            school = await SchoolRepository.get_by_id(db, db.scope.school_id)
            if school is None:
                raise SchoolNotFoundError(school_id)
            admission_format = school.admission_format
            separator = school.branch_separator

        try:
            parsed = codec.parse(identifier, admission_format, separator)
        except AdmissionNumberFormatError:
            logger.debug(f"Invalid admission number format: {identifier!r}")
            return False
        return parsed.academic_year == expected_year


def get_sequence_generator(
    scope: TenantScope = Depends(require_tenant_scope),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AdmissionSequenceGenerator:
    """FastAPI dependency: a generator bound to the request's tenant scope."""
    return AdmissionSequenceGenerator(session_maker, scope)


__all__ = [
    "AdmissionSequenceGenerator",
    "get_sequence_generator",
    "RepairReport",
    "SequenceAdjustment",
    "AdmissionServiceError",
    "SchoolNotFoundError",
    "BranchNotFoundError",
    "BranchRequiredError",
    "InvalidSequenceValueError",
    "SequenceConflictError",
]
