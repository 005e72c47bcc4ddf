"""
Staff Service Layer

Staff numbers have the fixed form ``STF-0001``: one counter per school,
shared by all branches, padded to four digits and never truncated.
"""

import logging

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import get_session_maker
from app.core.tenancy import TenantScope, require_tenant_scope
from app.modules.admissions.service import (
    AdmissionServiceError,
    BranchNotFoundError,
    SequenceConflictError,
)
from app.modules.schools.repository import SchoolRepository
from app.modules.shared.scoping import ScopedSession
from app.modules.shared.sequences import RetriesExhaustedError, run_with_retry
from app.modules.staff import repository
from app.modules.staff.models import Staff
from app.modules.staff.schemas import StaffCreate

logger = logging.getLogger(__name__)

STAFF_NUMBER_PREFIX = "STF"
STAFF_NUMBER_WIDTH = 4


class DuplicateStaffNumberError(AdmissionServiceError):
    def __init__(self, staff_number: str):
        super().__init__(
            message=f"Staff number {staff_number} is already in use",
            error_code="DUPLICATE_STAFF_NUMBER",
            status_code=409,
        )


def format_staff_number(sequence: int) -> str:
    """Render a staff number: ``STF-`` plus the sequence padded to four digits."""
    if sequence < 1:
        raise ValueError(f"Staff sequence must be positive, got {sequence}")
    return f"{STAFF_NUMBER_PREFIX}-{str(sequence).zfill(STAFF_NUMBER_WIDTH)}"


class StaffNumberGenerator:
    """Issues staff numbers from the per-school counter."""

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

    async def next(self, school_id: str) -> int:
        """
        Issue the next staff sequence number for a school.

        Raises:
            TenantMismatchError: school_id is outside the generator's scope
            SequenceConflictError: Still conflicting after every retry
        """
        scope = self._scope.with_school(school_id)

        async def attempt() -> int:
            async with self._session_maker() as session:
                async with session.begin():
                    db = ScopedSession(session, scope)
                    return await repository.increment(db, scope.school_id)

        try:
            return await run_with_retry(
                f"staff sequence increment ({school_id})",
                attempt,
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
            )
        except RetriesExhaustedError as e:
            raise SequenceConflictError(school_id) from e

    async def current_value(self, school_id: str) -> int:
        scope = self._scope.with_school(school_id)
        async with self._session_maker() as session:
            return await repository.get_current_value(ScopedSession(session, scope), scope.school_id)

    async def generate_staff_number(self, school_id: str) -> str:
        staff_number = format_staff_number(await self.next(school_id))
        logger.info(f"Generated staff number {staff_number} for school {school_id}")
        return staff_number


def get_staff_number_generator(
    scope: TenantScope = Depends(require_tenant_scope),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> StaffNumberGenerator:
    """FastAPI dependency: a staff number generator bound to the request scope."""
    return StaffNumberGenerator(session_maker, scope)


async def register_staff(
    db: ScopedSession,
    generator: StaffNumberGenerator,
    school_id: str,
    data: StaffCreate,
) -> Staff:
    """Create a staff record with a freshly issued staff number."""
    branch_id = None
    if data.branch_code is not None:
        branch = await SchoolRepository.get_branch_by_code(db, school_id, data.branch_code)
        if branch is None:
            raise BranchNotFoundError(data.branch_code, school_id)
        db.scope.check_branch(branch.id)
        branch_id = branch.id

    staff_number = await generator.generate_staff_number(school_id)
    staff = Staff(
        school_id=school_id,
        branch_id=branch_id,
        staff_number=staff_number,
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
    )

    db.add(staff)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateStaffNumberError(staff_number) from e

    await db.refresh(staff)
    return staff
