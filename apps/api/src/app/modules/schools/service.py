"""
School Service Layer

School provisioning and branch management.

Provisioning runs under a tenant-free platform scope: it is the one flow
that creates a new tenant. Branch creation runs under the school's own
scope, so the new branch is stamped with that school.
"""

import logging

from sqlalchemy.exc import IntegrityError

from app.modules.admissions.service import SchoolNotFoundError
from app.modules.schools.models import Branch, School, SchoolStatus
from app.modules.schools.repository import SchoolRepository
from app.modules.schools.schemas import BranchCreate, SchoolCreate
from app.modules.shared.scoping import ScopedSession

logger = logging.getLogger(__name__)


class SchoolServiceError(Exception):
    """Base exception for school service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class DuplicateBranchCodeError(SchoolServiceError):
    def __init__(self, code: str):
        super().__init__(
            message=f"A branch with code {code} already exists in this school",
            error_code="DUPLICATE_BRANCH_CODE",
            status_code=409,
        )


async def provision_school(db: ScopedSession, data: SchoolCreate) -> School:
    """
    Create a school and, optionally, its first branch in one transaction.

    The school's admission format and separator are fixed from here on.
    """
    school = await SchoolRepository.create(
        db,
        name=data.name,
        email=data.email,
        admission_format=data.admission_format,
        branch_separator=data.branch_separator,
    )

    if data.default_branch is not None:
        await SchoolRepository.create_branch(
            db,
            school_id=school.id,
            code=data.default_branch.code,
            name=data.default_branch.name,
        )

    await db.commit()
    await db.refresh(school)

    logger.info(f"Provisioned school {school.id} by user {db.scope.user_id}")
    return school


async def get_school(db: ScopedSession, school_id: str) -> School:
    school = await SchoolRepository.get_by_id(db, school_id)
    if school is None:
        raise SchoolNotFoundError(school_id)
    return school


async def add_branch(db: ScopedSession, school_id: str, data: BranchCreate) -> Branch:
    """Add a branch to a school; codes are unique within the school."""
    await get_school(db, school_id)

    try:
        branch = await SchoolRepository.create_branch(
            db,
            school_id=school_id,
            code=data.code,
            name=data.name,
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateBranchCodeError(data.code) from e

    return branch


async def change_status(db: ScopedSession, school_id: str, status: SchoolStatus) -> School:
    """
    Suspend, deactivate or reactivate a school.

    Inactive schools keep their records and counters; the scheduled
    sequence repair skips them.
    """
    school = await SchoolRepository.update_status(db, school_id, status)
    if school is None:
        raise SchoolNotFoundError(school_id)
    await db.commit()
    return school
