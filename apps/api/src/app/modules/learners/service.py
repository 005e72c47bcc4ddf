"""
Learner Service Layer

Admission of learners: resolve the branch, issue an admission number from
the school's sequence, and persist the learner through the caller's scoped
session.

The admission number is issued (and committed) before the learner row is
written. If the learner insert then fails, that number is simply never
used; it is not handed out again.
"""

import logging

from sqlalchemy.exc import IntegrityError

from app.modules.admissions.service import (
    AdmissionSequenceGenerator,
    AdmissionServiceError,
    BranchNotFoundError,
)
from app.modules.learners.models import Learner
from app.modules.learners.schemas import LearnerCreate
from app.modules.schools.models import Branch
from app.modules.schools.repository import SchoolRepository
from app.modules.shared.scoping import ScopedSession

logger = logging.getLogger(__name__)


class LearnerNotFoundError(AdmissionServiceError):
    """Raised when a learner does not exist in the caller's scope."""

    def __init__(self, learner_id: str):
        super().__init__(
            message=f"Learner {learner_id} not found",
            error_code="LEARNER_NOT_FOUND",
            status_code=404,
        )


class DuplicateAdmissionNumberError(AdmissionServiceError):
    """Raised when an admission number is already on record for the school."""

    def __init__(self, admission_number: str):
        super().__init__(
            message=(
                f"Admission number {admission_number} is already in use. "
                "Run a sequence repair and retry."
            ),
            error_code="DUPLICATE_ADMISSION_NUMBER",
            status_code=409,
        )


async def _resolve_branch(
    db: ScopedSession,
    school_id: str,
    branch_code: str | None,
) -> Branch | None:
    if branch_code is not None:
        branch = await SchoolRepository.get_branch_by_code(db, school_id, branch_code)
        if branch is None:
            raise BranchNotFoundError(branch_code, school_id)
        # Rejected before a number is issued so the counter is untouched
        db.scope.check_branch(branch.id)
        return branch

    # Branch-bound callers admit into their own branch by default
    if db.scope.branch_id is not None:
        return await SchoolRepository.get_branch_by_id(db, db.scope.branch_id)
    return None


async def admit_learner(
    db: ScopedSession,
    generator: AdmissionSequenceGenerator,
    school_id: str,
    data: LearnerCreate,
) -> Learner:
    """
    Admit a learner with a freshly generated admission number.

    Raises:
        BranchNotFoundError: Unknown branch code
        BranchRequiredError: The school's format needs a branch and none applies
        SequenceConflictError: The counter stayed contended after retries
        DuplicateAdmissionNumberError: The number was already on record (counter drift)
    """
    branch = await _resolve_branch(db, school_id, data.branch_code)
    branch_code = branch.code if branch is not None else None

    admission_number = await generator.generate_admission_number(
        school_id, data.academic_year, branch_code
    )

    learner = Learner(
        school_id=school_id,
        branch_id=branch.id if branch is not None else None,
        admission_number=admission_number,
        academic_year=data.academic_year,
        first_name=data.first_name,
        last_name=data.last_name,
        date_of_birth=data.date_of_birth,
    )

    db.add(learner)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.error(
            f"Admission number {admission_number} already exists in school {school_id}; "
            "the sequence counter is behind the records"
        )
        raise DuplicateAdmissionNumberError(admission_number) from e

    await db.refresh(learner)
    logger.info(f"Admitted learner {learner.id} as {admission_number} in school {school_id}")
    return learner


async def get_learner(db: ScopedSession, learner_id: str) -> Learner:
    learner = await db.get(Learner, learner_id)
    if learner is None:
        raise LearnerNotFoundError(learner_id)
    return learner


async def list_learners(
    db: ScopedSession,
    school_id: str,
    *,
    academic_year: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Learner], int]:
    where = [Learner.school_id == school_id]
    if academic_year is not None:
        where.append(Learner.academic_year == academic_year)

    learners = await db.scalars(
        Learner,
        *where,
        order_by=(Learner.admission_number,),
        limit=limit,
        offset=offset,
    )
    total = await db.count(Learner, *where)
    return learners, total


async def remove_learner(db: ScopedSession, learner_id: str) -> None:
    """
    Delete a learner within scope.

    The admission number is not released: counters never move back.
    """
    learner = await get_learner(db, learner_id)
    await db.delete_instance(learner)
    await db.commit()
    logger.info(f"Removed learner {learner_id} ({learner.admission_number})")
