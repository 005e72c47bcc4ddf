"""
School Repository

Database operations for schools and their branches. All reads and writes go
through a ScopedSession: a tenant-bound caller sees only its own school row
and branches, a platform scope sees every school.
"""

import logging

from app.modules.admissions.codec import DEFAULT_SEPARATOR, AdmissionFormat
from app.modules.schools.models import Branch, School, SchoolStatus
from app.modules.shared.scoping import ScopedSession

logger = logging.getLogger(__name__)


class SchoolRepository:
    """Repository for school and branch database operations."""

    @staticmethod
    async def create(
        db: ScopedSession,
        *,
        name: str,
        admission_format: AdmissionFormat,
        branch_separator: str = DEFAULT_SEPARATOR,
        email: str | None = None,
    ) -> School:
        """
        Create a new school record.

        Args:
            db: Scoped session (platform scope; bound scopes cannot create schools)
            name: School name
            admission_format: Admission number layout, fixed for the school's lifetime
            branch_separator: Separator between admission number parts
            email: School email address (optional)

        Returns:
            Created School instance
        """
        school = School(
            name=name,
            email=email,
            admission_format=admission_format,
            branch_separator=branch_separator,
            status=SchoolStatus.ACTIVE,
            is_active=True,
        )

        db.add(school)
        await db.flush()
        await db.refresh(school)

        logger.info(
            f"Created school: {school.id} - {school.name} "
            f"(format {school.admission_format.value}, separator {school.branch_separator!r})"
        )
        return school

    @staticmethod
    async def get_by_id(db: ScopedSession, school_id: str) -> School | None:
        """Get a school by ID within the caller's scope."""
        return await db.get(School, school_id)

    @staticmethod
    async def list_all(db: ScopedSession, *, active_only: bool = False) -> list[School]:
        """List schools visible to the caller's scope."""
        where = [School.is_active.is_(True)] if active_only else []
        return await db.scalars(School, *where, order_by=(School.name,))

    @staticmethod
    async def update_status(
        db: ScopedSession,
        school_id: str,
        status: SchoolStatus,
    ) -> School | None:
        """
        Update a school's status.

        Returns:
            Updated School instance or None if not found
        """
        school = await SchoolRepository.get_by_id(db, school_id)
        if not school:
            return None

        school.status = status
        school.is_active = status == SchoolStatus.ACTIVE

        await db.flush()
        await db.refresh(school)

        logger.info(f"Updated school {school_id} status to {status.value}")
        return school

    @staticmethod
    async def create_branch(
        db: ScopedSession,
        *,
        school_id: str,
        code: str,
        name: str,
    ) -> Branch:
        """Create a branch; ``code`` is validated and fixed from here on."""
        branch = Branch(school_id=school_id, code=code, name=name)

        db.add(branch)
        await db.flush()
        await db.refresh(branch)

        logger.info(f"Created branch {branch.code} ({branch.id}) in school {branch.school_id}")
        return branch

    @staticmethod
    async def get_branch_by_id(db: ScopedSession, branch_id: str) -> Branch | None:
        return await db.get(Branch, branch_id)

    @staticmethod
    async def get_branch_by_code(db: ScopedSession, school_id: str, code: str) -> Branch | None:
        """Branch codes are unique within a school only."""
        return await db.first(Branch, Branch.school_id == school_id, Branch.code == code)

    @staticmethod
    async def list_branches(db: ScopedSession, school_id: str) -> list[Branch]:
        return await db.scalars(Branch, Branch.school_id == school_id, order_by=(Branch.code,))
