"""
School Models

Database models for school (tenant) management.
Each school is a tenant in the multi-tenant architecture; branches are
physical campuses of one school.
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.modules.admissions.codec import (
    DEFAULT_SEPARATOR,
    AdmissionFormat,
    validate_branch_code,
    validate_separator,
)
from app.modules.shared import BaseModel, TenantScopedMixin, guard_immutable


class SchoolStatus(str, Enum):
    """Status of a school tenant."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class School(BaseModel):
    """
    School tenant model.

    All tenant-scoped data (users, branches, learners, staff, counters)
    references this model via school_id. The table is scoped on its own id,
    so a tenant-bound caller can only ever see its own school row.

    ``admission_format`` and ``branch_separator`` are fixed at provisioning:
    every admission number already issued embeds them.
    """

    __tablename__ = "schools"
    __tenant_key__ = "id"
    __immutable_columns__ = ("admission_format", "branch_separator")

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        index=True,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Admission number configuration
    admission_format: Mapped[AdmissionFormat] = mapped_column(
        SAEnum(AdmissionFormat, name="admission_format"),
        nullable=False,
        default=AdmissionFormat.BRANCH_PREFIX_START,
    )
    branch_separator: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
        default=DEFAULT_SEPARATOR,
    )

    # Status
    status: Mapped[SchoolStatus] = mapped_column(
        SAEnum(SchoolStatus, name="school_status"),
        nullable=False,
        default=SchoolStatus.ACTIVE,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    branches: Mapped[list["Branch"]] = relationship(
        "Branch",
        back_populates="school",
        lazy="selectin",
        order_by="Branch.code",
    )

    @validates("admission_format")
    def _validate_admission_format(self, key: str, value: AdmissionFormat | str) -> AdmissionFormat:
        return guard_immutable(self, key, AdmissionFormat(value))

    @validates("branch_separator")
    def _validate_branch_separator(self, key: str, value: str) -> str:
        return guard_immutable(self, key, validate_separator(value))

    def __repr__(self) -> str:
        return f"<School(id={self.id}, name={self.name}, status={self.status.value})>"


class Branch(TenantScopedMixin, BaseModel):
    """
    A campus of a school.

    ``code`` is embedded verbatim in admission numbers, so it is immutable and
    unique only within its school; two schools may reuse the same code.
    """

    __tablename__ = "branches"
    __immutable_columns__ = ("code",)
    __table_args__ = (
        UniqueConstraint("school_id", "code", name="uq_branches_school_code"),
        CheckConstraint("length(code) > 0", name="ck_branches_code_not_empty"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    school: Mapped["School"] = relationship(
        "School",
        back_populates="branches",
    )

    @validates("code")
    def _validate_code(self, key: str, value: str) -> str:
        return guard_immutable(self, key, validate_branch_code(value))

    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, school_id={self.school_id}, code={self.code})>"
