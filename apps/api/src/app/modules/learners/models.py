"""
Learner Models

A learner is enrolled in one school (optionally one branch) and carries an
admission number unique within that school.
"""

from datetime import date

from sqlalchemy import Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.modules.shared import BaseModel, BranchScopedMixin, TenantScopedMixin, guard_immutable


class Learner(TenantScopedMixin, BranchScopedMixin, BaseModel):
    """Enrolled learner record."""

    __tablename__ = "learners"
    __immutable_columns__ = ("admission_number",)
    __table_args__ = (
        UniqueConstraint("school_id", "admission_number", name="uq_learners_school_admission_number"),
    )

    admission_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    academic_year: Mapped[int] = mapped_column(Integer, nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    @validates("admission_number")
    def _validate_admission_number(self, key: str, value: str) -> str:
        return guard_immutable(self, key, value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Learner(id={self.id}, admission_number={self.admission_number})>"
