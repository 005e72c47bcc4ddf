"""
Admission Sequence Models

One counter row per (school, academic year): the highest admission
sequence number issued so far. Rows are created lazily by the first
issuance and only ever move up, except through an explicit reset.
"""

from sqlalchemy import CheckConstraint, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.shared import BaseModel, TenantScopedMixin


class AdmissionSequence(TenantScopedMixin, BaseModel):
    """Per-school, per-year admission number counter."""

    __tablename__ = "admission_sequences"
    __table_args__ = (
        UniqueConstraint("school_id", "academic_year", name="uq_admission_sequences_school_year"),
        CheckConstraint("current_value >= 0", name="ck_admission_sequences_non_negative"),
    )

    academic_year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<AdmissionSequence(school_id={self.school_id}, "
            f"year={self.academic_year}, current={self.current_value})>"
        )
