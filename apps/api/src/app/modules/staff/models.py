"""
Staff Models

Staff members carry a school-unique staff number (``STF-0001``) issued from
a per-school counter.
"""

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.roles import UserRole
from app.modules.shared import BaseModel, BranchScopedMixin, TenantScopedMixin, guard_immutable


class StaffSequence(TenantScopedMixin, BaseModel):
    """Per-school staff number counter."""

    __tablename__ = "staff_sequences"
    __table_args__ = (
        UniqueConstraint("school_id", name="uq_staff_sequences_school"),
        CheckConstraint("current_value >= 0", name="ck_staff_sequences_non_negative"),
    )

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Staff(TenantScopedMixin, BranchScopedMixin, BaseModel):
    """Staff member record."""

    __tablename__ = "staff"
    __immutable_columns__ = ("staff_number",)
    __table_args__ = (
        UniqueConstraint("school_id", "staff_number", name="uq_staff_school_staff_number"),
    )

    staff_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="staff_role"),
        nullable=False,
        default=UserRole.TEACHER,
    )

    @validates("staff_number")
    def _validate_staff_number(self, key: str, value: str) -> str:
        return guard_immutable(self, key, value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, staff_number={self.staff_number})>"
