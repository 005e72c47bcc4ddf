"""
User Models

Database models for user management and authentication.
"""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.roles import UserRole
from app.modules.shared import BaseModel, BranchScopedMixin, TenantScopedMixin

if TYPE_CHECKING:
    from app.modules.schools.models import School


class User(TenantScopedMixin, BranchScopedMixin, BaseModel):
    """
    User model for authentication and authorization.

    Multi-tenant: school_id is required for all roles except PLATFORM_ADMIN.
    PLATFORM_ADMIN users are platform-level and have no school_id; they are
    therefore invisible to every tenant-bound scope.
    """

    __tablename__ = "users"

    # Overrides the mixin column: NULL for platform admins
    school_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("schools.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Authentication fields
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Profile fields
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.TEACHER,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    school: Mapped["School | None"] = relationship(
        "School",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"

    @property
    def full_name(self) -> str:
        """Return user's full name."""
        return f"{self.first_name} {self.last_name}"
