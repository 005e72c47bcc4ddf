"""
Staff Schemas
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.roles import UserRole


class StaffCreate(BaseModel):
    """Staff registration request. The staff number is generated."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.TEACHER
    branch_code: str | None = Field(None, max_length=20, pattern=r"^[A-Z0-9]+$")

    @field_validator("role")
    @classmethod
    def _not_platform_role(cls, value: UserRole) -> UserRole:
        if value is UserRole.PLATFORM_ADMIN:
            raise ValueError("Staff members cannot hold the platform admin role")
        return value


class StaffResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    school_id: str
    branch_id: str | None
    staff_number: str
    first_name: str
    last_name: str
    role: UserRole
    created_at: datetime
