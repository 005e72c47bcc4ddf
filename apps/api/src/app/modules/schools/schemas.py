"""
School Schemas

Pydantic schemas for school provisioning and branch management.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.modules.admissions.codec import (
    DEFAULT_SEPARATOR,
    AdmissionFormat,
    AdmissionNumberFormatError,
    validate_separator,
)
from app.modules.schools.models import SchoolStatus


class BranchCreate(BaseModel):
    """A branch to create; the code is fixed once created."""

    code: str = Field(..., min_length=1, max_length=20, pattern=r"^[A-Z0-9]+$")
    name: str = Field(..., min_length=1, max_length=200)


class SchoolCreate(BaseModel):
    """Provisioning request for a new school tenant."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr | None = None
    admission_format: AdmissionFormat = AdmissionFormat.BRANCH_PREFIX_START
    branch_separator: str = Field(DEFAULT_SEPARATOR, min_length=1, max_length=5)
    default_branch: BranchCreate | None = Field(
        None,
        description="Branch created together with the school",
    )

    @field_validator("branch_separator")
    @classmethod
    def _check_separator(cls, value: str) -> str:
        try:
            return validate_separator(value)
        except AdmissionNumberFormatError as e:
            raise ValueError(str(e)) from e


class BranchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    school_id: str
    code: str
    name: str
    is_active: bool


class SchoolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str | None
    admission_format: AdmissionFormat
    branch_separator: str
    status: SchoolStatus
    is_active: bool
    created_at: datetime


class SchoolDetailResponse(SchoolResponse):
    branches: list[BranchResponse] = []


class SchoolStatusUpdate(BaseModel):
    status: SchoolStatus
