"""
Learner Schemas

Pydantic schemas for admitting and listing learners.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class LearnerCreate(BaseModel):
    """Admission request. The admission number is generated, never supplied."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    academic_year: int = Field(..., ge=1000, le=9999)
    branch_code: str | None = Field(
        None,
        max_length=20,
        pattern=r"^[A-Z0-9]+$",
        description="Branch of admission; defaults to the caller's own branch",
    )
    date_of_birth: date | None = None


class LearnerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    school_id: str
    branch_id: str | None
    admission_number: str
    academic_year: int
    first_name: str
    last_name: str
    date_of_birth: date | None
    created_at: datetime


class LearnerListResponse(BaseModel):
    items: list[LearnerResponse]
    total: int
    limit: int
    offset: int
