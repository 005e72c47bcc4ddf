"""
Admission Sequence Schemas

Pydantic schemas for request validation and response serialization.
"""

from pydantic import BaseModel, ConfigDict, Field

from app.modules.admissions.service import RepairReport


class SequenceStatusResponse(BaseModel):
    """Current counter state for one academic year."""

    school_id: str
    academic_year: int
    current_value: int = Field(..., description="Highest sequence issued so far (0 if none)")
    next_admission_number: str | None = Field(
        None,
        description="Number the next admission would receive; omitted when a branch code is required",
    )


class SequenceResetRequest(BaseModel):
    """Administrative overwrite of a counter."""

    value: int = Field(..., ge=0, description="New current value (the next issued number is value + 1)")


class SequenceAdjustmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    academic_year: int
    previous_value: int
    new_value: int


class RepairResponse(BaseModel):
    """Result of scanning a school's admission numbers for counter drift."""

    model_config = ConfigDict(from_attributes=True)

    school_id: str
    scanned: int
    drift_detected: bool
    adjustments: list[SequenceAdjustmentResponse]
    in_sync_years: list[int]
    unparseable: list[str]

    @classmethod
    def from_report(cls, report: RepairReport) -> "RepairResponse":
        return cls.model_validate(report)


class ValidateAdmissionNumberRequest(BaseModel):
    admission_number: str = Field(..., min_length=1, max_length=64)
    expected_year: int = Field(..., ge=1000, le=9999)


class ValidateAdmissionNumberResponse(BaseModel):
    admission_number: str
    expected_year: int
    valid: bool

