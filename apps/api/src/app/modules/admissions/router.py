"""
Admission Sequence Router

Endpoints for inspecting and administering a school's admission counters.
Mounted under ``/schools/{school_id}/admission-sequences``; the tenant guard
runs on every route, so a tenant-bound caller can only reach its own school.

Endpoints:
- GET  /{academic_year} - Current value and preview of the next number
- PUT  /{academic_year} - Reset the counter (school/platform admin, rate limited)
- POST /repair - Raise counters to the highest number on record (admin, rate limited)
- POST /validate - Check an identifier against the school's format
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from app.core.auth import require_roles
from app.core.config import settings
from app.core.rate_limit import rate_limit, tenant_action_rate_limit
from app.core.roles import ADMISSION_ROLES, SEQUENCE_ADMIN_ROLES
from app.core.tenancy import require_tenant_scope
from app.modules.admissions.schemas import (
    RepairResponse,
    SequenceResetRequest,
    SequenceStatusResponse,
    ValidateAdmissionNumberRequest,
    ValidateAdmissionNumberResponse,
)
from app.modules.admissions.service import (
    AdmissionSequenceGenerator,
    AdmissionServiceError,
    BranchRequiredError,
    get_sequence_generator,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_tenant_scope)])

AcademicYear = Annotated[int, Path(ge=1000, le=9999, description="Four digit academic year")]


def _handle_service_error(e: AdmissionServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


async def _status(
    generator: AdmissionSequenceGenerator,
    school_id: str,
    academic_year: int,
    branch_code: str | None,
) -> SequenceStatusResponse:
    current = await generator.current_value(school_id, academic_year)
    try:
        preview = await generator.preview_next_admission_number(
            school_id, academic_year, branch_code
        )
    except BranchRequiredError:
        preview = None
    return SequenceStatusResponse(
        school_id=generator.scope.require_school(),
        academic_year=academic_year,
        current_value=current,
        next_admission_number=preview,
    )


@router.get(
    "/{academic_year}",
    response_model=SequenceStatusResponse,
    dependencies=[Depends(require_roles(*ADMISSION_ROLES))],
)
async def get_sequence(
    school_id: str,
    academic_year: AcademicYear,
    branch_code: str | None = Query(None, description="Branch code for branch-prefixed formats"),
    generator: AdmissionSequenceGenerator = Depends(get_sequence_generator),
) -> SequenceStatusResponse:
    """Current counter value and the number the next admission would receive."""
    try:
        return await _status(generator, school_id, academic_year, branch_code)
    except AdmissionServiceError as e:
        _handle_service_error(e)


@router.put(
    "/{academic_year}",
    response_model=SequenceStatusResponse,
    dependencies=[Depends(require_roles(*SEQUENCE_ADMIN_ROLES))],
)
@rate_limit(
    limit=settings.admin_action_rate_limit,
    window_seconds=settings.admin_action_rate_window_seconds,
    key_func=tenant_action_rate_limit,
)
async def reset_sequence(
    request: Request,
    school_id: str,
    data: SequenceResetRequest,
    academic_year: AcademicYear,
    generator: AdmissionSequenceGenerator = Depends(get_sequence_generator),
) -> SequenceStatusResponse:
    """
    Overwrite the counter for an academic year.

    Admissions for the same year must be paused while this runs; the next
    issued number is ``value + 1``.
    """
    try:
        await generator.reset(school_id, academic_year, data.value)
        return await _status(generator, school_id, academic_year, None)
    except AdmissionServiceError as e:
        _handle_service_error(e)


@router.post(
    "/repair",
    response_model=RepairResponse,
    dependencies=[Depends(require_roles(*SEQUENCE_ADMIN_ROLES))],
)
@rate_limit(
    limit=settings.admin_action_rate_limit,
    window_seconds=settings.admin_action_rate_window_seconds,
    key_func=tenant_action_rate_limit,
)
async def repair_sequences(
    request: Request,
    school_id: str,
    generator: AdmissionSequenceGenerator = Depends(get_sequence_generator),
) -> RepairResponse:
    """Raise every counter of the school to the highest admission number on record."""
    try:
        report = await generator.repair(school_id)
    except AdmissionServiceError as e:
        _handle_service_error(e)

    return RepairResponse.from_report(report)


@router.post(
    "/validate",
    response_model=ValidateAdmissionNumberResponse,
    dependencies=[Depends(require_roles(*ADMISSION_ROLES))],
)
async def validate_admission_number(
    school_id: str,
    data: ValidateAdmissionNumberRequest,
    generator: AdmissionSequenceGenerator = Depends(get_sequence_generator),
) -> ValidateAdmissionNumberResponse:
    """Check an identifier against the school's admission format and expected year."""
    try:
        valid = await generator.validate_admission_number(
            school_id, data.admission_number, data.expected_year
        )
    except AdmissionServiceError as e:
        _handle_service_error(e)

    return ValidateAdmissionNumberResponse(
        admission_number=data.admission_number,
        expected_year=data.expected_year,
        valid=valid,
    )
