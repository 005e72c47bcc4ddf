"""
Staff Router

Endpoints under ``/schools/{school_id}/staff``:
- POST / - Register a staff member (generates the staff number)
- GET  / - List staff
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.auth import require_roles
from app.core.roles import SEQUENCE_ADMIN_ROLES
from app.core.tenancy import require_tenant_scope
from app.modules.admissions.service import AdmissionServiceError
from app.modules.shared.scoping import ScopedSession, get_scoped_db
from app.modules.staff import repository, service
from app.modules.staff.schemas import StaffCreate, StaffResponse
from app.modules.staff.service import StaffNumberGenerator, get_staff_number_generator

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_tenant_scope)])


def _handle_service_error(e: AdmissionServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


@router.post(
    "",
    response_model=StaffResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*SEQUENCE_ADMIN_ROLES))],
)
async def register_staff(
    school_id: str,
    data: StaffCreate,
    db: ScopedSession = Depends(get_scoped_db),
    generator: StaffNumberGenerator = Depends(get_staff_number_generator),
) -> StaffResponse:
    try:
        staff = await service.register_staff(db, generator, school_id, data)
    except AdmissionServiceError as e:
        _handle_service_error(e)

    return StaffResponse.model_validate(staff)


@router.get("", response_model=list[StaffResponse])
async def list_staff(
    school_id: str,
    db: ScopedSession = Depends(get_scoped_db),
) -> list[StaffResponse]:
    staff = await repository.list_for_school(db, school_id)
    return [StaffResponse.model_validate(member) for member in staff]
