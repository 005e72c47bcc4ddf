"""
Schools Router

Endpoints:
- POST /schools - Provision a school (platform admin)
- GET  /schools - List schools (platform admin)
- PATCH /schools/{school_id}/status - Suspend or reactivate a school (platform admin)
- GET  /schools/{school_id} - School details with branches
- GET  /schools/{school_id}/branches - List branches
- POST /schools/{school_id}/branches - Add a branch (school admin)

Security:
- Provisioning and listing are cross-tenant and require the platform admin role
- Routes with a school_id path segment go through the tenant guard; a
  tenant-bound caller naming another school receives 403
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.auth import require_platform_admin, require_roles
from app.core.roles import SEQUENCE_ADMIN_ROLES
from app.core.tenancy import require_tenant_scope
from app.modules.admissions.service import AdmissionServiceError
from app.modules.schools import service
from app.modules.schools.repository import SchoolRepository
from app.modules.schools.schemas import (
    BranchCreate,
    BranchResponse,
    SchoolCreate,
    SchoolDetailResponse,
    SchoolResponse,
    SchoolStatusUpdate,
)
from app.modules.schools.service import SchoolServiceError
from app.modules.shared.scoping import ScopedSession, get_scoped_db

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: SchoolServiceError | AdmissionServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


# ============================================
# Platform (cross-tenant) endpoints
# ============================================


@router.post(
    "",
    response_model=SchoolDetailResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_platform_admin)],
)
async def create_school(
    data: SchoolCreate,
    db: ScopedSession = Depends(get_scoped_db),
) -> SchoolDetailResponse:
    """Provision a new school tenant, optionally with its first branch."""
    school = await service.provision_school(db, data)
    return SchoolDetailResponse.model_validate(school)


@router.get(
    "",
    response_model=list[SchoolResponse],
    dependencies=[Depends(require_platform_admin)],
)
async def list_schools(
    active_only: bool = False,
    db: ScopedSession = Depends(get_scoped_db),
) -> list[SchoolResponse]:
    """List every school on the platform."""
    schools = await SchoolRepository.list_all(db, active_only=active_only)
    return [SchoolResponse.model_validate(school) for school in schools]


@router.patch(
    "/{school_id}/status",
    response_model=SchoolResponse,
    dependencies=[Depends(require_platform_admin)],
)
async def update_school_status(
    school_id: str,
    data: SchoolStatusUpdate,
    db: ScopedSession = Depends(get_scoped_db),
) -> SchoolResponse:
    try:
        school = await service.change_status(db, school_id, data.status)
    except (SchoolServiceError, AdmissionServiceError) as e:
        _handle_service_error(e)

    return SchoolResponse.model_validate(school)


# ============================================
# Tenant endpoints
# ============================================


@router.get(
    "/{school_id}",
    response_model=SchoolDetailResponse,
    dependencies=[Depends(require_tenant_scope)],
)
async def get_school(
    school_id: str,
    db: ScopedSession = Depends(get_scoped_db),
) -> SchoolDetailResponse:
    """School details, including its branches."""
    try:
        school = await service.get_school(db, school_id)
    except (SchoolServiceError, AdmissionServiceError) as e:
        _handle_service_error(e)

    return SchoolDetailResponse.model_validate(school)


@router.get(
    "/{school_id}/branches",
    response_model=list[BranchResponse],
    dependencies=[Depends(require_tenant_scope)],
)
async def list_branches(
    school_id: str,
    db: ScopedSession = Depends(get_scoped_db),
) -> list[BranchResponse]:
    branches = await SchoolRepository.list_branches(db, school_id)
    return [BranchResponse.model_validate(branch) for branch in branches]


@router.post(
    "/{school_id}/branches",
    response_model=BranchResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_tenant_scope), Depends(require_roles(*SEQUENCE_ADMIN_ROLES))],
)
async def create_branch(
    school_id: str,
    data: BranchCreate,
    db: ScopedSession = Depends(get_scoped_db),
) -> BranchResponse:
    """Add a branch. The code appears verbatim in admission numbers and cannot change."""
    try:
        branch = await service.add_branch(db, school_id, data)
    except (SchoolServiceError, AdmissionServiceError) as e:
        _handle_service_error(e)

    return BranchResponse.model_validate(branch)
