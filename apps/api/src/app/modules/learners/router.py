"""
Learners Router

Endpoints under ``/schools/{school_id}/learners``:
- POST /                - Admit a learner (generates the admission number)
- GET  /                - List learners
- GET  /{learner_id}    - Learner details
- DELETE /{learner_id}  - Remove a learner (school/platform admin)

Every route runs the tenant guard, and every query runs through the
caller's ScopedSession.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.core.auth import require_roles
from app.core.roles import ADMISSION_ROLES, SEQUENCE_ADMIN_ROLES
from app.core.tenancy import require_tenant_scope
from app.modules.admissions.service import (
    AdmissionSequenceGenerator,
    AdmissionServiceError,
    get_sequence_generator,
)
from app.modules.learners import service
from app.modules.learners.schemas import LearnerCreate, LearnerListResponse, LearnerResponse
from app.modules.shared.scoping import ScopedSession, get_scoped_db

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
    response_model=LearnerResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMISSION_ROLES))],
)
async def admit_learner(
    school_id: str,
    data: LearnerCreate,
    db: ScopedSession = Depends(get_scoped_db),
    generator: AdmissionSequenceGenerator = Depends(get_sequence_generator),
) -> LearnerResponse:
    """Admit a learner; the admission number comes from the school's sequence."""
    try:
        learner = await service.admit_learner(db, generator, school_id, data)
    except AdmissionServiceError as e:
        _handle_service_error(e)

    return LearnerResponse.model_validate(learner)


@router.get("", response_model=LearnerListResponse)
async def list_learners(
    school_id: str,
    academic_year: int | None = Query(None, ge=1000, le=9999),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: ScopedSession = Depends(get_scoped_db),
) -> LearnerListResponse:
    learners, total = await service.list_learners(
        db, school_id, academic_year=academic_year, limit=limit, offset=offset
    )
    return LearnerListResponse(
        items=[LearnerResponse.model_validate(learner) for learner in learners],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{learner_id}", response_model=LearnerResponse)
async def get_learner(
    school_id: str,
    learner_id: str,
    db: ScopedSession = Depends(get_scoped_db),
) -> LearnerResponse:
    try:
        learner = await service.get_learner(db, learner_id)
    except AdmissionServiceError as e:
        _handle_service_error(e)

    return LearnerResponse.model_validate(learner)


@router.delete(
    "/{learner_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*SEQUENCE_ADMIN_ROLES))],
)
async def delete_learner(
    school_id: str,
    learner_id: str,
    db: ScopedSession = Depends(get_scoped_db),
) -> Response:
    try:
        await service.remove_learner(db, learner_id)
    except AdmissionServiceError as e:
        _handle_service_error(e)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
