from fastapi import APIRouter

from app.modules.admissions.router import router as admissions_router
from app.modules.auth import router as auth_router
from app.modules.learners.router import router as learners_router
from app.modules.schools.router import router as schools_router
from app.modules.staff.router import router as staff_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(schools_router, prefix="/schools", tags=["Schools"])

api_router.include_router(
    admissions_router,
    prefix="/schools/{school_id}/admission-sequences",
    tags=["Admission Sequences"],
)

api_router.include_router(
    learners_router,
    prefix="/schools/{school_id}/learners",
    tags=["Learners"],
)

api_router.include_router(
    staff_router,
    prefix="/schools/{school_id}/staff",
    tags=["Staff"],
)
