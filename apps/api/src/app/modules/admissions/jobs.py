"""
Admission Sequence Background Jobs

Scheduled drift repair: for every active school, raise each academic year's
counter to the highest admission number on record. Drift comes from data
migrations, direct database edits, or resets performed out of band.

Design Principles:
- The job is idempotent (repair never lowers a counter)
- The job opens its own database sessions under a platform scope, narrowed
  to one school per repair
- One school's failure does not stop the others
"""

import logging
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.scheduler import register_job
from app.core.tenancy import TenantScope
from app.modules.admissions.service import AdmissionSequenceGenerator, AdmissionServiceError
from app.modules.schools.repository import SchoolRepository
from app.modules.shared.scoping import ScopedSession

logger = logging.getLogger(__name__)

JOB_ID_REPAIR_SEQUENCES = "admissions_repair_sequences"


async def repair_all_sequences(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """
    Repair admission counters for every active school.

    Returns:
        Summary with counts of schools scanned, repaired, in sync, and failed
    """
    session_maker = session_maker or async_session_maker
    scope = TenantScope.platform()

    async with session_maker() as session:
        schools = await SchoolRepository.list_all(ScopedSession(session, scope), active_only=True)
        school_ids = [school.id for school in schools]

    logger.info(f"Repairing admission sequences for {len(school_ids)} schools")

    generator = AdmissionSequenceGenerator(session_maker, scope)
    summary = {
        "schools": len(school_ids),
        "repaired": 0,
        "in_sync": 0,
        "failed": 0,
        "adjustments": 0,
        "unparseable": 0,
    }

    for school_id in school_ids:
        try:
            report = await generator.repair(school_id)
        except (AdmissionServiceError, SQLAlchemyError) as e:
            summary["failed"] += 1
            logger.error(f"Admission sequence repair failed for school {school_id}: {e}")
            continue

        summary["adjustments"] += len(report.adjustments)
        summary["unparseable"] += len(report.unparseable)
        if report.drift_detected:
            summary["repaired"] += 1
        else:
            summary["in_sync"] += 1

    logger.info(
        f"Admission sequence repair complete: {summary['repaired']} repaired, "
        f"{summary['in_sync']} in sync, {summary['failed']} failed"
    )
    return summary


def register_admission_jobs() -> None:
    """Register admission background jobs with the scheduler."""
    register_job(
        job_id=JOB_ID_REPAIR_SEQUENCES,
        func=repair_all_sequences,
        trigger=IntervalTrigger(hours=settings.admission_repair_interval_hours),
    )
