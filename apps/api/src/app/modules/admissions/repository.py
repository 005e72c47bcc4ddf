"""
Admission Sequence Repository

Counter operations for admission numbers. Every function takes a
ScopedSession, so a counter is only ever read or written within the
caller's tenant.

Design Principles:
- Increment is a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING
  statement, never a read followed by a write
- The first issuance for a year creates the row inside that same statement
- raise_to is guarded by ``current_value < :value`` and can never lower a
  counter, even when it races with increment
"""

from sqlalchemy import func

from app.modules.admissions.models import AdmissionSequence
from app.modules.learners.models import Learner
from app.modules.shared.scoping import ScopedSession

_CONFLICT_COLUMNS = ("school_id", "academic_year")


async def increment(db: ScopedSession, school_id: str, academic_year: int) -> int:
    """Atomically add one to the counter (creating it at 1) and return the new value."""
    result = await db.upsert(
        AdmissionSequence,
        {"school_id": school_id, "academic_year": academic_year, "current_value": 1},
        conflict_columns=_CONFLICT_COLUMNS,
        set_={
            "current_value": AdmissionSequence.current_value + 1,
            "updated_at": func.now(),
        },
        returning=AdmissionSequence.current_value,
    )
    return int(result.scalar_one())


async def get_current_value(db: ScopedSession, school_id: str, academic_year: int) -> int:
    """Current counter value, 0 when no counter exists yet. Never creates one."""
    values = await db.column_values(
        AdmissionSequence.current_value,
        AdmissionSequence.school_id == school_id,
        AdmissionSequence.academic_year == academic_year,
    )
    return int(values[0]) if values else 0


async def set_value(db: ScopedSession, school_id: str, academic_year: int, value: int) -> None:
    """Overwrite the counter, creating it if needed."""
    await db.upsert(
        AdmissionSequence,
        {"school_id": school_id, "academic_year": academic_year, "current_value": value},
        conflict_columns=_CONFLICT_COLUMNS,
        set_={"current_value": value, "updated_at": func.now()},
    )


async def raise_to(db: ScopedSession, school_id: str, academic_year: int, value: int) -> bool:
    """
    Raise the counter to ``value`` if it is currently lower.

    Returns:
        True if a row was created or raised, False if it was already >= value
    """
    result = await db.upsert(
        AdmissionSequence,
        {"school_id": school_id, "academic_year": academic_year, "current_value": value},
        conflict_columns=_CONFLICT_COLUMNS,
        set_={"current_value": value, "updated_at": func.now()},
        where=AdmissionSequence.current_value < value,
        returning=AdmissionSequence.current_value,
    )
    return result.scalar_one_or_none() is not None


async def list_admission_numbers(db: ScopedSession, school_id: str) -> list[str]:
    """Every admission number on record for a school."""
    return await db.column_values(
        Learner.admission_number,
        Learner.school_id == school_id,
    )
