"""
Staff Repository

Staff records and the per-school staff number counter. The counter is
incremented with the same single-statement upsert as admission sequences.
"""

from sqlalchemy import func

from app.modules.shared.scoping import ScopedSession
from app.modules.staff.models import Staff, StaffSequence


async def increment(db: ScopedSession, school_id: str) -> int:
    """Atomically add one to the school's staff counter and return the new value."""
    result = await db.upsert(
        StaffSequence,
        {"school_id": school_id, "current_value": 1},
        conflict_columns=("school_id",),
        set_={
            "current_value": StaffSequence.current_value + 1,
            "updated_at": func.now(),
        },
        returning=StaffSequence.current_value,
    )
    return int(result.scalar_one())


async def get_current_value(db: ScopedSession, school_id: str) -> int:
    values = await db.column_values(
        StaffSequence.current_value,
        StaffSequence.school_id == school_id,
    )
    return int(values[0]) if values else 0


async def list_for_school(db: ScopedSession, school_id: str) -> list[Staff]:
    return await db.scalars(Staff, Staff.school_id == school_id, order_by=(Staff.staff_number,))
