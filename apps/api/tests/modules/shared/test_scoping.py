"""
Tests for ScopedSession and the flush-time tenant check.

These tests cover:
- Cross-tenant isolation for every tenant-scoped entity type (read, get by
  primary key, update, delete, insert)
- Branch confinement for branch-scoped entities
- Tenant-free operator pass-through
- Immutable columns and tenant columns on update / upsert
- The before_flush guard for objects mutated outside the wrapper
"""

from dataclasses import dataclass
from typing import Any, Callable

import pytest
from sqlalchemy import select

from app.core.roles import UserRole
from app.core.tenancy import BranchMismatchError, TenantMismatchError
from app.modules.admissions.codec import AdmissionFormat
from app.modules.admissions.models import AdmissionSequence
from app.modules.learners.models import Learner
from app.modules.schools.models import Branch, School
from app.modules.shared import ImmutableFieldError
from app.modules.shared.scoping import ScopedSession
from app.modules.staff.models import Staff, StaffSequence
from app.modules.users.models import User
from support import scope_for


@dataclass
class EntityCase:
    """How to create a row of one entity type for a school and which column to touch."""

    model: type
    build: Callable[[str], Any]
    column: str
    new_value: Any

    def __str__(self) -> str:
        return self.model.__name__


ENTITY_CASES = [
    EntityCase(
        User,
        lambda school_id: User(
            email=f"teacher-{school_id[:8]}@example.org",
            password_hash="x",
            first_name="Aminata",
            last_name="Sesay",
            role=UserRole.TEACHER,
            school_id=school_id,
        ),
        "first_name",
        "Changed",
    ),
    EntityCase(
        Branch,
        lambda school_id: Branch(school_id=school_id, code="EXTRA", name="Annex"),
        "name",
        "Changed",
    ),
    EntityCase(
        AdmissionSequence,
        lambda school_id: AdmissionSequence(
            school_id=school_id, academic_year=2025, current_value=3
        ),
        "current_value",
        999,
    ),
    EntityCase(
        Learner,
        lambda school_id: Learner(
            school_id=school_id,
            admission_number="ADM-2025-003",
            academic_year=2025,
            first_name="Ibrahim",
            last_name="Koroma",
        ),
        "first_name",
        "Changed",
    ),
    EntityCase(
        Staff,
        lambda school_id: Staff(
            school_id=school_id,
            staff_number="STF-0001",
            first_name="Mariama",
            last_name="Bangura",
            role=UserRole.TEACHER,
        ),
        "first_name",
        "Changed",
    ),
    EntityCase(
        StaffSequence,
        lambda school_id: StaffSequence(school_id=school_id, current_value=1),
        "current_value",
        999,
    ),
]


async def _seed(session_maker, case: EntityCase, school_id: str) -> str:
    async with session_maker() as session:
        db = ScopedSession(session, scope_for(None))
        instance = case.build(school_id)
        db.add(instance)
        await db.commit()
        return instance.id


async def _load(session_maker, model: type, ident: str):
    async with session_maker() as session:
        result = await session.execute(select(model).where(model.id == ident))
        return result.scalar_one_or_none()


@pytest.mark.parametrize("case", ENTITY_CASES, ids=str)
class TestCrossTenantIsolation:
    """A scope for S1 can never reach a row that belongs to S2."""

    @pytest.mark.asyncio
    async def test_reads_exclude_other_tenant(self, session_maker, tenants, case):
        """List, first and count never see S2's rows."""
        other_id = await _seed(session_maker, case, tenants.s2)
        own_id = await _seed(session_maker, case, tenants.s1)

        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            rows = await db.scalars(case.model)
            ids = {row.id for row in rows}
            assert own_id in ids
            assert other_id not in ids
            assert {row.school_id for row in rows} == {tenants.s1}
            assert await db.count(case.model) == len(rows)

    @pytest.mark.asyncio
    async def test_get_by_primary_key_of_other_tenant(self, session_maker, tenants, case):
        """Supplying S2's primary key directly still returns nothing."""
        other_id = await _seed(session_maker, case, tenants.s2)

        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            assert await db.get(case.model, other_id) is None
            assert await db.first(case.model, case.model.id == other_id) is None

    @pytest.mark.asyncio
    async def test_update_of_other_tenant_matches_nothing(self, session_maker, tenants, case):
        """An update aimed at S2's row changes no rows."""
        other_id = await _seed(session_maker, case, tenants.s2)

        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            changed = await db.update(
                case.model, case.model.id == other_id, values={case.column: case.new_value}
            )
            await db.commit()

        assert changed == 0
        row = await _load(session_maker, case.model, other_id)
        assert getattr(row, case.column) != case.new_value

    @pytest.mark.asyncio
    async def test_delete_of_other_tenant_matches_nothing(self, session_maker, tenants, case):
        """A delete aimed at S2's row removes nothing."""
        other_id = await _seed(session_maker, case, tenants.s2)

        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            removed = await db.delete(case.model, case.model.id == other_id)
            await db.commit()

        assert removed == 0
        assert await _load(session_maker, case.model, other_id) is not None

    @pytest.mark.asyncio
    async def test_insert_into_other_tenant_is_rejected(self, session_maker, tenants, case):
        """Adding a row that names S2 from an S1 scope fails closed."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(TenantMismatchError):
                db.add(case.build(tenants.s2))

    @pytest.mark.asyncio
    async def test_insert_without_school_is_stamped(self, session_maker, tenants, case):
        """A row added without a school gets the scope's school."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            instance = case.build(tenants.s1)
            instance.school_id = None
            db.add(instance)
            await db.commit()
            assert instance.school_id == tenants.s1


class TestSchoolScoping:
    """The schools table is scoped on its own id."""

    @pytest.mark.asyncio
    async def test_bound_scope_sees_only_own_school(self, session_maker, tenants):
        """Listing schools from S1 returns S1 alone; S2's id resolves to nothing."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            assert [school.id for school in await db.scalars(School)] == [tenants.s1]
            assert await db.get(School, tenants.s2) is None

    @pytest.mark.asyncio
    async def test_bound_scope_cannot_update_or_delete_other_school(self, session_maker, tenants):
        """Updates and deletes aimed at S2 match nothing."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            assert await db.update(School, School.id == tenants.s2, values={"name": "X"}) == 0
            assert await db.delete(School, School.id == tenants.s2) == 0
            await db.commit()

        school = await _load(session_maker, School, tenants.s2)
        assert school.name == "Bo Girls"

    @pytest.mark.asyncio
    async def test_bound_scope_cannot_create_schools(self, session_maker, tenants):
        """Only a tenant-free operator scope may create a school."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(TenantMismatchError):
                db.add(School(name="Rogue", admission_format=AdmissionFormat.NO_BRANCH))

    @pytest.mark.asyncio
    async def test_school_format_is_immutable(self, session_maker, tenants):
        """admission_format and branch_separator cannot be changed."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(None))
            with pytest.raises(ImmutableFieldError):
                await db.update(
                    School,
                    School.id == tenants.s1,
                    values={"admission_format": AdmissionFormat.NO_BRANCH},
                )

            school = await db.get(School, tenants.s1)
            with pytest.raises(ImmutableFieldError):
                school.branch_separator = "."
            with pytest.raises(ImmutableFieldError):
                school.admission_format = AdmissionFormat.BRANCH_PREFIX_END


class TestBranchScoping:
    """A scope that names a branch is confined to it for branch-scoped entities."""

    @pytest.mark.asyncio
    async def test_branch_scope_hides_other_branches(self, session_maker, tenants):
        """Learners of MAIN are invisible from a KB-bound scope."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(None))
            db.add_all(
                [
                    Learner(
                        school_id=tenants.s1,
                        branch_id=tenants.s1_kb,
                        admission_number="KB-ADM-2025-001",
                        academic_year=2025,
                        first_name="A",
                        last_name="B",
                    ),
                    Learner(
                        school_id=tenants.s1,
                        branch_id=tenants.s1_main,
                        admission_number="MAIN-ADM-2025-002",
                        academic_year=2025,
                        first_name="C",
                        last_name="D",
                    ),
                ]
            )
            await db.commit()

        async with session_maker() as session:
            kb = ScopedSession(session, scope_for(tenants.s1, branch_id=tenants.s1_kb))
            numbers = await kb.column_values(Learner.admission_number)
            assert numbers == ["KB-ADM-2025-001"]

            school_wide = ScopedSession(session, scope_for(tenants.s1))
            assert await school_wide.count(Learner) == 2

    @pytest.mark.asyncio
    async def test_branch_scope_stamps_and_rejects_branch(self, session_maker, tenants):
        """New rows get the scope's branch; naming another branch fails."""
        scope = scope_for(tenants.s1, branch_id=tenants.s1_kb)
        async with session_maker() as session:
            db = ScopedSession(session, scope)
            learner = Learner(
                admission_number="KB-ADM-2025-010",
                academic_year=2025,
                first_name="E",
                last_name="F",
            )
            db.add(learner)
            assert learner.school_id == tenants.s1
            assert learner.branch_id == tenants.s1_kb

            with pytest.raises(BranchMismatchError) as exc_info:
                db.add(
                    Learner(
                        branch_id=tenants.s1_main,
                        admission_number="MAIN-ADM-2025-011",
                        academic_year=2025,
                        first_name="G",
                        last_name="H",
                    )
                )
            assert exc_info.value.error_code == "BRANCH_MISMATCH"
            assert exc_info.value.target_branch_id == tenants.s1_main
            assert exc_info.value.scope_school_id == tenants.s1

    @pytest.mark.asyncio
    async def test_branch_scope_does_not_filter_school_level_entities(self, session_maker, tenants):
        """Counters belong to the school, not to a branch."""
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(None))
            db.add(AdmissionSequence(school_id=tenants.s1, academic_year=2025, current_value=4))
            await db.commit()

        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1, branch_id=tenants.s1_kb))
            assert await db.count(AdmissionSequence) == 1


class TestOperatorScope:
    """A tenant-free operator scope passes through unfiltered."""

    @pytest.mark.asyncio
    async def test_operator_sees_every_school(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(None))
            assert await db.count(School) == 3
            assert await db.count(Branch) == 3

    @pytest.mark.asyncio
    async def test_operator_narrowed_to_school_is_confined(self, session_maker, tenants):
        """Once narrowed with with_school, an operator scope filters like a bound one."""
        scope = scope_for(None).with_school(tenants.s2)
        async with session_maker() as session:
            db = ScopedSession(session, scope)
            assert [branch.school_id for branch in await db.scalars(Branch)] == [tenants.s2]


class TestUpdateGuards:
    """Update and upsert refuse to rewrite tenant or immutable columns."""

    @pytest.mark.asyncio
    async def test_update_cannot_move_row_to_other_tenant(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(TenantMismatchError):
                await db.update(Branch, Branch.id == tenants.s1_kb, values={"school_id": tenants.s2})

    @pytest.mark.asyncio
    async def test_update_cannot_change_admission_number(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(ImmutableFieldError):
                await db.update(Learner, values={"admission_number": "KB-ADM-2025-999"})

    @pytest.mark.asyncio
    async def test_update_cannot_change_branch_code(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(ImmutableFieldError):
                await db.update(Branch, Branch.id == tenants.s1_kb, values={"code": "KX"})

            branch = await db.get(Branch, tenants.s1_kb)
            with pytest.raises(ImmutableFieldError):
                branch.code = "KX"

    @pytest.mark.asyncio
    async def test_upsert_cannot_rewrite_tenant_column(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(ValueError):
                await db.upsert(
                    AdmissionSequence,
                    {"academic_year": 2025, "current_value": 1},
                    conflict_columns=("school_id", "academic_year"),
                    set_={"school_id": tenants.s2},
                )

    @pytest.mark.asyncio
    async def test_upsert_values_naming_other_tenant_are_rejected(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            with pytest.raises(TenantMismatchError):
                await db.upsert(
                    AdmissionSequence,
                    {"school_id": tenants.s2, "academic_year": 2025, "current_value": 1},
                    conflict_columns=("school_id", "academic_year"),
                    set_={"current_value": 1},
                )


class TestFlushGuard:
    """Objects changed outside the wrapper are re-checked before flush."""

    @pytest.mark.asyncio
    async def test_reassigning_school_is_blocked_at_flush(self, session_maker, tenants):
        async with session_maker() as session:
            db = ScopedSession(session, scope_for(tenants.s1))
            branch = await db.get(Branch, tenants.s1_kb)
            branch.school_id = tenants.s2

            with pytest.raises(TenantMismatchError):
                await db.flush()
            await db.rollback()

        branch = await _load(session_maker, Branch, tenants.s1_kb)
        assert branch.school_id == tenants.s1

    @pytest.mark.asyncio
    async def test_raw_add_of_foreign_row_is_blocked_at_flush(self, session_maker, tenants):
        """Even a row added to the underlying session is checked against the scope."""
        async with session_maker() as session:
            ScopedSession(session, scope_for(tenants.s1))
            session.add(Staff(school_id=tenants.s2, staff_number="STF-0009", first_name="X", last_name="Y"))

            with pytest.raises(TenantMismatchError):
                await session.flush()
            await session.rollback()
