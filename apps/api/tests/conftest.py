"""
Shared fixtures.

Integration tests run against a throwaway SQLite file database (aiosqlite)
so that concurrent sessions really contend for the same counters. Unit
tests use the AsyncMock session fixtures further down.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core import rate_limit
from app.core.database import Base, get_session_maker
from app.core.tenancy import TenantScope
from app.modules.admissions.codec import AdmissionFormat
from app.modules.admissions.models import AdmissionSequence  # noqa: F401
from app.modules.learners.models import Learner  # noqa: F401
from app.modules.schools.models import Branch, School
from app.modules.shared.scoping import ScopedSession
from app.modules.staff.models import Staff, StaffSequence  # noqa: F401
from app.modules.users.models import User  # noqa: F401
from support import Tenants, scope_for


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Session factory over a fresh SQLite file with the full schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def tenants(session_maker) -> Tenants:
    """
    Three schools:

    - S1: BRANCH_PREFIX_START with branches KB and MAIN
    - S2: NO_BRANCH with one branch MAIN
    - S3: BRANCH_PREFIX_END with separator "/" and no branches
    """
    async with session_maker() as session:
        db = ScopedSession(session, TenantScope.platform())
        s1 = School(name="Kenema Boys", admission_format=AdmissionFormat.BRANCH_PREFIX_START)
        s2 = School(name="Bo Girls", admission_format=AdmissionFormat.NO_BRANCH)
        s3 = School(
            name="Makeni Academy",
            admission_format=AdmissionFormat.BRANCH_PREFIX_END,
            branch_separator="/",
        )
        db.add_all([s1, s2, s3])
        await db.flush()

        s1_kb = Branch(school_id=s1.id, code="KB", name="Kenema Campus")
        s1_main = Branch(school_id=s1.id, code="MAIN", name="Main Campus")
        s2_main = Branch(school_id=s2.id, code="MAIN", name="Main Campus")
        db.add_all([s1_kb, s1_main, s2_main])
        await db.commit()

        return Tenants(
            s1=s1.id,
            s1_kb=s1_kb.id,
            s1_main=s1_main.id,
            s2=s2.id,
            s2_main=s2_main.id,
            s3=s3.id,
        )


@pytest_asyncio.fixture
async def client(session_maker):
    """HTTP client for the app with its session factory pointed at the test database."""
    from app.main import app

    app.dependency_overrides[get_session_maker] = lambda: session_maker
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Rate limit windows must not leak between tests."""
    rate_limit._memory_store.clear()
    yield
    rate_limit._memory_store.clear()


@pytest.fixture
def mock_db():
    """Create a mock ScopedSession."""
    db = AsyncMock(spec=ScopedSession)
    db.scope = scope_for("7c9e6679-7425-40de-944b-e07fc1f90ae7")
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    return db
