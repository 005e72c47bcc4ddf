"""
User Repository

Database operations for user management.

``get_by_email`` runs on an unscoped session because login happens before a
tenant scope exists. Everything else goes through a ScopedSession.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.shared.scoping import ScopedSession
from app.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: ScopedSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        school_id: str | None = None,
        branch_id: str | None = None,
        is_active: bool = True,
    ) -> User:
        """
        Create a new user record in the caller's scope.

        school_id / branch_id default to the scope's own values; passing an
        id belonging to another tenant raises TenantMismatchError.
        """
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            school_id=school_id,
            branch_id=branch_id,
            is_active=is_active,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} ({user.role.value}) in school {user.school_id}")
        return user

    @staticmethod
    async def get_by_id(db: ScopedSession, user_id: str) -> User | None:
        """Get a user by ID, confined to the caller's scope."""
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address (login lookup, unscoped)."""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_for_session(db: AsyncSession, user_id: str) -> User | None:
        """Get a user by ID while issuing a session (refresh), before any scope exists."""
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()
