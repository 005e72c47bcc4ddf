"""
Seed Platform Admin User

Creates the initial platform admin: the one tenant-free account, used to
provision schools. Credentials come from the command line or from the
PLATFORM_ADMIN_EMAIL / PLATFORM_ADMIN_PASSWORD environment variables.

Usage:
    cd apps/api
    PLATFORM_ADMIN_PASSWORD=... python scripts/seed_platform_admin.py \
        --email admin@example.org --first-name Ada --last-name Admin
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from app.core.database import async_session_maker, close_db  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.core.tenancy import TenantScope  # noqa: E402
from app.modules.shared.scoping import ScopedSession  # noqa: E402
from app.modules.users.models import UserRole  # noqa: E402
from app.modules.users.repository import UserRepository  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the platform admin account.")
    parser.add_argument("--email", default=os.environ.get("PLATFORM_ADMIN_EMAIL"))
    parser.add_argument("--first-name", default="Platform")
    parser.add_argument("--last-name", default="Admin")
    args = parser.parse_args()
    if not args.email:
        parser.error("--email or PLATFORM_ADMIN_EMAIL is required")
    return args


async def seed_platform_admin(email: str, password: str, first_name: str, last_name: str) -> None:
    """Create the platform admin user if it doesn't exist."""
    email = email.lower()

    async with async_session_maker() as session:
        existing_user = await UserRepository.get_by_email(session, email)
        if existing_user:
            print(f"Platform admin already exists: {email}")
            print(f"  ID: {existing_user.id}")
            print(f"  Role: {existing_user.role.value}")
            return

        db = ScopedSession(session, TenantScope.platform())
        admin_user = await UserRepository.create(
            db,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.PLATFORM_ADMIN,
        )
        await db.commit()

        print("Platform admin created successfully!")
        print(f"  Email: {email}")
        print(f"  Name: {first_name} {last_name}")
        print(f"  ID: {admin_user.id}")

    await close_db()


if __name__ == "__main__":
    args = parse_args()
    password = os.environ.get("PLATFORM_ADMIN_PASSWORD")
    if not password:
        sys.exit("PLATFORM_ADMIN_PASSWORD must be set")
    asyncio.run(seed_platform_admin(args.email, password, args.first_name, args.last_name))
