"""Helpers shared by the test modules."""

from dataclasses import dataclass

from app.core.roles import UserRole
from app.core.security import create_access_token
from app.core.tenancy import TenantScope


@dataclass
class Tenants:
    """Ids of the schools and branches seeded for a test."""

    s1: str
    s1_kb: str
    s1_main: str
    s2: str
    s2_main: str
    s3: str


def scope_for(
    school_id: str | None,
    *,
    branch_id: str | None = None,
    role: UserRole = UserRole.SCHOOL_ADMIN,
) -> TenantScope:
    """A tenant-bound scope, or a tenant-free operator scope when school_id is None."""
    if school_id is None:
        return TenantScope.platform(user_id="operator")
    return TenantScope(
        school_id=school_id,
        branch_id=branch_id,
        role=role,
        is_platform_operator=role is UserRole.PLATFORM_ADMIN,
        user_id=f"user-{role.value}",
    )


def bearer(
    role: UserRole,
    school_id: str | None = None,
    branch_id: str | None = None,
    user_id: str = "11111111-1111-1111-1111-111111111111",
) -> dict[str, str]:
    """Authorization header for a signed access token with the given claims."""
    token = create_access_token(
        subject=user_id,
        additional_claims={
            "email": f"{role.value}@example.org",
            "role": role.value,
            "school_id": school_id,
            "branch_id": branch_id,
        },
    )
    return {"Authorization": f"Bearer {token}"}
