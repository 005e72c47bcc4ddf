"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
This module validates session tokens and exposes the caller's identity and
tenant claims. Tenant resolution itself lives in app.core.tenancy and only
ever starts from an ``AuthenticatedUser`` produced here, so an
unauthenticated request is rejected before any tenant logic runs.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.roles import PLATFORM_OPERATOR_ROLES, UserRole
from app.core.security import ACCESS_TOKEN_TYPE, decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=False,
    description="JWT Bearer session token",
)


@dataclass(frozen=True)
class AuthenticatedUser:
    """
    An authenticated caller, populated from verified token claims.

    Attributes:
        id: User's unique identifier
        email: User's email address
        role: User's role
        school_id: School the caller is bound to (None for platform admins)
        branch_id: Branch the caller is bound to, if any
        name: Display name (optional)
    """

    id: str
    email: str
    role: UserRole
    school_id: str | None = None
    branch_id: str | None = None
    name: str | None = None

    @property
    def is_platform_operator(self) -> bool:
        return self.role in PLATFORM_OPERATOR_ROLES

    def __str__(self) -> str:
        return f"AuthenticatedUser(id={self.id}, role={self.role.value}, school={self.school_id})"


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(token: str) -> AuthenticatedUser:
    """
    Validate a session token and extract the caller's claims.

    Args:
        token: JWT string from the Authorization header

    Returns:
        AuthenticatedUser built from the verified claims

    Raises:
        HTTPException 401: If the token is invalid, expired, of the wrong
            type, or carries malformed claims
    """
    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired session token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id = payload["sub"]
        role = UserRole(payload.get("role", ""))
        school_id = payload.get("school_id") or None
        branch_id = payload.get("branch_id") or None
        if not isinstance(user_id, str) or not user_id:
            raise ValueError("Missing 'sub' claim in token")
        for claim in (school_id, branch_id):
            if claim is not None and not isinstance(claim, str):
                raise ValueError("Tenant claims must be strings")
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e

    return AuthenticatedUser(
        id=user_id,
        email=payload.get("email", ""),
        role=role,
        school_id=school_id,
        branch_id=branch_id,
        name=payload.get("name"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthenticatedUser:
    """
    FastAPI dependency that validates the bearer token and returns the caller.

    Raises:
        HTTPException 401: If the token is missing, invalid, or expired
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("NOT_AUTHENTICATED", "Authentication required.")

    user = user_from_token(credentials.credentials)
    logger.debug(f"Authenticated {user}")
    return user


async def require_platform_admin(
    user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """
    Dependency for cross-tenant administrative endpoints (provisioning).

    Raises:
        HTTPException 403: If the caller is not a platform operator
    """
    if not user.is_platform_operator:
        logger.warning(
            f"Access denied: user {user.id} has role '{user.role.value}', "
            "platform admin required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "PLATFORM_ADMIN_REQUIRED",
                "message": "Platform admin access is required for this endpoint.",
            },
        )
    return user


def require_roles(*roles: UserRole):
    """
    Build a dependency that only admits callers holding one of ``roles``.

    Usage:
        @router.put("/...", dependencies=[Depends(require_roles(UserRole.SCHOOL_ADMIN))])
    """
    allowed = frozenset(roles)

    async def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in allowed:
            logger.warning(f"Access denied: role '{user.role.value}' not in {sorted(allowed)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "ROLE_NOT_PERMITTED",
                    "message": "Your role is not permitted to perform this action.",
                },
            )
        return user

    return dependency


__all__ = [
    "AuthenticatedUser",
    "get_current_user",
    "require_platform_admin",
    "require_roles",
    "user_from_token",
]
