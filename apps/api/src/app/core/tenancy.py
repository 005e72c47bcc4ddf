"""
Tenant Context Resolution and Consistency Guard

Establishes, once per request, which school (and branch) the caller may act
on, and rejects any request whose declared target tenant disagrees with it.

Rules:
- A caller whose token carries a school_id is tenant-bound. Any school id in
  the route path or JSON body must equal it, otherwise the request fails
  closed with 403 TENANT_MISMATCH.
- A platform operator without a school_id is tenant-free. The scope's school
  is taken from the route path when present; otherwise the scope stays
  empty and handlers that need a tenant reject with 400 TENANT_REQUIRED.
- Any other caller without a school_id is rejected with 403.
- The deprecated X-School-Id / X-Branch-Id headers are still accepted on the
  wire but never influence the resolved scope.

The resolved TenantScope is immutable and attached to ``request.state``;
downstream code reads it and never re-derives it.
"""

import json
import logging
from dataclasses import dataclass, replace
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.config import settings
from app.core.roles import UserRole

logger = logging.getLogger(__name__)

SCOPE_STATE_ATTR = "tenant_scope"
PATH_TENANT_PARAM = "school_id"
BODY_TENANT_FIELD = "school_id"


class TenancyError(Exception):
    """Base exception for tenant resolution and scoping violations."""

    def __init__(self, message: str, error_code: str, status_code: int = 403):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class TenantMismatchError(TenancyError):
    """Raised when a request or record targets a tenant outside the caller's scope."""

    def __init__(
        self,
        scope_school_id: str | None = None,
        target_school_id: str | None = None,
        *,
        message: str = "Access denied: you cannot operate on a different school.",
        error_code: str = "TENANT_MISMATCH",
    ):
        self.scope_school_id = scope_school_id
        self.target_school_id = target_school_id
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class BranchMismatchError(TenantMismatchError):
    """Raised when a branch-bound caller targets another branch of its own school."""

    def __init__(
        self,
        school_id: str | None = None,
        scope_branch_id: str | None = None,
        target_branch_id: str | None = None,
    ):
        self.scope_branch_id = scope_branch_id
        self.target_branch_id = target_branch_id
        super().__init__(
            school_id,
            school_id,
            message="Access denied: you cannot operate on a different branch.",
            error_code="BRANCH_MISMATCH",
        )


class TenantRequiredError(TenancyError):
    """Raised when an operation needs a school but the scope has none."""

    def __init__(self):
        super().__init__(
            message="This operation requires a school. Specify the target school in the path.",
            error_code="TENANT_REQUIRED",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class NoSchoolAssociationError(TenancyError):
    """Raised when a non-operator caller's token carries no school."""

    def __init__(self):
        super().__init__(
            message="No school association found. Please contact support.",
            error_code="NO_SCHOOL_ASSOCIATION",
            status_code=status.HTTP_403_FORBIDDEN,
        )


def canonical_tenant_id(value: Any) -> str | None:
    """
    Normalise a tenant identifier for comparison.

    UUIDs compare case-insensitively and with or without hyphens; anything
    else is compared as its stripped string form.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return str(UUID(text))
    except ValueError:
        return text


@dataclass(frozen=True)
class TenantScope:
    """
    The resolved (school, branch) pair governing what a request may access.

    ``school_id`` is None only for a platform operator that has not targeted
    a school; such a scope is tenant-free and bypasses data scoping.
    """

    school_id: str | None
    branch_id: str | None
    role: UserRole
    is_platform_operator: bool
    user_id: str | None = None

    def __post_init__(self):
        if self.school_id is None and not self.is_platform_operator:
            raise NoSchoolAssociationError()

    @property
    def is_tenant_free(self) -> bool:
        return self.school_id is None

    def require_school(self) -> str:
        """Return the scope's school id, or raise TenantRequiredError."""
        if self.school_id is None:
            raise TenantRequiredError()
        return self.school_id

    def with_school(self, school_id: str) -> "TenantScope":
        """
        Narrow a tenant-free operator scope to one school.

        Bound scopes may only be "narrowed" to their own school.
        """
        target = canonical_tenant_id(school_id)
        if self.school_id is not None:
            if target != self.school_id:
                raise TenantMismatchError(self.school_id, target)
            return self
        return replace(self, school_id=target, branch_id=None)

    def school_wide(self) -> "TenantScope":
        """The same school without a branch restriction."""
        if self.branch_id is None:
            return self
        return replace(self, branch_id=None)

    def check_school(self, school_id: Any) -> None:
        """Raise TenantMismatchError if ``school_id`` lies outside this scope."""
        target = canonical_tenant_id(school_id)
        if self.school_id is not None and target is not None and target != self.school_id:
            raise TenantMismatchError(self.school_id, target)

    def check_branch(self, branch_id: Any) -> None:
        """Raise BranchMismatchError if a branch-bound scope targets another branch."""
        target = canonical_tenant_id(branch_id)
        if self.branch_id is not None and target is not None and target != self.branch_id:
            raise BranchMismatchError(self.school_id, self.branch_id, target)

    @classmethod
    def platform(cls, user_id: str | None = None) -> "TenantScope":
        """Tenant-free operator scope for background jobs and provisioning."""
        return cls(
            school_id=None,
            branch_id=None,
            role=UserRole.PLATFORM_ADMIN,
            is_platform_operator=True,
            user_id=user_id,
        )


def resolve_tenant_scope(
    user: AuthenticatedUser,
    path_school_id: Any = None,
    body_school_id: Any = None,
) -> TenantScope:
    """
    Derive the request's TenantScope from verified claims and the target tenant.

    Args:
        user: Caller from a verified session token
        path_school_id: Tenant identifier taken from the route path, if any
        body_school_id: Tenant identifier found in the JSON body, if any

    Returns:
        Immutable TenantScope

    Raises:
        TenantMismatchError: Bound caller targeting another school, or path
            and body disagreeing
        NoSchoolAssociationError: Non-operator caller without a school
    """
    token_school = canonical_tenant_id(user.school_id)
    token_branch = canonical_tenant_id(user.branch_id)
    path_school = canonical_tenant_id(path_school_id)
    body_school = canonical_tenant_id(body_school_id)

    if path_school is not None and body_school is not None and path_school != body_school:
        raise TenantMismatchError(path_school, body_school)
    requested = path_school or body_school

    if token_school is not None:
        if requested is not None and requested != token_school:
            raise TenantMismatchError(token_school, requested)
        return TenantScope(
            school_id=token_school,
            branch_id=token_branch,
            role=user.role,
            is_platform_operator=user.is_platform_operator,
            user_id=user.id,
        )

    if not user.is_platform_operator:
        raise NoSchoolAssociationError()

    # Tenant-free operator: the target comes only from the request itself
    return TenantScope(
        school_id=requested,
        branch_id=None,
        role=user.role,
        is_platform_operator=True,
        user_id=user.id,
    )


def as_http_exception(error: TenancyError) -> HTTPException:
    """Translate a TenancyError into the API's error response shape."""
    return HTTPException(
        status_code=error.status_code,
        detail={"error": error.error_code, "message": error.message},
    )


async def _body_school_id(request: Request) -> Any:
    if request.method in ("GET", "HEAD", "OPTIONS", "DELETE"):
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        # Malformed bodies are rejected by request validation, not here
        return None
    if isinstance(body, dict):
        return body.get(BODY_TENANT_FIELD)
    return None


def _log_ignored_legacy_headers(request: Request, user: AuthenticatedUser) -> None:
    for header in (settings.legacy_tenant_header, settings.legacy_branch_header):
        value = request.headers.get(header)
        if value:
            logger.warning(
                f"Ignoring deprecated tenant header {header} on {request.url.path} "
                f"from user {user.id}; scope comes from the session token"
            )


async def get_tenant_scope(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
) -> TenantScope:
    """
    Consistency guard dependency: resolve and attach the request's scope.

    Attach to tenant routers with ``dependencies=[Depends(get_tenant_scope)]``
    or depend on it directly to read the scope.

    Raises:
        HTTPException 403: Tenant mismatch or missing school association
    """
    existing = getattr(request.state, SCOPE_STATE_ATTR, None)
    if isinstance(existing, TenantScope):
        return existing

    _log_ignored_legacy_headers(request, user)

    try:
        scope = resolve_tenant_scope(
            user,
            path_school_id=request.path_params.get(PATH_TENANT_PARAM),
            body_school_id=await _body_school_id(request),
        )
    except TenancyError as e:
        logger.warning(
            f"Tenant rejection ({e.error_code}) for user {user.id} on {request.url.path}: "
            f"token school={user.school_id}, "
            f"requested school={request.path_params.get(PATH_TENANT_PARAM)}"
        )
        raise as_http_exception(e) from e

    setattr(request.state, SCOPE_STATE_ATTR, scope)
    return scope


async def require_tenant_scope(
    scope: TenantScope = Depends(get_tenant_scope),
) -> TenantScope:
    """
    Like get_tenant_scope, but rejects a tenant-free scope.

    Raises:
        HTTPException 400: Platform operator request with no target school
    """
    if scope.is_tenant_free:
        raise as_http_exception(TenantRequiredError())
    return scope


__all__ = [
    "TenancyError",
    "TenantMismatchError",
    "BranchMismatchError",
    "TenantRequiredError",
    "NoSchoolAssociationError",
    "TenantScope",
    "canonical_tenant_id",
    "resolve_tenant_scope",
    "get_tenant_scope",
    "require_tenant_scope",
    "as_http_exception",
]
