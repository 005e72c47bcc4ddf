"""
Authentication router.

Sessions are bearer JWTs. The access token carries the caller's tenant
claims (``school_id``, ``branch_id``) read from the user record at login;
the refresh token carries only the subject, so refreshed sessions always
pick up the current tenant binding from the database.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.database import get_db
from app.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from app.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    SessionResponse,
    TokenResponse,
    UserResponse,
)
from app.modules.users.models import User
from app.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = {
    "error": "INVALID_CREDENTIALS",
    "message": "Invalid email or password.",
}


def _session_claims(user: User) -> dict:
    return {
        "email": user.email,
        "role": user.role.value,
        "name": user.full_name,
        "school_id": user.school_id,
        "branch_id": user.branch_id,
    }


def _ensure_active(user: User) -> None:
    if not user.is_active:
        logger.warning(f"Session requested for inactive account: {user.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ACCOUNT_INACTIVE",
                "message": "Your account has been deactivated.",
            },
        )


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate user and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    user = await UserRepository.get_by_email(db, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Failed login attempt for: {credentials.email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    _ensure_active(user)

    access_token = create_access_token(
        subject=str(user.id),
        additional_claims=_session_claims(user),
    )
    refresh_token = create_refresh_token(subject=str(user.id))

    logger.info(f"User logged in: {user.email} (role: {user.role.value}, school: {user.school_id})")

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role.value,
            school_id=user.school_id,
            branch_id=user.branch_id,
            is_active=user.is_active,
            created_at=user.created_at,
        ),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    payload = decode_token(data.refresh_token)
    if payload is None or payload.get("type") != REFRESH_TOKEN_TYPE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "INVALID_TOKEN", "message": "Invalid or expired refresh token."},
        )

    user = await UserRepository.get_for_session(db, payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "INVALID_TOKEN", "message": "Invalid or expired refresh token."},
        )
    _ensure_active(user)

    return TokenResponse(
        access_token=create_access_token(
            subject=str(user.id),
            additional_claims=_session_claims(user),
        ),
        refresh_token=create_refresh_token(subject=str(user.id)),
    )


@router.get("/me", response_model=SessionResponse)
async def me(user: AuthenticatedUser = Depends(get_current_user)) -> SessionResponse:
    """The identity and tenant binding of the current session."""
    return SessionResponse(
        id=user.id,
        email=user.email,
        role=user.role.value,
        school_id=user.school_id,
        branch_id=user.branch_id,
        name=user.name,
    )
