"""Authentication schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """The signed-in user, including the tenant the session is bound to."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    school_id: str | None
    branch_id: str | None
    is_active: bool
    created_at: datetime


class LoginResponse(TokenResponse):
    """Login response schema."""

    user: UserResponse


class SessionResponse(BaseModel):
    """Claims of the current access token."""

    id: str
    email: str
    role: str
    school_id: str | None
    branch_id: str | None
    name: str | None = None
