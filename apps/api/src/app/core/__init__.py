"""
Core module - Configuration, database, security, tenancy, and utilities.
"""

from app.core.config import get_settings, settings
from app.core.database import Base, close_db, get_db, get_session_maker, init_db
from app.core.redis import close_redis, get_redis, init_redis
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.core.tenancy import (
    BranchMismatchError,
    TenancyError,
    TenantMismatchError,
    TenantScope,
    get_tenant_scope,
    require_tenant_scope,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "get_session_maker",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    # Tenancy
    "BranchMismatchError",
    "TenancyError",
    "TenantMismatchError",
    "TenantScope",
    "get_tenant_scope",
    "require_tenant_scope",
]
