"""
Shared module - Model base classes and tenant markers.

The scoping layer lives in ``app.modules.shared.scoping`` and is imported
explicitly where needed.
"""

from app.modules.shared.models import (
    BaseModel,
    BranchScopedMixin,
    ImmutableFieldError,
    TenantScopedMixin,
    guard_immutable,
    immutable_columns,
    is_branch_scoped,
    is_tenant_scoped,
    tenant_key,
)

__all__ = [
    "BaseModel",
    "TenantScopedMixin",
    "BranchScopedMixin",
    "ImmutableFieldError",
    "guard_immutable",
    "immutable_columns",
    "tenant_key",
    "is_tenant_scoped",
    "is_branch_scoped",
]
