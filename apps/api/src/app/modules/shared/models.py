"""
Shared Model Base Classes

``BaseModel`` gives every table a UUID primary key and audit timestamps.
``TenantScopedMixin`` and ``BranchScopedMixin`` mark the entity types whose
rows belong to a school (and optionally a branch). The scoping layer in
``app.modules.shared.scoping`` keys off these mixins, so a new tenant table
is protected as soon as it inherits the mixin.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.core.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class BaseModel(Base):
    """Abstract base with id and created/updated timestamps."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=_new_id,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TenantScopedMixin:
    """Rows owned by a single school."""

    @declared_attr
    def school_id(cls) -> Mapped[str]:
        # ON DELETE RESTRICT: schools owning historical identifiers are never hard-deleted
        return mapped_column(
            Uuid(as_uuid=False),
            ForeignKey("schools.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        )


class BranchScopedMixin:
    """Rows that may additionally belong to one branch of their school."""

    @declared_attr
    def branch_id(cls) -> Mapped[str | None]:
        return mapped_column(
            Uuid(as_uuid=False),
            ForeignKey("branches.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )


class ImmutableFieldError(ValueError):
    """Raised when code tries to change a column that is fixed after creation."""

    def __init__(self, model: str, field: str):
        self.model = model
        self.field = field
        super().__init__(f"{model}.{field} cannot be changed once set")


def guard_immutable(instance: object, key: str, value: object) -> object:
    """
    ``@validates`` helper: allow the first assignment of ``key`` only.

    Loading from the database does not go through validators, so this only
    fires for application-level writes.
    """
    current = instance.__dict__.get(key)
    if current is not None and current != value:
        raise ImmutableFieldError(type(instance).__name__, key)
    return value


def immutable_columns(model: type) -> frozenset[str]:
    """Columns of ``model`` that bulk updates may not touch."""
    return frozenset(getattr(model, "__immutable_columns__", ()))


def tenant_key(model: type) -> str | None:
    """
    Name of the attribute that holds the owning school's id, or None.

    Models using TenantScopedMixin are keyed on ``school_id``; a model may
    declare ``__tenant_key__`` instead (the schools table keys on its own id).
    """
    if not isinstance(model, type):
        return None
    if issubclass(model, TenantScopedMixin):
        return "school_id"
    return getattr(model, "__tenant_key__", None)


def is_tenant_scoped(model: type) -> bool:
    """True if rows of ``model`` are owned by a tenant."""
    return tenant_key(model) is not None


def is_branch_scoped(model: type) -> bool:
    """True if rows of ``model`` carry an optional branch_id."""
    return isinstance(model, type) and issubclass(model, BranchScopedMixin)
