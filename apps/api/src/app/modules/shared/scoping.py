"""
Query Scoping

``ScopedSession`` wraps an AsyncSession so that every operation against a
tenant-scoped entity type is confined to the request's TenantScope:

- reads get ``school_id = scope.school_id`` injected (and
  ``branch_id = scope.branch_id`` for branch-scoped entities when the scope
  names a branch)
- inserts and upserts get the scope's identifiers stamped onto the record;
  a record already pointing at another tenant is rejected
- updates and deletes get the same predicates injected, so a primary key
  from another tenant simply matches nothing

A tenant-free (platform operator) scope passes everything through
unfiltered. That is the only cross-tenant path and is reached only through
routes that have verified the operator role.

Route handlers receive a ScopedSession from ``get_scoped_db``; they never see
the raw session. A ``before_flush`` hook on the ORM Session re-checks every
pending tenant-scoped object against the scope recorded in ``session.info``,
covering objects mutated without going through the wrapper API.
"""

import logging
from collections.abc import AsyncGenerator, Iterable, Sequence
from typing import Any, TypeVar
from uuid import UUID

from fastapi import Depends
from sqlalchemy import ColumnElement, Select, delete, event, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from app.core.database import get_session_maker
from app.core.tenancy import (
    BranchMismatchError,
    TenantMismatchError,
    TenantScope,
    canonical_tenant_id,
    get_tenant_scope,
)
from app.modules.shared.models import (
    ImmutableFieldError,
    immutable_columns,
    is_branch_scoped,
    is_tenant_scoped,
    tenant_key,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

SCOPE_INFO_KEY = "tenant_scope"


def _owned_value(
    scope_value: str,
    current: Any,
    *,
    attr: str,
    scope: TenantScope,
    fill: bool = True,
) -> str:
    """
    Decide the tenant id a record must carry.

    Missing ids are filled from the scope (when ``fill``); ids pointing
    elsewhere raise TenantMismatchError.
    """
    current = canonical_tenant_id(current)
    if current is None and fill:
        return scope_value
    if current != scope_value:
        logger.warning(
            f"Blocked write of {attr}={current} outside scope {scope_value} "
            f"(user {scope.user_id})"
        )
        if attr == "branch_id":
            raise BranchMismatchError(scope.school_id, scope_value, current)
        raise TenantMismatchError(scope.school_id, current)
    return current


def stamp_instance(scope: TenantScope, instance: Any) -> None:
    """Stamp (or verify) the scope's identifiers on an ORM instance."""
    model = type(instance)
    key = tenant_key(model)
    if scope.is_tenant_free or key is None:
        return
    # A bound scope never creates another tenant, so the schools table is
    # verified but not filled
    owned = _owned_value(
        scope.school_id, getattr(instance, key), attr=key, scope=scope, fill=key == "school_id"
    )
    if getattr(instance, key) is None:
        setattr(instance, key, owned)
    if is_branch_scoped(model) and scope.branch_id is not None:
        branch = _owned_value(scope.branch_id, instance.branch_id, attr="branch_id", scope=scope)
        if instance.branch_id is None:
            instance.branch_id = branch


@event.listens_for(Session, "before_flush")
def _enforce_scope_on_flush(session: Session, flush_context, instances) -> None:
    scope = session.info.get(SCOPE_INFO_KEY)
    if scope is None or scope.is_tenant_free:
        return
    for instance in list(session.new) + list(session.dirty):
        stamp_instance(scope, instance)


def _dialect_insert(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Atomic upsert is not supported on dialect '{dialect}'")


class ScopedSession:
    """Tenant-confined data access over an AsyncSession."""

    def __init__(self, session: AsyncSession, scope: TenantScope):
        self._session = session
        self._scope = scope
        session.info[SCOPE_INFO_KEY] = scope

    @property
    def scope(self) -> TenantScope:
        return self._scope

    @property
    def dialect_name(self) -> str:
        return self._session.get_bind().dialect.name

    # ------------------------------------------------------------------
    # Predicates and stamping
    # ------------------------------------------------------------------

    def criteria(self, model: type) -> list[ColumnElement[bool]]:
        """The tenant predicates to inject for ``model`` under this scope."""
        key = tenant_key(model)
        if self._scope.is_tenant_free or key is None:
            return []
        predicates = [getattr(model, key) == self._scope.school_id]
        if self._scope.branch_id is not None and is_branch_scoped(model):
            predicates.append(model.branch_id == self._scope.branch_id)
        return predicates

    def stamp_values(self, model: type, values: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of ``values`` carrying the scope's tenant ids."""
        stamped = dict(values)
        key = tenant_key(model)
        if self._scope.is_tenant_free or key is None:
            return stamped
        stamped[key] = _owned_value(
            self._scope.school_id,
            stamped.get(key),
            attr=key,
            scope=self._scope,
            fill=key == "school_id",
        )
        if is_branch_scoped(model) and self._scope.branch_id is not None:
            stamped["branch_id"] = _owned_value(
                self._scope.branch_id,
                stamped.get("branch_id"),
                attr="branch_id",
                scope=self._scope,
            )
        return stamped

    def _protected_columns(self, model: type) -> set[str]:
        columns = set(immutable_columns(model))
        key = tenant_key(model)
        if key is not None:
            columns.add(key)
        if is_branch_scoped(model):
            columns.add("branch_id")
        return columns

    def _check_update_values(self, model: type, values: dict[str, Any]) -> None:
        blocked = sorted(immutable_columns(model) & values.keys())
        if blocked:
            raise ImmutableFieldError(model.__name__, blocked[0])
        if self._scope.is_tenant_free or not is_tenant_scoped(model):
            return
        key = tenant_key(model)
        # Updates may not move a row into another tenant
        present = {k: values[k] for k in (key, "branch_id") if k in values}
        if key in present:
            _owned_value(self._scope.school_id, present[key], attr=key, scope=self._scope, fill=False)
        if "branch_id" in present and self._scope.branch_id is not None:
            _owned_value(
                self._scope.branch_id,
                present["branch_id"],
                attr="branch_id",
                scope=self._scope,
                fill=False,
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(self, model: type[ModelT], *where: ColumnElement[bool]) -> Select:
        """Build a SELECT for ``model`` with tenant predicates injected."""
        return select(model).where(*where, *self.criteria(model))

    async def scalars(
        self,
        model: type[ModelT],
        *where: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT]:
        stmt = self.select(model, *where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def first(self, model: type[ModelT], *where: ColumnElement[bool]) -> ModelT | None:
        result = await self._session.execute(self.select(model, *where).limit(1))
        return result.scalars().first()

    async def get(self, model: type[ModelT], ident: Any) -> ModelT | None:
        """
        Fetch by primary key within scope.

        Unlike Session.get this always queries, so an instance of another
        tenant sitting in the identity map can never be returned.
        """
        try:
            key = str(UUID(str(ident)))
        except ValueError:
            return None
        return await self.first(model, model.id == key)

    async def count(self, model: type, *where: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(model).where(*where, *self.criteria(model))
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def column_values(self, column: Any, *where: ColumnElement[bool]) -> list[Any]:
        """Select a single column of a tenant-scoped model within scope."""
        model = column.class_
        stmt = select(column).where(*where, *self.criteria(model))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, instance: Any) -> None:
        stamp_instance(self._scope, instance)
        self._session.add(instance)

    def add_all(self, instances: Iterable[Any]) -> None:
        for instance in instances:
            self.add(instance)

    async def update(
        self,
        model: type,
        *where: ColumnElement[bool],
        values: dict[str, Any],
    ) -> int:
        """Scoped UPDATE; returns the number of rows changed."""
        self._check_update_values(model, values)
        stmt = (
            update(model)
            .where(*where, *self.criteria(model))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def delete(self, model: type, *where: ColumnElement[bool]) -> int:
        """Scoped DELETE; returns the number of rows removed."""
        stmt = (
            delete(model)
            .where(*where, *self.criteria(model))
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def delete_instance(self, instance: Any) -> None:
        stamp_instance(self._scope, instance)
        await self._session.delete(instance)

    async def upsert(
        self,
        model: type,
        values: dict[str, Any],
        *,
        conflict_columns: Sequence[str],
        set_: dict[str, Any],
        where: ColumnElement[bool] | None = None,
        returning: Any = None,
    ) -> Result:
        """
        Single-statement INSERT ... ON CONFLICT DO UPDATE, stamped to scope.

        Because the inserted row carries the scope's school_id and the
        conflict target includes it, the DO UPDATE branch can only ever touch
        the caller's own row.
        """
        if self._protected_columns(model) & set_.keys():
            raise ValueError("Upserts may not rewrite tenant or immutable columns")
        stamped = self.stamp_values(model, values)
        insert = _dialect_insert(self._session)
        stmt = insert(model).values(**stamped)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_=set_,
            where=where,
        )
        if returning is not None:
            stmt = stmt.returning(returning)
        return await self._session.execute(stmt)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def refresh(self, instance: Any) -> None:
        await self._session.refresh(instance)


async def get_scoped_db(
    scope: TenantScope = Depends(get_tenant_scope),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AsyncGenerator[ScopedSession, None]:
    """FastAPI dependency yielding a ScopedSession for the request's scope."""
    async with session_maker() as session:
        yield ScopedSession(session, scope)


__all__ = [
    "ScopedSession",
    "get_scoped_db",
    "stamp_instance",
    "SCOPE_INFO_KEY",
]
