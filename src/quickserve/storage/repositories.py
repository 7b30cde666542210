"""Repositories for the tenant registry and tenant-schema tables."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quickserve.storage.orm import StaffAccount, Tenant, TenantBase

ModelT = TypeVar("ModelT", bound=TenantBase)


class TenantRepository:
    """Lookups against the public ``restaurants`` registry.

    Only active tenants resolve; a deactivated restaurant behaves as unknown.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_slug(self, slug: str) -> Tenant | None:
        stmt = select(Tenant).where(Tenant.slug == slug, Tenant.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_code(self, code: str) -> Tenant | None:
        """Look up by human code; codes are compared upper-cased and trimmed."""
        stmt = select(Tenant).where(
            Tenant.restaurant_code == code.strip().upper(),
            Tenant.is_active.is_(True),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, tenant_id: int) -> Tenant | None:
        stmt = select(Tenant).where(Tenant.id == tenant_id, Tenant.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class TenantScopedRepository(Generic[ModelT]):
    """CRUD for one tenant-schema model.

    The session must come from a ``TenantDataHandle``: its engine translates
    the schema-less tables into that tenant's schema, so every statement here
    is confined to one tenant.
    """

    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self._session = session
        self._model = model

    async def create(self, **values: Any) -> ModelT:
        instance = self._model(**values)
        self._session.add(instance)
        await self._session.flush()
        return instance

    async def get(self, pk: int) -> ModelT | None:
        return await self._session.get(self._model, pk)

    async def list(self, *, limit: int = 100, offset: int = 0) -> Sequence[ModelT]:
        pk = self._model.__mapper__.primary_key[0]
        stmt = select(self._model).order_by(pk).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def delete(self, pk: int) -> bool:
        instance = await self.get(pk)
        if instance is None:
            return False
        await self._session.delete(instance)
        await self._session.flush()
        return True


class StaffAccountRepository(TenantScopedRepository[StaffAccount]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, StaffAccount)

    async def get_by_username(self, username: str) -> StaffAccount | None:
        stmt = select(StaffAccount).where(StaffAccount.username == username)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
