"""Per-tenant data handles and the process-wide slug -> handle registry."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from quickserve.storage.orm import (
    DiningTable,
    MenuItem,
    Order,
    Rating,
    StaffAccount,
    TenantBase,
)
from quickserve.storage.repositories import TenantScopedRepository
from quickserve.tenancy.naming import schema_name_for

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=TenantBase)

TENANT_MODELS: Mapping[str, type[TenantBase]] = MappingProxyType(
    {
        "menu_items": MenuItem,
        "orders": Order,
        "tables": DiningTable,
        "staff_accounts": StaffAccount,
        "ratings": Rating,
    }
)


@dataclass(frozen=True)
class TenantDataHandle:
    """Data access bound to exactly one tenant schema.

    ``engine`` shares the connection pool of the main engine; only its
    ``schema_translate_map`` differs, so every statement issued through
    this handle resolves the schema-less tenant tables to ``schema``.
    """

    slug: str
    schema: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    models: Mapping[str, type[TenantBase]] = field(default=TENANT_MODELS)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    def repository(
        self, session: AsyncSession, model: type[ModelT]
    ) -> TenantScopedRepository[ModelT]:
        if model not in self.models.values():
            raise ValueError(f"{model.__name__} is not a tenant-schema model")
        return TenantScopedRepository(session, model)


def build_data_handle(
    base_engine: AsyncEngine, slug: str, schema_prefix: str = "tenant_"
) -> TenantDataHandle:
    """Bind the tenant model set to ``slug``'s schema."""
    schema = schema_name_for(slug, schema_prefix)
    engine = base_engine.execution_options(schema_translate_map={None: schema})
    return TenantDataHandle(
        slug=slug,
        schema=schema,
        engine=engine,
        session_factory=async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        ),
    )


HandleFactory = Callable[[str], TenantDataHandle]


class TenantRegistry:
    """Process-lifetime cache of one ``TenantDataHandle`` per slug.

    Concurrent first access to a slug builds the handle once: callers queue
    on a per-slug lock and re-check the cache after acquiring it. Tenant
    provisioning takes the same lock through ``locked()``.
    """

    def __init__(self, factory: HandleFactory) -> None:
        self._factory = factory
        self._handles: dict[str, TenantDataHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, slug: str) -> asyncio.Lock:
        # setdefault is atomic on the event loop thread; no await in between.
        return self._locks.setdefault(slug, asyncio.Lock())

    @asynccontextmanager
    async def locked(self, slug: str) -> AsyncIterator[None]:
        async with self._lock_for(slug):
            yield

    def get(self, slug: str) -> TenantDataHandle | None:
        return self._handles.get(slug)

    def get_or_build_locked(self, slug: str) -> TenantDataHandle:
        """Return the handle for *slug*, building it if needed.

        Caller must already hold ``locked(slug)``.
        """
        handle = self._handles.get(slug)
        if handle is None:
            handle = self._factory(slug)
            self._handles[slug] = handle
            logger.info("tenant_handle_created", slug=slug, schema=handle.schema)
        return handle

    async def get_or_create(self, slug: str) -> TenantDataHandle:
        handle = self._handles.get(slug)
        if handle is not None:
            return handle
        async with self.locked(slug):
            return self.get_or_build_locked(slug)

    def evict(self, slug: str) -> TenantDataHandle | None:
        return self._handles.pop(slug, None)

    def __contains__(self, slug: object) -> bool:
        return slug in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def dispose(self) -> None:
        """Forget every handle and lock (app shutdown)."""
        self._handles.clear()
        self._locks.clear()
