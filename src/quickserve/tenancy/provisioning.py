"""Idempotent creation of a tenant's isolated schema and its seed data.

Each step checks before it creates, so ``initialize_tenant`` can be re-run
for the same slug after a partial failure. Nothing here drops or truncates
tenant data; table drift is repaired only by adding missing columns.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import structlog
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Column, Connection, DefaultClause, inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateSchema, DropSchema

from quickserve.auth.passwords import hash_password
from quickserve.auth.permissions import Role
from quickserve.errors import ProvisioningError, ProvisioningStep
from quickserve.storage.orm import TenantBase
from quickserve.storage.repositories import StaffAccountRepository
from quickserve.tenancy.naming import schema_name_for
from quickserve.tenancy.registry import TenantDataHandle, TenantRegistry

logger = structlog.get_logger()


@dataclass(frozen=True)
class SeedAccount:
    username: str
    password: str
    display_name: str = "Kitchen Admin"
    role: Role = Role.KITCHEN


@dataclass
class ProvisioningResult:
    slug: str
    schema: str
    columns_added: list[str] = field(default_factory=list)
    account_seeded: bool = False


@contextmanager
def _provisioning_step(step: ProvisioningStep, slug: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        logger.error(
            "tenant_provisioning_step_failed",
            slug=slug,
            step=str(step),
            error=str(exc),
            exc_info=True,
        )
        raise ProvisioningError(step, slug) from exc


def _additive_column(column: Column) -> Column:  # type: ignore[type-arg]
    """Copy of *column* suitable for ALTER TABLE ADD COLUMN on a live table.

    Always nullable: existing rows have no value for it.
    """
    server_default = (
        column.server_default.arg
        if isinstance(column.server_default, DefaultClause)
        else None
    )
    return Column(
        column.name, column.type, nullable=True, server_default=server_default
    )


def sync_tenant_tables(connection: Connection, schema: str) -> list[str]:
    """Create missing tenant tables and add missing columns to existing ones.

    Runs on a connection whose ``schema_translate_map`` points at *schema*.

    Returns:
        ``table.column`` names that were added to pre-existing tables.
    """
    TenantBase.metadata.create_all(connection, checkfirst=True)

    inspector = inspect(connection)
    operations = Operations(MigrationContext.configure(connection))
    added: list[str] = []
    for table in TenantBase.metadata.sorted_tables:
        existing = {col["name"] for col in inspector.get_columns(table.name, schema)}
        for column in table.columns:
            if column.name in existing:
                continue
            operations.add_column(table.name, _additive_column(column), schema=schema)
            added.append(f"{table.name}.{column.name}")
    return added


class TenantSchemaProvisioner:
    """Creates and seeds a tenant's schema. Invoked at signup, not per request."""

    def __init__(
        self,
        engine: AsyncEngine,
        registry: TenantRegistry,
        seed: SeedAccount,
        *,
        schema_prefix: str = "tenant_",
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._seed = seed
        self._schema_prefix = schema_prefix

    async def initialize_tenant(self, slug: str) -> ProvisioningResult:
        """Provision *slug*: schema, model set, tables, default kitchen account.

        Holds the registry's per-slug lock for the whole run, so handle
        construction for the same slug never interleaves with provisioning.

        Raises:
            ValidationError: slug cannot name a schema.
            ProvisioningError: a step failed; the error names the step.
        """
        schema = schema_name_for(slug, self._schema_prefix)
        result = ProvisioningResult(slug=slug, schema=schema)
        log = logger.bind(slug=slug, schema=schema)
        log.info("tenant_provisioning_started")

        async with self._registry.locked(slug):
            with _provisioning_step(ProvisioningStep.CREATE_SCHEMA, slug):
                await self._create_schema(schema)

            with _provisioning_step(ProvisioningStep.REGISTER_MODELS, slug):
                handle = self._registry.get_or_build_locked(slug)

            with _provisioning_step(ProvisioningStep.SYNC_TABLES, slug):
                result.columns_added = await self._sync_tables(handle)

            with _provisioning_step(ProvisioningStep.SEED_ACCOUNT, slug):
                result.account_seeded = await self._seed_account(handle)

        log.info(
            "tenant_provisioning_completed",
            columns_added=result.columns_added,
            account_seeded=result.account_seeded,
        )
        return result

    async def _create_schema(self, schema: str) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(CreateSchema(schema, if_not_exists=True))

    async def _sync_tables(self, handle: TenantDataHandle) -> list[str]:
        async with handle.engine.begin() as conn:
            return await conn.run_sync(sync_tenant_tables, handle.schema)

    async def _seed_account(self, handle: TenantDataHandle) -> bool:
        async with handle.session() as session:
            repo = StaffAccountRepository(session)
            if await repo.get_by_username(self._seed.username) is not None:
                return False
            await repo.create(
                name=self._seed.display_name,
                username=self._seed.username,
                password_hash=hash_password(self._seed.password),
                role=self._seed.role.value,
            )
            await session.commit()
        return True

    async def drop_tenant_schema(self, slug: str) -> None:
        """Evict the handle and drop the tenant schema with all its data."""
        schema = schema_name_for(slug, self._schema_prefix)
        async with self._registry.locked(slug):
            self._registry.evict(slug)
            async with self._engine.begin() as conn:
                await conn.execute(DropSchema(schema, cascade=True, if_exists=True))
        logger.warning("tenant_schema_dropped", slug=slug, schema=schema)
