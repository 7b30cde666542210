"""Shared fixtures for integration tests requiring live PostgreSQL."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from functools import partial

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from quickserve.config import get_settings
from quickserve.tenancy.provisioning import SeedAccount, TenantSchemaProvisioner
from quickserve.tenancy.registry import TenantRegistry, build_data_handle

TEST_SCHEMA_PREFIX = "tenant_"

# ── Engine ─────────────────────────────────────────────────────────


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine from settings."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    yield engine
    await engine.dispose()


# ── Tenant registry and provisioner ────────────────────────────────


@pytest.fixture()
def registry(async_engine: AsyncEngine) -> TenantRegistry:
    return TenantRegistry(
        partial(build_data_handle, async_engine, schema_prefix=TEST_SCHEMA_PREFIX)
    )


@pytest.fixture()
def seed() -> SeedAccount:
    return SeedAccount(username="kitchen1", password="kitchen123")


@pytest.fixture()
async def provisioner(
    async_engine: AsyncEngine,
    registry: TenantRegistry,
    seed: SeedAccount,
) -> AsyncGenerator[TenantSchemaProvisioner]:
    provisioner = TenantSchemaProvisioner(
        async_engine, registry, seed, schema_prefix=TEST_SCHEMA_PREFIX
    )
    yield provisioner
    registry.dispose()


@pytest.fixture()
async def tenant_slug(
    provisioner: TenantSchemaProvisioner,
) -> AsyncGenerator[str]:
    """A throwaway slug whose schema is dropped after the test."""
    slug = f"it-{uuid.uuid4().hex[:10]}"
    yield slug
    await provisioner.drop_tenant_schema(slug)
