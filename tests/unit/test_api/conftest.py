"""Fixtures wiring the real app without a database or lifespan."""

from collections.abc import AsyncGenerator, Iterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from quickserve.api.app import app
from quickserve.auth.rate_limiter import FixedWindowRateLimiter
from quickserve.auth.tokens import TokenAuthenticator
from quickserve.storage.database import get_session
from quickserve.tenancy.registry import TenantRegistry
from quickserve.tenancy.resolver import TenantResolver

SECRET = "route-test-secret"

TENANTS: dict[str, Any] = {
    "acme": SimpleNamespace(
        id=3, name="Acme Diner", slug="acme", restaurant_code="QS1234", email=None
    ),
    "bistro": SimpleNamespace(
        id=8, name="Bistro", slug="bistro", restaurant_code="QS5678", email=None
    ),
}


def _fake_handle(slug: str) -> MagicMock:
    handle = MagicMock()
    handle.slug = slug
    return handle


@pytest.fixture()
def authenticator() -> TokenAuthenticator:
    return TokenAuthenticator(SECRET)


@pytest.fixture()
def tenant_repo() -> Iterator[MagicMock]:
    """Patch the tenant registry lookups used during auth and resolution."""
    by_id = {t.id: t for t in TENANTS.values()}
    by_code = {t.restaurant_code: t for t in TENANTS.values()}
    repo = MagicMock()
    repo.get_by_slug = AsyncMock(side_effect=TENANTS.get)
    repo.get_by_id = AsyncMock(side_effect=by_id.get)
    repo.get_by_code = AsyncMock(side_effect=by_code.get)
    with (
        patch("quickserve.tenancy.resolver.TenantRepository", return_value=repo),
        patch("quickserve.api.deps.TenantRepository", return_value=repo),
    ):
        yield repo


@pytest.fixture()
async def client(
    authenticator: TokenAuthenticator, tenant_repo: MagicMock
) -> AsyncGenerator[AsyncClient]:
    app.state.authenticator = authenticator
    app.state.rate_limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=5)
    app.state.tenant_resolver = TenantResolver(TenantRegistry(_fake_handle))
    app.dependency_overrides[get_session] = lambda: AsyncMock()
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
