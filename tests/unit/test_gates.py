"""Tests for the per-request guards, exercised through a small FastAPI app."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from quickserve.api.errors import register_exception_handlers
from quickserve.auth.context import Identity, SubjectKind, TenantContext
from quickserve.auth.gates import (
    enforce_tenant_isolation,
    rate_limit_customer,
    require_permission,
    require_role,
    require_tenant,
    sanitized_customer_input,
    valid_table_number,
)
from quickserve.auth.permissions import Permission, Role
from quickserve.auth.rate_limiter import FixedWindowRateLimiter
from quickserve.auth.tokens import TokenAuthenticator
from quickserve.errors import AuthorizationError
from quickserve.storage.database import get_session

SECRET = "gate-test-secret"
AUTH = TokenAuthenticator(SECRET)


def _headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def staff(role: str = "kitchen", tenant_id: int = 3) -> dict[str, str]:
    return _headers(AUTH.issue_staff_token(11, role, tenant_id))


def owner(tenant_id: int = 3) -> dict[str, str]:
    return _headers(AUTH.issue_owner_token(tenant_id))


def _context(tenant_id: int, slug: str) -> TenantContext:
    tenant: Any = SimpleNamespace(id=tenant_id, slug=slug, name=slug.title())
    return TenantContext(slug=slug, tenant=tenant, data_handle=MagicMock())


def build_app(
    resolver: MagicMock, limiter: FixedWindowRateLimiter | None = None
) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.state.authenticator = AUTH
    app.state.tenant_resolver = resolver
    app.state.rate_limiter = (
        limiter if limiter is not None else FixedWindowRateLimiter(60, 100)
    )
    app.dependency_overrides[get_session] = lambda: AsyncMock()

    read_orders = Depends(require_permission(Permission.READ_ORDERS))
    update_payment = Depends(require_permission(Permission.UPDATE_PAYMENT_STATUS))
    kitchen_only = Depends(require_role(Role.KITCHEN, Role.ADMIN))
    isolated = Depends(enforce_tenant_isolation)

    @app.get("/orders")
    async def list_orders(identity: Identity = read_orders) -> dict[str, str]:
        return {"role": str(identity.role)}

    @app.patch("/payments")
    async def mark_paid(identity: Identity = update_payment) -> dict[str, str]:
        return {"role": str(identity.role)}

    @app.get("/kitchen")
    async def kitchen(identity: Identity = kitchen_only) -> dict[str, str]:
        return {"role": str(identity.role)}

    @app.get("/restaurants/{restaurantId}/orders")
    async def tenant_orders(identity: Identity = isolated) -> dict[str, Any]:
        return {"tenant_id": identity.tenant_id}

    @app.get("/isolated")
    async def isolated_query(identity: Identity = isolated) -> dict[str, Any]:
        return {"tenant_id": identity.tenant_id}

    @app.post("/isolated")
    async def isolated_body(identity: Identity = isolated) -> dict[str, Any]:
        return {"tenant_id": identity.tenant_id}

    @app.get("/tenant")
    async def tenant_only(
        tenant: TenantContext = Depends(require_tenant),
    ) -> dict[str, str]:
        return {"slug": tenant.slug}

    @app.get("/public", dependencies=[Depends(rate_limit_customer)])
    async def public() -> dict[str, str]:
        return {"ok": "yes"}

    @app.post("/checkout")
    async def checkout(
        payload: dict[str, Any] = Depends(sanitized_customer_input),
    ) -> dict[str, Any]:
        return payload

    @app.get("/tables/{table_number}")
    async def table(table_number: str = Depends(valid_table_number)) -> dict[str, str]:
        return {"table": table_number}

    return app


@pytest.fixture()
def resolver() -> MagicMock:
    mock = MagicMock()
    mock.resolve = AsyncMock(return_value=None)
    return mock


@pytest.fixture()
def limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(window_seconds=60, max_requests=3)


@pytest.fixture()
async def client(
    resolver: MagicMock, limiter: FixedWindowRateLimiter
) -> AsyncGenerator[AsyncClient]:
    app = build_app(resolver, limiter)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


class TestAuthentication:
    async def test_missing_header(self, client: AsyncClient) -> None:
        response = await client.get("/orders")
        assert response.status_code == 401
        assert response.json() == {
            "message": "Authentication required",
            "error": "missing_credential",
        }

    async def test_wrong_scheme(self, client: AsyncClient) -> None:
        response = await client.get("/orders", headers={"Authorization": "Token x"})
        assert response.status_code == 401
        assert response.json()["error"] == "missing_credential"

    async def test_expired(self, client: AsyncClient) -> None:
        past = datetime.now(UTC) - timedelta(minutes=5)
        token = jwt.encode(
            {"sub": "1", "role": "kitchen", "tenant_id": 3, "exp": past},
            SECRET,
            algorithm="HS256",
        )
        response = await client.get("/orders", headers=_headers(token))
        assert response.status_code == 401
        assert response.json()["error"] == "expired"

    async def test_forged(self, client: AsyncClient) -> None:
        forged = TokenAuthenticator("not-the-secret").issue_staff_token(1, "kitchen", 3)
        response = await client.get("/orders", headers=_headers(forged))
        assert response.status_code == 401
        assert response.json()["error"] == "invalid"

    async def test_staff_without_tenant(self, client: AsyncClient) -> None:
        future = datetime.now(UTC) + timedelta(hours=1)
        token = jwt.encode(
            {"sub": "1", "role": "kitchen", "exp": future}, SECRET, algorithm="HS256"
        )
        response = await client.get("/orders", headers=_headers(token))
        assert response.status_code == 403
        assert response.json()["error"] == "missing_tenant_binding"


class TestRequirePermission:
    async def test_granted(self, client: AsyncClient) -> None:
        response = await client.get("/orders", headers=staff("kitchen"))
        assert response.status_code == 200
        assert response.json() == {"role": "kitchen"}

    async def test_denied(self, client: AsyncClient) -> None:
        response = await client.patch("/payments", headers=staff("kitchen"))
        assert response.status_code == 403
        assert response.json() == {
            "message": "Access denied",
            "error": "missing_permission",
            "userRole": "kitchen",
        }

    async def test_cashier_can_mark_paid(self, client: AsyncClient) -> None:
        response = await client.patch("/payments", headers=staff("cashier"))
        assert response.status_code == 200

    async def test_owner_wildcards(self, client: AsyncClient) -> None:
        assert (await client.get("/orders", headers=owner())).status_code == 200
        assert (await client.patch("/payments", headers=owner())).status_code == 200


class TestRequireRole:
    async def test_allowed(self, client: AsyncClient) -> None:
        response = await client.get("/kitchen", headers=staff("kitchen"))
        assert response.status_code == 200

    async def test_owner_allowed(self, client: AsyncClient) -> None:
        response = await client.get("/kitchen", headers=owner())
        assert response.status_code == 200

    async def test_denied_reports_role(self, client: AsyncClient) -> None:
        response = await client.get("/kitchen", headers=staff("cashier"))
        assert response.status_code == 403
        assert response.json() == {
            "message": "Access denied",
            "error": "role_not_allowed",
            "userRole": "cashier",
        }


class TestTenantIsolation:
    async def test_same_tenant_in_path(self, client: AsyncClient) -> None:
        response = await client.get("/restaurants/3/orders", headers=staff())
        assert response.status_code == 200
        assert response.json() == {"tenant_id": 3}

    async def test_other_tenant_in_path(self, client: AsyncClient) -> None:
        response = await client.get("/restaurants/4/orders", headers=staff())
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "cross_tenant_access"
        assert body["userRole"] == "kitchen"

    async def test_owner_bound_to_own_tenant(self, client: AsyncClient) -> None:
        response = await client.get("/restaurants/4/orders", headers=owner(3))
        assert response.status_code == 403

    async def test_query_param(self, client: AsyncClient) -> None:
        response = await client.get(
            "/isolated", params={"restaurant_id": "9"}, headers=staff()
        )
        assert response.status_code == 403

    async def test_non_integer_tenant_id(self, client: AsyncClient) -> None:
        response = await client.get(
            "/isolated", params={"restaurantId": "abc"}, headers=staff()
        )
        assert response.status_code == 400
        assert response.json() == {
            "message": "Invalid restaurantId",
            "error": "invalid_tenant_id",
        }

    async def test_body_mismatch(self, client: AsyncClient) -> None:
        response = await client.post(
            "/isolated", json={"restaurantId": 4}, headers=staff()
        )
        assert response.status_code == 403

    async def test_body_match_as_string(self, client: AsyncClient) -> None:
        response = await client.post(
            "/isolated", json={"restaurantId": "3"}, headers=staff()
        )
        assert response.status_code == 200

    async def test_no_requested_tenant(self, client: AsyncClient) -> None:
        response = await client.get("/isolated", headers=staff())
        assert response.status_code == 200

    async def test_resolved_slug_of_other_tenant(
        self, client: AsyncClient, resolver: MagicMock
    ) -> None:
        resolver.resolve.return_value = _context(8, "bistro")
        response = await client.get(
            "/isolated", headers={**staff(), "X-Restaurant-Slug": "bistro"}
        )
        assert response.status_code == 403
        assert response.json()["error"] == "cross_tenant_access"

    async def test_resolver_sees_identity(
        self, client: AsyncClient, resolver: MagicMock
    ) -> None:
        resolver.resolve.return_value = _context(3, "acme")
        response = await client.get("/isolated", headers=staff())
        assert response.status_code == 200
        identity = resolver.resolve.await_args.args[2]
        assert identity.tenant_id == 3

    async def test_unbound_identity_is_forbidden(self) -> None:
        """An identity without a tenant id is an authorization failure (403)."""
        unbound = Identity(
            subject_id="11",
            subject_kind=SubjectKind.STAFF,
            role=Role.KITCHEN,
            tenant_id=None,
        )
        with pytest.raises(AuthorizationError) as exc_info:
            await enforce_tenant_isolation(MagicMock(), identity=unbound, tenant=None)

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "missing_tenant_binding"
        assert exc_info.value.role == Role.KITCHEN


class TestRequireTenant:
    async def test_missing_context(self, client: AsyncClient) -> None:
        response = await client.get("/tenant")
        assert response.status_code == 400
        assert response.json()["error"] == "tenant_context_required"

    async def test_context_present(
        self, client: AsyncClient, resolver: MagicMock
    ) -> None:
        resolver.resolve.return_value = _context(3, "acme")
        response = await client.get("/tenant", params={"slug": "acme"})
        assert response.status_code == 200
        assert response.json() == {"slug": "acme"}


class TestRateLimitCustomer:
    async def test_blocks_after_threshold(self, client: AsyncClient) -> None:
        for _ in range(3):
            assert (await client.get("/public")).status_code == 200

        response = await client.get("/public")
        assert response.status_code == 429
        assert response.json() == {
            "message": "Too many requests",
            "error": "rate_limited",
        }
        assert int(response.headers["Retry-After"]) >= 1

    async def test_forwarded_for_ignored_by_default(
        self, client: AsyncClient
    ) -> None:
        for i in range(3):
            await client.get("/public", headers={"X-Forwarded-For": f"1.1.1.{i}"})
        response = await client.get("/public", headers={"X-Forwarded-For": "2.2.2.2"})
        assert response.status_code == 429

    async def test_forwarded_for_when_trusted(self, client: AsyncClient) -> None:
        trusted = SimpleNamespace(trust_forwarded_for=True)
        with patch("quickserve.auth.gates.get_settings", return_value=trusted):
            for _ in range(3):
                await client.get("/public", headers={"X-Forwarded-For": "1.1.1.1"})
            blocked = await client.get(
                "/public", headers={"X-Forwarded-For": "1.1.1.1, 10.0.0.1"}
            )
            other = await client.get("/public", headers={"X-Forwarded-For": "2.2.2.2"})
        assert blocked.status_code == 429
        assert other.status_code == 200


class TestCustomerInput:
    async def test_sanitized_body(self, client: AsyncClient) -> None:
        response = await client.post(
            "/checkout",
            json={
                "customerName": "  Ann  ",
                "specialInstructions": "<script>alert(1)</script>hello",
                "customerPhone": "98-76 54",
            },
        )
        assert response.status_code == 200
        assert response.json() == {
            "customerName": "Ann",
            "specialInstructions": "hello",
            "customerPhone": "987654",
        }

    async def test_no_body(self, client: AsyncClient) -> None:
        response = await client.post("/checkout")
        assert response.status_code == 200
        assert response.json() == {}


class TestTableNumber:
    @pytest.mark.parametrize("value", ["t1", "table-1", "T_2"])
    async def test_valid(self, client: AsyncClient, value: str) -> None:
        response = await client.get(f"/tables/{value}")
        assert response.status_code == 200
        assert response.json() == {"table": value}

    @pytest.mark.parametrize("value", ["t 1", "t1;drop"])
    async def test_invalid(self, client: AsyncClient, value: str) -> None:
        response = await client.get(f"/tables/{value}")
        assert response.status_code == 400
        assert response.json() == {
            "message": "Invalid tableNumber",
            "error": "invalid_table_number",
        }
