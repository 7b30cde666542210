"""Tests for the ``{message, error}`` error envelope."""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from quickserve.api.errors import error_body, register_exception_handlers
from quickserve.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ProvisioningError,
    ProvisioningStep,
    RateLimitedError,
    ValidationError,
)


class TestErrorBody:
    def test_authentication(self) -> None:
        assert error_body(AuthenticationError("expired")) == {
            "message": "Authentication required",
            "error": "expired",
        }

    def test_authorization_with_role(self) -> None:
        body = error_body(AuthorizationError("role_not_allowed", role="viewer"))
        assert body["userRole"] == "viewer"

    def test_authorization_without_role(self) -> None:
        assert "userRole" not in error_body(AuthorizationError("tenant_not_found"))

    def test_validation_names_param(self) -> None:
        body = error_body(ValidationError("invalid_table_number", param="tableNumber"))
        assert body == {
            "message": "Invalid tableNumber",
            "error": "invalid_table_number",
        }

    def test_validation_without_param(self) -> None:
        body = error_body(ValidationError("tenant_context_required"))
        assert body["message"] == "Invalid request"

    def test_not_found(self) -> None:
        assert error_body(NotFoundError("tenant_not_found")) == {
            "message": "Restaurant not found",
            "error": "tenant_not_found",
        }

    def test_provisioning(self) -> None:
        exc = ProvisioningError(ProvisioningStep.SYNC_TABLES, "acme")
        assert error_body(exc)["error"] == "provisioning_failed:sync_tables"
        assert "sync_tables" in str(exc)
        assert exc.status_code == 500


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/limited")
    async def limited() -> None:
        raise RateLimitedError(17)

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("database password is hunter2")

    return app


@pytest.fixture()
async def client() -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHandlers:
    async def test_rate_limited_sets_retry_after(self, client: AsyncClient) -> None:
        response = await client.get("/limited")
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "17"
        assert response.json() == {
            "message": "Too many requests",
            "error": "rate_limited",
        }

    async def test_unhandled_is_opaque(self, client: AsyncClient) -> None:
        response = await client.get("/boom")
        assert response.status_code == 500
        assert response.json() == {
            "message": "Internal server error",
            "error": "internal_error",
        }
        assert "hunter2" not in response.text
