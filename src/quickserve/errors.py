"""Gate error taxonomy.

Each class maps to exactly one HTTP status. Handlers in
``quickserve.api.errors`` render them into the ``{message, error}`` envelope.
"""

from __future__ import annotations

from enum import StrEnum


class GateError(Exception):
    """Base class for every failure the request gate can raise."""

    status_code: int = 500
    message: str = "Request failed"

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(code)


class AuthenticationError(GateError):
    """Missing, malformed, invalid or expired credential."""

    status_code = 401
    message = "Authentication required"


class AuthorizationError(GateError):
    """Authenticated, but not allowed to do this (role, permission, tenant)."""

    status_code = 403
    message = "Access denied"

    def __init__(
        self,
        code: str,
        role: str | None = None,
        permission: str | None = None,
    ) -> None:
        self.role = role
        self.permission = permission
        super().__init__(code)


class NotFoundError(GateError):
    status_code = 404
    message = "Restaurant not found"


class ValidationError(GateError):
    """Malformed request input, e.g. a table number or a tenant id."""

    status_code = 400
    message = "Invalid request"

    def __init__(self, code: str, param: str | None = None) -> None:
        self.param = param
        super().__init__(code)


class RateLimitedError(GateError):
    """Too many requests from one source within the current window.

    The only error the caller is expected to retry, after ``retry_after``.
    """

    status_code = 429
    message = "Too many requests"

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__("rate_limited")


class ProvisioningStep(StrEnum):
    CREATE_SCHEMA = "create_schema"
    REGISTER_MODELS = "register_models"
    SYNC_TABLES = "sync_tables"
    SEED_ACCOUNT = "seed_account"


class ProvisioningError(GateError):
    """A tenant provisioning step failed; safe to retry the whole run."""

    status_code = 500
    message = "Tenant provisioning failed"

    def __init__(self, step: ProvisioningStep, slug: str) -> None:
        self.step = step
        self.slug = slug
        super().__init__(f"provisioning_failed:{step}")

    def __str__(self) -> str:
        return f"Provisioning of '{self.slug}' failed at step '{self.step}'"
