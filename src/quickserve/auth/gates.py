"""Per-request authorization guards as FastAPI dependencies.

Pipeline order inside one request: authenticate -> resolve tenant ->
permission / role / isolation checks -> handler. Each guard depends on the
stage before it, so FastAPI runs them in that order and stops at the first
failure.
"""

from collections.abc import Callable, Coroutine
from typing import Any

import structlog
from fastapi import Depends, Request

from quickserve.api.deps import (
    get_current_identity,
    get_rate_limiter,
    resolve_tenant,
)
from quickserve.auth.context import Identity, TenantContext
from quickserve.auth.permissions import Permission, Role, has_permission
from quickserve.auth.rate_limiter import FixedWindowRateLimiter
from quickserve.auth.sanitize import sanitize_customer_input, validate_table_number
from quickserve.config import get_settings
from quickserve.errors import (
    AuthorizationError,
    RateLimitedError,
    ValidationError,
)
from quickserve.tenancy.resolver import read_json_body

logger = structlog.get_logger()

_identity_dep = Depends(get_current_identity)
_tenant_dep = Depends(resolve_tenant)
_limiter_dep = Depends(get_rate_limiter)

TENANT_ID_KEYS: tuple[str, ...] = ("restaurantId", "restaurant_id")


def require_permission(
    permission: Permission | str,
) -> Callable[..., Coroutine[Any, Any, Identity]]:
    """Dependency factory: the caller's role must hold *permission*.

    Usage as parameter dependency (returns Identity)::

        async def endpoint(
            identity: Identity = Depends(require_permission(Permission.READ_ORDERS)),
        ): ...

    Raises:
        AuthenticationError 401: no identity.
        AuthorizationError 403: role lacks the permission.
    """

    async def _check_permission(identity: Identity = _identity_dep) -> Identity:
        if not has_permission(identity.role, permission):
            raise AuthorizationError(
                "missing_permission", role=identity.role, permission=str(permission)
            )
        return identity

    return _check_permission


def require_role(
    *allowed_roles: Role | str,
) -> Callable[..., Coroutine[Any, Any, Identity]]:
    """Dependency factory: the caller's role must be one of *allowed_roles*.

    Raises:
        AuthorizationError 403: role not allowed; envelope carries ``userRole``.
    """
    allowed = frozenset(Role(r) for r in allowed_roles)

    async def _check_role(identity: Identity = _identity_dep) -> Identity:
        if identity.role not in allowed:
            raise AuthorizationError("role_not_allowed", role=identity.role)
        return identity

    return _check_role


def _requested_tenant_id(
    request: Request, body: dict[str, Any] | None
) -> tuple[str, Any] | None:
    sources: list[Any] = [request.path_params, request.query_params]
    if body:
        sources.append(body)
    for source in sources:
        for key in TENANT_ID_KEYS:
            value = source.get(key)
            if value is not None and value != "":
                return key, value
    return None


def _as_tenant_id(value: Any, param: str) -> int:
    if isinstance(value, bool):
        raise ValidationError("invalid_tenant_id", param=param)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_tenant_id", param=param) from exc


async def enforce_tenant_isolation(
    request: Request,
    identity: Identity = _identity_dep,
    tenant: TenantContext | None = _tenant_dep,
) -> Identity:
    """Block access to any tenant other than the one bound to the identity.

    Compares the identity's tenant id with a ``restaurantId`` /
    ``restaurant_id`` in path, query or JSON body, and with the tenant
    resolved from a slug. The identity is the only source of truth.

    Raises:
        ValidationError 400: requested tenant id is not an integer.
        AuthorizationError 403: identity carries no tenant id, or the requested
            tenant differs from the bound one.
    """
    if identity.tenant_id is None:
        raise AuthorizationError("missing_tenant_binding", role=identity.role)
    bound = int(identity.tenant_id)

    requested = _requested_tenant_id(request, await read_json_body(request))
    if requested is not None:
        param, raw_value = requested
        if _as_tenant_id(raw_value, param) != bound:
            logger.warning(
                "cross_tenant_access_blocked",
                bound_tenant_id=bound,
                requested_tenant_id=str(raw_value),
                method=request.method,
                path=request.url.path,
            )
            raise AuthorizationError("cross_tenant_access", role=identity.role)

    if tenant is not None and tenant.tenant_id != bound:
        logger.warning(
            "cross_tenant_access_blocked",
            bound_tenant_id=bound,
            requested_slug=tenant.slug,
            method=request.method,
            path=request.url.path,
        )
        raise AuthorizationError("cross_tenant_access", role=identity.role)

    return identity


async def require_tenant(tenant: TenantContext | None = _tenant_dep) -> TenantContext:
    """The route needs a tenant; resolution must have produced one."""
    if tenant is None:
        raise ValidationError("tenant_context_required")
    return tenant


def client_address(request: Request, trust_forwarded_for: bool = False) -> str:
    """Caller network address used as the rate-limit key."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_customer(
    request: Request,
    limiter: FixedWindowRateLimiter = _limiter_dep,
) -> None:
    """Per-address request cap for public and customer-facing routes.

    Raises:
        RateLimitedError 429: address exceeded the window threshold.
    """
    address = client_address(request, get_settings().trust_forwarded_for)
    decision = limiter.hit(address)
    if not decision.allowed:
        logger.warning(
            "rate_limit_exceeded",
            client=address,
            count=decision.count,
            path=request.url.path,
        )
        raise RateLimitedError(decision.retry_after)


async def sanitized_customer_input(request: Request) -> dict[str, Any]:
    """JSON body with customer text fields cleaned (empty dict without a body)."""
    body = await read_json_body(request)
    cleaned = sanitize_customer_input(body) if body else {}
    request.state.customer_input = cleaned
    return cleaned


async def valid_table_number(table_number: str) -> str:
    """Path guard for ``{table_number}`` on customer table routes."""
    return validate_table_number(table_number, param="tableNumber")
