"""Bind the request to a tenant: slug extraction, lookup, data handle."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from quickserve.auth.context import Identity, TenantContext
from quickserve.errors import NotFoundError
from quickserve.storage.orm import Tenant
from quickserve.storage.repositories import TenantRepository
from quickserve.tenancy.registry import TenantRegistry

logger = structlog.get_logger()

SLUG_KEYS: tuple[str, ...] = ("slug", "restaurantSlug")
SLUG_HEADER = "x-restaurant-slug"
JSON_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _first_value(source: Mapping[str, Any], keys: Iterable[str]) -> str | None:
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_tenant_slug(
    path_params: Mapping[str, Any],
    query_params: Mapping[str, Any],
    headers: Mapping[str, str],
    body: Mapping[str, Any] | None = None,
) -> str | None:
    """Pick the tenant slug: path, then query, then header, then body.

    Returns None when no source carries one; routes without a tenant
    concept simply skip resolution.
    """
    return (
        _first_value(path_params, SLUG_KEYS)
        or _first_value(query_params, SLUG_KEYS)
        or _first_value(headers, (SLUG_HEADER,))
        or (_first_value(body, SLUG_KEYS) if body else None)
    )


async def read_json_body(request: Request) -> dict[str, Any] | None:
    """JSON object body of *request*, or None if it has none.

    Starlette caches the body, so the route handler can still read it.
    """
    if request.method not in JSON_METHODS:
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        # Malformed JSON is the route's validation error to report, not ours.
        return None
    return body if isinstance(body, dict) else None


class TenantResolver:
    """Resolves a request to a ``TenantContext`` and stores it on the request."""

    def __init__(self, registry: TenantRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> TenantRegistry:
        return self._registry

    async def resolve(
        self,
        request: Request,
        session: AsyncSession,
        identity: Identity | None = None,
    ) -> TenantContext | None:
        """Resolve the tenant addressed by *request*.

        A slug in the request wins. Without one, an identity bound to a
        tenant resolves to that tenant.

        Raises:
            NotFoundError: the slug (or bound tenant id) matches no active tenant.
        """
        body = await read_json_body(request)
        slug = extract_tenant_slug(
            request.path_params, request.query_params, request.headers, body
        )
        repo = TenantRepository(session)

        tenant: Tenant | None
        if slug is not None:
            tenant = await repo.get_by_slug(slug)
            if tenant is None:
                logger.info("tenant_slug_not_found", slug=slug)
                raise NotFoundError("tenant_not_found")
        elif identity is not None and identity.tenant_id is not None:
            tenant = await repo.get_by_id(identity.tenant_id)
            if tenant is None:
                logger.info("tenant_id_not_found", tenant_id=identity.tenant_id)
                raise NotFoundError("tenant_not_found")
        else:
            return None

        handle = await self._registry.get_or_create(tenant.slug)
        context = TenantContext(slug=tenant.slug, tenant=tenant, data_handle=handle)
        request.state.tenant = context
        structlog.contextvars.bind_contextvars(tenant=tenant.slug)
        logger.debug("tenant_resolved", slug=tenant.slug, tenant_id=tenant.id)
        return context
