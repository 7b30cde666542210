"""FastAPI dependency injection."""

from __future__ import annotations

from typing import cast

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from quickserve.auth.context import Identity, TenantContext
from quickserve.auth.rate_limiter import FixedWindowRateLimiter
from quickserve.auth.tokens import TokenAuthenticator
from quickserve.errors import AuthenticationError, AuthorizationError
from quickserve.storage.database import get_session
from quickserve.storage.repositories import TenantRepository
from quickserve.tenancy.resolver import TenantResolver

__all__ = [
    "get_authenticator",
    "get_current_identity",
    "get_optional_identity",
    "get_rate_limiter",
    "get_session",
    "get_tenant_resolver",
    "resolve_tenant",
]

logger = structlog.get_logger()

# auto_error=False: a missing header must surface as our own 401 envelope.
authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

_get_session = Depends(get_session)


def get_authenticator(request: Request) -> TokenAuthenticator:
    """Retrieve TokenAuthenticator from app state.

    Initialized during lifespan startup.
    """
    return cast(TokenAuthenticator, request.app.state.authenticator)


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    """Retrieve the customer rate limiter from app state."""
    return cast(FixedWindowRateLimiter, request.app.state.rate_limiter)


def get_tenant_resolver(request: Request) -> TenantResolver:
    return cast(TenantResolver, request.app.state.tenant_resolver)


_authenticator_dep = Depends(get_authenticator)
_resolver_dep = Depends(get_tenant_resolver)


async def get_current_identity(
    request: Request,
    authorization: str | None = Security(authorization_header),
    session: AsyncSession = _get_session,
    authenticator: TokenAuthenticator = _authenticator_dep,
) -> Identity:
    """Authenticate the request's bearer credential.

    Raises:
        AuthenticationError 401: missing, malformed, invalid or expired token.
        AuthorizationError 403: valid token that is not bound to a tenant.
    """
    identity = await authenticator.authenticate(
        authorization, TenantRepository(session).get_by_code
    )
    request.state.identity = identity
    structlog.contextvars.bind_contextvars(
        subject_id=identity.subject_id, role=str(identity.role)
    )
    return identity


async def get_optional_identity(
    request: Request,
    authorization: str | None = Security(authorization_header),
    session: AsyncSession = _get_session,
    authenticator: TokenAuthenticator = _authenticator_dep,
) -> Identity | None:
    """Like ``get_current_identity`` but anonymous on any failure.

    Only for customer-facing routes that must stay reachable without a session.
    """
    if not authorization:
        return None
    try:
        return await get_current_identity(
            request, authorization, session, authenticator
        )
    except (AuthenticationError, AuthorizationError) as exc:
        logger.debug("optional_auth_ignored", error=exc.code)
        return None


async def resolve_tenant(
    request: Request,
    session: AsyncSession = _get_session,
    resolver: TenantResolver = _resolver_dep,
) -> TenantContext | None:
    """Resolve the tenant for this request, if it addresses one.

    Uses the identity stored by an authentication dependency that ran
    earlier in the same request, if any.
    """
    identity: Identity | None = getattr(request.state, "identity", None)
    return await resolver.resolve(request, session, identity)
