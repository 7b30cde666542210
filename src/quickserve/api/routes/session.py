"""Authenticated session introspection."""

from fastapi import APIRouter, Depends, Request

from quickserve.api.schemas import SessionResponse
from quickserve.auth.context import Identity, TenantContext
from quickserve.auth.gates import enforce_tenant_isolation
from quickserve.auth.permissions import permissions_for

router = APIRouter(tags=["session"])

_isolated_identity = Depends(enforce_tenant_isolation)


@router.get("/session", response_model=SessionResponse)
async def get_session_info(
    request: Request,
    identity: Identity = _isolated_identity,
) -> SessionResponse:
    """Return the caller's identity and the permissions its role grants."""
    tenant: TenantContext | None = getattr(request.state, "tenant", None)
    return SessionResponse(
        subject_id=identity.subject_id,
        subject_kind=str(identity.subject_kind),
        role=str(identity.role),
        tenant_id=identity.tenant_id,
        username=identity.username,
        permissions=sorted(str(p) for p in permissions_for(identity.role)),
        tenant_slug=tenant.slug if tenant is not None else None,
    )
