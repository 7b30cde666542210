"""Customer-facing restaurant routes: no login, rate-limited per address."""

import structlog
from fastapi import APIRouter, Depends

from quickserve.api.deps import get_optional_identity
from quickserve.api.schemas import PublicRestaurantResponse, TableEntryResponse
from quickserve.auth.context import Identity, TenantContext
from quickserve.auth.gates import (
    rate_limit_customer,
    require_tenant,
    valid_table_number,
)

logger = structlog.get_logger()

router = APIRouter(
    prefix="/public",
    tags=["public"],
    dependencies=[Depends(rate_limit_customer)],
)

_optional_identity = Depends(get_optional_identity)
_tenant = Depends(require_tenant)
_table_number = Depends(valid_table_number)


@router.get("/restaurants/{slug}", response_model=PublicRestaurantResponse)
async def get_public_restaurant(
    identity: Identity | None = _optional_identity,
    tenant: TenantContext = _tenant,
) -> PublicRestaurantResponse:
    """Public card of the restaurant addressed by ``slug``."""
    return PublicRestaurantResponse.model_validate(tenant.tenant)


@router.get(
    "/restaurants/{slug}/tables/{table_number}",
    response_model=TableEntryResponse,
)
async def get_table_entry(
    table_number: str = _table_number,
    identity: Identity | None = _optional_identity,
    tenant: TenantContext = _tenant,
) -> TableEntryResponse:
    """Entry point for a customer at a table (QR code target)."""
    logger.info("table_access", slug=tenant.slug, table_number=table_number)
    return TableEntryResponse(
        restaurant=PublicRestaurantResponse.model_validate(tenant.tenant),
        table_number=table_number,
        signed_in_as=str(identity.role) if identity is not None else None,
    )
