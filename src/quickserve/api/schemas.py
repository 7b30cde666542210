"""Request/response schemas for the API layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# --- Session ---


class SessionResponse(BaseModel):
    """Response for ``GET /session``: who the caller is and what they may do.

    Example::

        {
            "subject_id": "42",
            "subject_kind": "staff",
            "role": "kitchen",
            "tenant_id": 7,
            "username": "kitchen",
            "permissions": ["read:menu", "read:orders", "update:orders"]
        }
    """

    subject_id: str
    subject_kind: str
    role: str
    tenant_id: int | None
    username: str | None = None
    permissions: list[str] = Field(
        description="Permissions held by the role, sorted; wildcards included."
    )
    tenant_slug: str | None = None


# --- Public restaurant ---


class PublicRestaurantResponse(BaseModel):
    """Customer-facing restaurant card; no codes, no contact email."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str


class TableEntryResponse(BaseModel):
    """Response for a customer scanning a table's QR code."""

    model_config = ConfigDict(populate_by_name=True)

    restaurant: PublicRestaurantResponse
    table_number: str = Field(alias="tableNumber")
    signed_in_as: str | None = Field(
        default=None,
        alias="signedInAs",
        description="Role of an optional staff session, e.g. a captain at the table.",
    )
