"""Verified claim shapes.

A verified token payload is decoded into exactly one of four variants,
checked in this order:

1. ``OwnerByCode``: admin role with a tenant human code (no tenant id).
2. ``OwnerById``: subject kind ``tenant-owner``; the subject id is the tenant id.
3. ``StaffClaim``: a staff role; the tenant id may still be missing and is
   rejected later, by the authenticator, not silently defaulted.
4. ``UnrecognizedClaim``: anything else.

Both the current claim names and the legacy ones issued by the original login
flows (``id``, ``type="restaurant"``, ``restaurantId``, ``restaurantCode``) are
accepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from quickserve.auth.context import SubjectKind
from quickserve.auth.permissions import STAFF_ROLES, Role, coerce_role

LEGACY_OWNER_KIND = "restaurant"


class RawClaims(BaseModel):
    """Claim set as found in the token, before classification."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    subject_id: str | None = Field(
        default=None, validation_alias=AliasChoices("sub", "id")
    )
    subject_kind: str | None = Field(
        default=None, validation_alias=AliasChoices("kind", "type")
    )
    role: str | None = None
    tenant_id: int | None = Field(
        default=None, validation_alias=AliasChoices("tenant_id", "restaurantId")
    )
    tenant_code: str | None = Field(
        default=None, validation_alias=AliasChoices("tenant_code", "restaurantCode")
    )
    username: str | None = None
    email: str | None = None
    iat: int | None = None
    exp: int | None = None

    @field_validator("subject_id", mode="before")
    @classmethod
    def _stringify_subject(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("tenant_code", "role", "subject_kind", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@dataclass(frozen=True)
class OwnerByCode:
    subject_id: str
    tenant_code: str
    username: str | None = None


@dataclass(frozen=True)
class OwnerById:
    subject_id: str
    tenant_id: int


@dataclass(frozen=True)
class StaffClaim:
    subject_id: str
    role: Role
    tenant_id: int | None
    username: str | None = None


@dataclass(frozen=True)
class UnrecognizedClaim:
    reason: str


Claim = OwnerByCode | OwnerById | StaffClaim | UnrecognizedClaim


def _is_owner_kind(kind: str | None) -> bool:
    return kind in (SubjectKind.TENANT_OWNER, LEGACY_OWNER_KIND)


def decode_claim(payload: dict[str, Any]) -> Claim:
    """Classify a verified token payload into one claim variant."""
    try:
        raw = RawClaims.model_validate(payload)
    except PydanticValidationError:
        return UnrecognizedClaim(reason="malformed_claims")

    if raw.subject_id is None:
        return UnrecognizedClaim(reason="missing_subject")

    role = coerce_role(raw.role)

    if role is Role.ADMIN and raw.tenant_code and raw.tenant_id is None:
        return OwnerByCode(
            subject_id=raw.subject_id,
            tenant_code=raw.tenant_code,
            username=raw.username,
        )

    if _is_owner_kind(raw.subject_kind):
        try:
            owner_tenant_id = int(raw.subject_id)
        except ValueError:
            return UnrecognizedClaim(reason="non_numeric_owner_id")
        return OwnerById(subject_id=raw.subject_id, tenant_id=owner_tenant_id)

    if role is not None and role in STAFF_ROLES:
        return StaffClaim(
            subject_id=raw.subject_id,
            role=role,
            tenant_id=raw.tenant_id,
            username=raw.username,
        )

    return UnrecognizedClaim(reason="no_matching_shape")
