"""Request-scoped identity and tenant context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from quickserve.auth.permissions import Role

if TYPE_CHECKING:
    from quickserve.storage.orm import Tenant
    from quickserve.tenancy.registry import TenantDataHandle


class SubjectKind(StrEnum):
    TENANT_OWNER = "tenant-owner"
    STAFF = "staff"


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, derived from a verified credential.

    Lives for one request and is never persisted. ``tenant_id`` is always
    set for staff identities.
    """

    subject_id: str
    subject_kind: SubjectKind
    role: Role
    tenant_id: int | None
    username: str | None = None


@dataclass(frozen=True)
class TenantContext:
    """Tenant bound to the current request, with its schema-scoped data handle."""

    slug: str
    tenant: Tenant
    data_handle: TenantDataHandle

    @property
    def tenant_id(self) -> int:
        return self.tenant.id
