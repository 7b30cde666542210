"""Bearer token verification and issuance (HS256 JWT)."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
import structlog

from quickserve.auth.claims import (
    OwnerByCode,
    OwnerById,
    StaffClaim,
    UnrecognizedClaim,
    decode_claim,
)
from quickserve.auth.context import Identity, SubjectKind
from quickserve.auth.permissions import STAFF_ROLES, Role
from quickserve.errors import AuthenticationError, AuthorizationError
from quickserve.storage.orm import Tenant

logger = structlog.get_logger()

BEARER_SCHEME = "bearer"

TenantByCodeLookup = Callable[[str], Awaitable[Tenant | None]]


def parse_bearer(header: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` value.

    Raises:
        AuthenticationError: header absent or not in ``Bearer <token>`` form.
    """
    if not header:
        raise AuthenticationError("missing_credential")
    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != BEARER_SCHEME or not token or " " in token:
        raise AuthenticationError("missing_credential")
    return token


class TokenAuthenticator:
    """Verifies signed credentials and derives the caller's ``Identity``.

    One instance per process, built from settings at startup. Verification
    is CPU-only; the sole I/O is the tenant lookup for code-bound admin
    credentials.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        owner_ttl: timedelta = timedelta(days=30),
        staff_ttl: timedelta = timedelta(hours=24),
    ) -> None:
        if not secret:
            raise ValueError("JWT signing secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm
        self._owner_ttl = owner_ttl
        self._staff_ttl = staff_ttl

    # ── Verification ────────────────────────────────────────────────

    def verify(self, token: str) -> dict[str, Any]:
        """Check signature and expiry, return the raw claim payload."""
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("invalid") from exc

    async def authenticate(
        self,
        authorization: str | None,
        find_tenant_by_code: TenantByCodeLookup,
    ) -> Identity:
        """Turn an ``Authorization`` header value into an ``Identity``.

        Raises:
            AuthenticationError: credential missing, malformed, invalid or expired.
            AuthorizationError: credential valid but not bound to a usable tenant.
        """
        token = parse_bearer(authorization)
        claim = decode_claim(self.verify(token))

        if isinstance(claim, OwnerByCode):
            tenant = await find_tenant_by_code(claim.tenant_code)
            if tenant is None:
                raise AuthorizationError("tenant_not_found", role=Role.ADMIN)
            return Identity(
                subject_id=claim.subject_id,
                subject_kind=SubjectKind.TENANT_OWNER,
                role=Role.ADMIN,
                tenant_id=tenant.id,
                username=claim.username,
            )

        if isinstance(claim, OwnerById):
            return Identity(
                subject_id=claim.subject_id,
                subject_kind=SubjectKind.TENANT_OWNER,
                role=Role.ADMIN,
                tenant_id=claim.tenant_id,
            )

        if isinstance(claim, StaffClaim):
            if claim.tenant_id is None:
                logger.warning(
                    "staff_token_without_tenant",
                    subject_id=claim.subject_id,
                    role=str(claim.role),
                )
                raise AuthorizationError("missing_tenant_binding", role=claim.role)
            return Identity(
                subject_id=claim.subject_id,
                subject_kind=SubjectKind.STAFF,
                role=claim.role,
                tenant_id=claim.tenant_id,
                username=claim.username,
            )

        reason = claim.reason if isinstance(claim, UnrecognizedClaim) else "unknown"
        logger.warning("unrecognized_claim_shape", reason=reason)
        raise AuthorizationError("unrecognized_claim_shape")

    # ── Issuance (used by login flows and the tenant CLI) ────────────

    def _encode(self, claims: dict[str, Any], ttl: timedelta) -> str:
        now = datetime.now(UTC)
        payload = {**claims, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def issue_owner_token(self, tenant_id: int, *, email: str | None = None) -> str:
        """Credential for a restaurant owner; its subject id is the tenant id."""
        claims: dict[str, Any] = {
            "sub": str(tenant_id),
            "kind": str(SubjectKind.TENANT_OWNER),
            "role": str(Role.ADMIN),
        }
        if email:
            claims["email"] = email
        return self._encode(claims, self._owner_ttl)

    def issue_admin_token(self, tenant_code: str, *, username: str) -> str:
        """Credential for an admin who signed in with the restaurant code."""
        claims = {
            "sub": "admin",
            "role": str(Role.ADMIN),
            "tenant_code": tenant_code,
            "username": username,
        }
        return self._encode(claims, self._staff_ttl)

    def issue_staff_token(
        self,
        subject_id: str | int,
        role: Role | str,
        tenant_id: int,
        *,
        username: str | None = None,
    ) -> str:
        """Credential for a staff account bound to one tenant."""
        staff_role = Role(role)
        if staff_role not in STAFF_ROLES:
            raise ValueError(f"'{staff_role}' is not a staff role")
        claims: dict[str, Any] = {
            "sub": str(subject_id),
            "kind": str(SubjectKind.STAFF),
            "role": str(staff_role),
            "tenant_id": tenant_id,
        }
        if username:
            claims["username"] = username
        return self._encode(claims, self._staff_ttl)
