"""CLI for restaurant tenant management.

Usage::

    uv run python -m scripts.manage_tenant <command> [options]

Commands:
    create-tenant       Register a restaurant (slug and code generated)
    init-tenant         Provision the tenant schema, tables and kitchen account
    list-tenants        List all tenants
    issue-token         Issue an owner, admin or staff bearer token
    deactivate-tenant   Deactivate a tenant (its slug stops resolving)
    drop-tenant         Drop a tenant schema with all its data (needs --yes)
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from quickserve.api.app import (
    build_authenticator,
    build_provisioner,
    build_tenant_registry,
)
from quickserve.auth.permissions import STAFF_ROLES
from quickserve.config import settings
from quickserve.errors import GateError
from quickserve.storage.database import engine
from quickserve.storage.orm import Tenant
from quickserve.tenancy.naming import (
    MAX_SLUG_LENGTH,
    generate_tenant_code,
    slugify,
    validate_slug,
)

MAX_CODE_ATTEMPTS = 20


def get_sync_session() -> Session:
    """Create sync session for CLI operations.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    sync_engine = create_engine(settings.database_url)
    return Session(sync_engine)


def _find_tenant(session: Session, slug: str) -> Tenant:
    tenant = session.execute(
        select(Tenant).where(Tenant.slug == slug)
    ).scalar_one_or_none()
    if tenant is None:
        print(f"Tenant not found: {slug}", file=sys.stderr)
        sys.exit(1)
    return tenant


def _unique_slug(session: Session, base: str) -> str:
    """``base``, or ``base-2``, ``base-3``... if taken.

    The base is shortened so a suffixed slug stays within ``MAX_SLUG_LENGTH``.
    """
    slug = base
    counter = 1
    while session.execute(
        select(Tenant.id).where(Tenant.slug == slug)
    ).scalar_one_or_none() is not None:
        counter += 1
        suffix = f"-{counter}"
        slug = base[: MAX_SLUG_LENGTH - len(suffix)].rstrip("-") + suffix
    return validate_slug(slug)


def _unique_code(session: Session) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_tenant_code()
        taken = session.execute(
            select(Tenant.id).where(Tenant.restaurant_code == code)
        ).scalar_one_or_none()
        if taken is None:
            return code
    print("Could not allocate a unique restaurant code", file=sys.stderr)
    sys.exit(1)


def create_tenant(args: argparse.Namespace) -> None:
    """Register a new restaurant."""
    base = args.slug or slugify(args.name)
    try:
        validate_slug(base)
    except GateError:
        print(f"Invalid slug: {base!r}", file=sys.stderr)
        sys.exit(1)

    with get_sync_session() as session:
        slug = _unique_slug(session, base)
        tenant = Tenant(
            name=args.name,
            slug=slug,
            restaurant_code=_unique_code(session),
            email=args.email,
        )
        session.add(tenant)
        session.commit()
        print(f"Tenant created: {args.name} (id: {tenant.id})")
        print(f"   Slug:  {tenant.slug}")
        print(f"   Code:  {tenant.restaurant_code}")
        print()
        print(f"Run `init-tenant --slug {tenant.slug}` to provision its schema.")


async def _initialize(slug: str) -> None:
    registry = build_tenant_registry(settings)
    provisioner = build_provisioner(settings, registry)
    try:
        result = await provisioner.initialize_tenant(slug)
    finally:
        registry.dispose()
        await engine.dispose()
    print(f"Tenant schema ready: {result.schema}")
    if result.columns_added:
        print(f"   Columns added: {', '.join(result.columns_added)}")
    if result.account_seeded:
        print(f"   Kitchen account created: {settings.tenant_seed_username}")
    else:
        print("   Kitchen account already present")


def init_tenant(args: argparse.Namespace) -> None:
    """Provision (or repair) the schema of an existing tenant."""
    with get_sync_session() as session:
        slug = _find_tenant(session, args.slug).slug
    try:
        asyncio.run(_initialize(slug))
    except GateError as exc:
        print(f"Provisioning failed: {exc}", file=sys.stderr)
        sys.exit(1)


def list_tenants(_args: argparse.Namespace) -> None:
    """List all tenants."""
    with get_sync_session() as session:
        tenants = session.execute(select(Tenant).order_by(Tenant.id)).scalars().all()

        if not tenants:
            print("No tenants found.")
            return

        print("Tenants:")
        for i, tenant in enumerate(tenants, 1):
            status = "active" if tenant.is_active else "inactive"
            print(
                f"  {i}. {tenant.name} [{tenant.slug}] "
                f"code={tenant.restaurant_code} id={tenant.id} {status}"
            )


def issue_token(args: argparse.Namespace) -> None:
    """Issue a bearer token for a tenant."""
    authenticator = build_authenticator(settings)
    with get_sync_session() as session:
        tenant = _find_tenant(session, args.slug)
        tenant_id, tenant_code, email = tenant.id, tenant.restaurant_code, tenant.email

    if args.kind == "owner":
        token = authenticator.issue_owner_token(tenant_id, email=email)
    elif args.kind == "admin":
        token = authenticator.issue_admin_token(
            tenant_code, username=args.username or "admin"
        )
    else:
        if not args.role or not args.subject:
            print("Staff tokens need --role and --subject", file=sys.stderr)
            sys.exit(1)
        token = authenticator.issue_staff_token(
            args.subject, args.role, tenant_id, username=args.username
        )
    print(token)


def deactivate_tenant(args: argparse.Namespace) -> None:
    """Deactivate a tenant (its slug and code stop resolving)."""
    with get_sync_session() as session:
        tenant = _find_tenant(session, args.slug)

        if not tenant.is_active:
            print(f"Tenant already inactive: {args.slug}", file=sys.stderr)
            sys.exit(1)

        tenant.is_active = False
        session.commit()
        print(f"Tenant deactivated: {args.slug}")


async def _drop(slug: str) -> None:
    registry = build_tenant_registry(settings)
    provisioner = build_provisioner(settings, registry)
    try:
        await provisioner.drop_tenant_schema(slug)
    finally:
        await engine.dispose()


def drop_tenant(args: argparse.Namespace) -> None:
    """Drop a tenant's schema. Irreversible."""
    if not args.yes:
        print(
            f"Refusing to drop schema of {args.slug} without --yes", file=sys.stderr
        )
        sys.exit(1)
    with get_sync_session() as session:
        slug = _find_tenant(session, args.slug).slug
    asyncio.run(_drop(slug))
    print(f"Tenant schema dropped: {slug}")


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Tenant management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # create-tenant
    p = sub.add_parser("create-tenant", help="Register a restaurant")
    p.add_argument("--name", required=True, help="Restaurant name")
    p.add_argument("--slug", help="URL slug (default: derived from name)")
    p.add_argument("--email", help="Owner contact email")

    # init-tenant
    p = sub.add_parser("init-tenant", help="Provision a tenant schema")
    p.add_argument("--slug", required=True, help="Tenant slug")

    # list-tenants
    sub.add_parser("list-tenants", help="List all tenants")

    # issue-token
    p = sub.add_parser("issue-token", help="Issue a bearer token")
    p.add_argument("--slug", required=True, help="Tenant slug")
    p.add_argument(
        "--kind",
        choices=["owner", "admin", "staff"],
        default="owner",
        help="Token kind",
    )
    p.add_argument(
        "--role", choices=sorted(str(r) for r in STAFF_ROLES), help="Staff role"
    )
    p.add_argument("--subject", help="Staff account id")
    p.add_argument("--username", help="Username carried in the token")

    # deactivate-tenant
    p = sub.add_parser("deactivate-tenant", help="Deactivate a tenant")
    p.add_argument("--slug", required=True, help="Tenant slug")

    # drop-tenant
    p = sub.add_parser("drop-tenant", help="Drop a tenant schema and its data")
    p.add_argument("--slug", required=True, help="Tenant slug")
    p.add_argument("--yes", action="store_true", help="Confirm data loss")

    args = parser.parse_args(argv)
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "create-tenant": create_tenant,
        "init-tenant": init_tenant,
        "list-tenants": list_tenants,
        "issue-token": issue_token,
        "deactivate-tenant": deactivate_tenant,
        "drop-tenant": drop_tenant,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
