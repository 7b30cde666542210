"""Role -> permission matrix.

Roles are a closed enumeration and each maps to a fixed, ordered tuple of
permissions. Capabilities change only by editing ``PERMISSIONS``; there is no
runtime grant or revoke.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType


class Role(StrEnum):
    ADMIN = "admin"
    CAPTAIN = "captain"
    KITCHEN = "kitchen"
    RECEPTION = "reception"
    CASHIER = "cashier"
    VIEWER = "viewer"


# Roles carried by staff credentials. The owner/admin role is never a staff role.
STAFF_ROLES: frozenset[Role] = frozenset(r for r in Role if r is not Role.ADMIN)


class Permission(StrEnum):
    """Permission tokens, named ``action:resource``."""

    READ_ALL = "read:all"
    WRITE_ALL = "write:all"
    DELETE_ALL = "delete:all"
    MANAGE_USERS = "manage:users"
    MANAGE_MENU = "manage:menu"
    MANAGE_ORDERS = "manage:orders"
    MANAGE_SETTINGS = "manage:settings"
    VIEW_ANALYTICS = "view:analytics"
    READ_ORDERS = "read:orders"
    WRITE_ORDERS = "write:orders"
    CREATE_ORDERS = "create:orders"
    UPDATE_ORDER_STATUS = "update:order_status"
    UPDATE_PAYMENT_STATUS = "update:payment_status"
    READ_TABLES = "read:tables"
    WRITE_TABLES = "write:tables"
    READ_MENU = "read:menu"

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[0]


READ_ACTIONS: frozenset[str] = frozenset({"read", "view"})
WRITE_ACTIONS: frozenset[str] = frozenset(
    {"write", "create", "update", "delete", "manage"}
)

PERMISSIONS: Mapping[Role, tuple[Permission, ...]] = MappingProxyType(
    {
        Role.ADMIN: (
            Permission.READ_ALL,
            Permission.WRITE_ALL,
            Permission.DELETE_ALL,
            Permission.MANAGE_USERS,
            Permission.MANAGE_MENU,
            Permission.MANAGE_ORDERS,
            Permission.MANAGE_SETTINGS,
            Permission.VIEW_ANALYTICS,
        ),
        Role.CAPTAIN: (
            Permission.READ_ORDERS,
            Permission.WRITE_ORDERS,
            Permission.READ_TABLES,
            Permission.WRITE_TABLES,
            Permission.READ_MENU,
            Permission.CREATE_ORDERS,
        ),
        Role.KITCHEN: (
            Permission.READ_ORDERS,
            Permission.UPDATE_ORDER_STATUS,
            Permission.READ_MENU,
        ),
        Role.RECEPTION: (
            Permission.READ_ORDERS,
            Permission.CREATE_ORDERS,
            Permission.READ_TABLES,
            Permission.WRITE_TABLES,
            Permission.READ_MENU,
        ),
        Role.CASHIER: (
            Permission.READ_ORDERS,
            Permission.UPDATE_PAYMENT_STATUS,
            Permission.VIEW_ANALYTICS,
        ),
        Role.VIEWER: (
            Permission.READ_ORDERS,
            Permission.READ_MENU,
            Permission.READ_TABLES,
        ),
    }
)


def _check_matrix_complete() -> None:
    missing = [role.value for role in Role if role not in PERMISSIONS]
    if missing:
        raise RuntimeError(f"Permission matrix has no entry for roles: {missing}")


_check_matrix_complete()


def coerce_role(role: Role | str | None) -> Role | None:
    """Return the ``Role`` for *role*, or None if it is not a known role."""
    if role is None:
        return None
    try:
        return Role(role)
    except ValueError:
        return None


def permissions_for(role: Role | str | None) -> frozenset[str]:
    """Permission set for *role*; unknown roles get the empty set."""
    known = coerce_role(role)
    if known is None:
        return frozenset()
    return frozenset(PERMISSIONS[known])


def has_permission(role: Role | str | None, permission: Permission | str) -> bool:
    """Check whether *role* holds *permission*.

    ``read:all`` grants every read-type permission and ``write:all`` every
    write-type one. Lookups never raise: unknown roles are denied.
    """
    granted = permissions_for(role)
    if not granted:
        return False
    if permission in granted:
        return True

    action = str(permission).split(":", 1)[0]
    if Permission.READ_ALL in granted and action in READ_ACTIONS:
        return True
    return Permission.WRITE_ALL in granted and action in WRITE_ACTIONS
