"""Authentication, authorization and abuse guards.

Note: the FastAPI guards live in ``auth.gates`` and are NOT re-exported here
to avoid a circular import (auth -> gates -> api.deps -> storage -> auth).
Import directly: ``from quickserve.auth.gates import require_permission``.
"""

from quickserve.auth.context import Identity, SubjectKind, TenantContext
from quickserve.auth.permissions import Permission, Role, has_permission

__all__ = [
    "Identity",
    "Permission",
    "Role",
    "SubjectKind",
    "TenantContext",
    "has_permission",
]
