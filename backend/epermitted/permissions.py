"""
E-Permitted Backend — Roles & Permissions
==========================================

What:  The enumerated roles a user can hold and the permissions each grants.
How:   Routes declare the permission they need (`require_permission(...)` in
       `epermitted.auth`); the check goes through `Role.grants()` rather than
       comparing role strings.

    Role      Permissions
    ───────── ───────────────────────────────────────────────────────────
    citizen   (none beyond their own profile and submissions)
    staff     VIEW_USERS, REVIEW_APPLICATIONS
    admin     everything
"""

import enum
from typing import Dict, FrozenSet


class Permission(str, enum.Enum):
    VIEW_USERS = "view_users"
    MANAGE_USERS = "manage_users"
    MANAGE_COUNCILS = "manage_councils"
    REVIEW_APPLICATIONS = "review_applications"


class Role(str, enum.Enum):
    CITIZEN = "citizen"
    STAFF = "staff"
    ADMIN = "admin"

    @property
    def permissions(self) -> FrozenSet[Permission]:
        return ROLE_PERMISSIONS[self]

    def grants(self, permission: Permission) -> bool:
        """True if holders of this role may perform `permission`."""
        return permission in ROLE_PERMISSIONS[self]


DEFAULT_ROLE = Role.CITIZEN

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.CITIZEN: frozenset(),
    Role.STAFF: frozenset({
        Permission.VIEW_USERS,
        Permission.REVIEW_APPLICATIONS,
    }),
    Role.ADMIN: frozenset(Permission),
}
