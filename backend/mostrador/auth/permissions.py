from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping

from mostrador.core.roles import OrganizationRole, rank


class Action(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"
    ARCHIVE = "ARCHIVE"
    MANAGE_USERS = "MANAGE_USERS"
    MANAGE_ROLES = "MANAGE_ROLES"
    MANAGE_BILLING = "MANAGE_BILLING"
    CONFIGURE_SETTINGS = "CONFIGURE_SETTINGS"
    VIEW_ANALYTICS = "VIEW_ANALYTICS"
    EXPORT_DATA = "EXPORT_DATA"
    # DEV-only (see auth/dev_policy.py)
    IMPERSONATE = "IMPERSONATE"
    VIEW_INTERNAL_DATA = "VIEW_INTERNAL_DATA"
    MANAGE_STRIPE = "MANAGE_STRIPE"
    VIEW_LOGS = "VIEW_LOGS"
    DEBUG_SYSTEM = "DEBUG_SYSTEM"


class Resource(str, enum.Enum):
    ORGANIZATION = "organization"
    PRODUCT = "product"
    COMBO = "combo"
    CATEGORY = "category"
    PACKAGING = "packaging"
    STOCK = "stock"
    USER = "user"
    ROLE = "role"
    BILLING = "billing"
    SETTINGS = "settings"
    ANALYTICS = "analytics"
    INTERNAL_DATA = "internal_data"
    STRIPE_DATA = "stripe_data"
    SYSTEM_LOGS = "system_logs"
    AUDIT_LOGS = "audit_logs"


@dataclass(frozen=True)
class Permission:
    action: Action
    resource: Resource

    def __str__(self) -> str:
        return f"{self.action.value}:{self.resource.value}"


# Catalog resources that follow the read/write/destroy split
PRODUCT_FAMILY: tuple[Resource, ...] = (
    Resource.PRODUCT,
    Resource.CATEGORY,
    Resource.COMBO,
    Resource.PACKAGING,
    Resource.STOCK,
)

# Delegated no lower than ADMIN
DESTRUCTIVE_ACTIONS: FrozenSet[Action] = frozenset({Action.DELETE, Action.RESTORE, Action.ARCHIVE})


def _grant(actions: Iterable[Action], resources: Iterable[Resource]) -> FrozenSet[Permission]:
    resources = tuple(resources)
    return frozenset(Permission(a, r) for a in actions for r in resources)


class PermissionTable:
    """
    Immutable role -> permissions lookup.

    Built once and handed to the evaluator; nothing mutates it afterwards, so a
    single instance is safe to share across concurrent evaluations.
    """

    __slots__ = ("_grants",)

    def __init__(self, grants: Mapping[OrganizationRole, Iterable[Permission]]) -> None:
        missing = set(OrganizationRole) - set(grants)
        if missing:
            raise ValueError(f"Permission table is missing roles: {sorted(r.value for r in missing)}")
        self._grants: Mapping[OrganizationRole, FrozenSet[Permission]] = MappingProxyType(
            {role: frozenset(perms) for role, perms in grants.items()}
        )

    def permissions_for(self, role: OrganizationRole) -> FrozenSet[Permission]:
        return self._grants[role]

    def allows(self, role: OrganizationRole, action: Action, resource: Resource) -> bool:
        return Permission(action, resource) in self._grants[role]

    def roles(self) -> tuple[OrganizationRole, ...]:
        return tuple(sorted(self._grants, key=rank))

    def monotonicity_violations(self) -> FrozenSet[tuple[OrganizationRole, OrganizationRole, Permission]]:
        """
        Every (lower, higher, permission) where `lower` holds a permission that `higher` lacks.
        """
        violations = set()
        ordered = self.roles()
        for i, lower in enumerate(ordered):
            for higher in ordered[i + 1:]:
                for perm in self._grants[lower] - self._grants[higher]:
                    violations.add((lower, higher, perm))
        return frozenset(violations)


def build_default_permission_table() -> PermissionTable:
    """
    Read/write is delegated further down the hierarchy than destroy/configure:
      USER    -> read the catalog and the organization
      MANAGER -> + create/update the catalog, analytics
      ADMIN   -> + delete/restore/archive, members, settings, org update, audit logs
      OWNER   -> + org create/delete, roles, billing
    """
    user = _grant([Action.READ], [Resource.ORGANIZATION, *PRODUCT_FAMILY])

    manager = user | _grant([Action.CREATE, Action.UPDATE], PRODUCT_FAMILY) | {
        Permission(Action.VIEW_ANALYTICS, Resource.ANALYTICS),
    }

    admin = manager | _grant(DESTRUCTIVE_ACTIONS, PRODUCT_FAMILY) | {
        Permission(Action.UPDATE, Resource.ORGANIZATION),
        Permission(Action.MANAGE_USERS, Resource.USER),
        Permission(Action.CONFIGURE_SETTINGS, Resource.SETTINGS),
        Permission(Action.EXPORT_DATA, Resource.ANALYTICS),
        Permission(Action.READ, Resource.AUDIT_LOGS),
    }

    owner = admin | {
        Permission(Action.CREATE, Resource.ORGANIZATION),
        Permission(Action.DELETE, Resource.ORGANIZATION),
        Permission(Action.MANAGE_ROLES, Resource.ROLE),
        Permission(Action.MANAGE_BILLING, Resource.BILLING),
    }

    return PermissionTable(
        {
            OrganizationRole.USER: user,
            OrganizationRole.MANAGER: manager,
            OrganizationRole.ADMIN: admin,
            OrganizationRole.OWNER: owner,
        }
    )


DEFAULT_PERMISSION_TABLE = build_default_permission_table()

# Exceptions to "a higher role holds everything a lower role holds".
# The default table has none: destructive actions only ever appear from ADMIN upward.
KNOWN_MONOTONICITY_EXCEPTIONS: FrozenSet[tuple[OrganizationRole, OrganizationRole, Permission]] = frozenset()


def parse_action(value: str | Action) -> Action:
    if isinstance(value, Action):
        return value
    try:
        return Action((value or "").strip().upper())
    except ValueError:
        raise ValueError(f"Unknown permission action: {value!r}") from None


def parse_resource(value: str | Resource) -> Resource:
    if isinstance(value, Resource):
        return value
    try:
        return Resource((value or "").strip().lower())
    except ValueError:
        raise ValueError(f"Unknown resource type: {value!r}") from None
