# mostrador/core/roles.py

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Mapping, Optional


class OrganizationRole(str, enum.Enum):
    USER = "USER"         # read-only catalog access
    MANAGER = "MANAGER"   # day-to-day catalog editing, no deletes
    ADMIN = "ADMIN"       # destructive catalog ops + member management
    OWNER = "OWNER"       # creator / ultimate authority


class SystemRole(str, enum.Enum):
    # Organization-independent platform operator flag
    DEV = "DEV"


class MembershipStatus(str, enum.Enum):
    APPROVED = "approved"
    PENDING = "pending"
    SUSPENDED = "suspended"


# Explicit ranks; never derived from declaration order.
_ROLE_RANK: Mapping[OrganizationRole, int] = MappingProxyType(
    {
        OrganizationRole.USER: 1,
        OrganizationRole.MANAGER: 2,
        OrganizationRole.ADMIN: 3,
        OrganizationRole.OWNER: 4,
    }
)


def rank(role: OrganizationRole) -> int:
    return _ROLE_RANK[role]


def has_at_least(actual: OrganizationRole, required: OrganizationRole) -> bool:
    return rank(actual) >= rank(required)


def parse_role(value: str | OrganizationRole | None) -> OrganizationRole:
    """
    Boundary parser for roles read from storage or requests.
    Raises ValueError on anything that is not one of the four roles.
    """
    if isinstance(value, OrganizationRole):
        return value
    normalized = (value or "").strip().upper()
    try:
        return OrganizationRole(normalized)
    except ValueError:
        raise ValueError(f"Unknown organization role: {value!r}") from None


def parse_system_role(value: str | SystemRole | None) -> Optional[SystemRole]:
    if value is None or isinstance(value, SystemRole):
        return value
    normalized = value.strip().upper()
    if not normalized:
        return None
    try:
        return SystemRole(normalized)
    except ValueError:
        raise ValueError(f"Unknown system role: {value!r}") from None


def parse_status(value: str | MembershipStatus | None) -> MembershipStatus:
    if isinstance(value, MembershipStatus):
        return value
    normalized = (value or "").strip().lower()
    try:
        return MembershipStatus(normalized)
    except ValueError:
        raise ValueError(f"Unknown membership status: {value!r}") from None
