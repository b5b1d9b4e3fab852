from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.errors import MembershipStoreError
from mostrador.core.roles import (
    MembershipStatus,
    OrganizationRole,
    SystemRole,
    parse_role,
    parse_status,
    parse_system_role,
)
from mostrador.models.organization_membership import OrganizationMembership
from mostrador.models.user import User


@dataclass(frozen=True)
class ResolvedMembership:
    user_id: str
    organization_id: str
    role: OrganizationRole
    status: MembershipStatus = MembershipStatus.APPROVED


class MembershipResolver(Protocol):
    async def resolve(self, user_id: str, organization_id: str) -> Optional[ResolvedMembership]:
        """
        Return the user's active membership in the organization, or None.

        None covers "no row" and any non-approved status. Storage failures raise
        MembershipStoreError; they are never reported as None.
        """
        ...


def to_active_membership(row: Optional[OrganizationMembership]) -> Optional[ResolvedMembership]:
    if row is None:
        return None
    status = parse_status(row.status)
    # Suspended and pending rows stay in storage but grant nothing.
    if status is not MembershipStatus.APPROVED:
        return None
    return ResolvedMembership(
        user_id=str(row.user_id),
        organization_id=str(row.organization_id),
        role=parse_role(row.role),
        status=status,
    )


def _as_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class SqlMembershipResolver:
    """Reads organization_memberships through the request's AsyncSession."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def resolve(self, user_id: str, organization_id: str) -> Optional[ResolvedMembership]:
        user_uuid = _as_uuid(user_id)
        org_uuid = _as_uuid(organization_id)
        # Ids that cannot exist in storage cannot have a membership.
        if user_uuid is None or org_uuid is None:
            return None

        stmt = select(OrganizationMembership).where(
            OrganizationMembership.organization_id == org_uuid,
            OrganizationMembership.user_id == user_uuid,
        )
        try:
            row = (await self._db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise MembershipStoreError("Membership store unavailable") from exc
        return to_active_membership(row)


class SystemRoleResolver(Protocol):
    async def resolve(self, user_id: str) -> Optional[SystemRole]:
        """The user's system role, or None for unknown users and plain accounts."""
        ...


class SqlSystemRoleResolver:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def resolve(self, user_id: str) -> Optional[SystemRole]:
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            return None
        stmt = select(User.system_role).where(User.id == user_uuid)
        try:
            value = (await self._db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise MembershipStoreError("User store unavailable") from exc
        return parse_system_role(value)
