# mostrador/crud/organization_membership.py
from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.roles import MembershipStatus, OrganizationRole, parse_role, rank
from mostrador.models.organization_membership import OrganizationMembership


async def get_membership(
    db: AsyncSession,
    organization_id: uuid.UUID,
    membership_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[OrganizationMembership]:
    stmt = select(OrganizationMembership).where(
        OrganizationMembership.id == membership_id,
        OrganizationMembership.organization_id == organization_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_membership_for_user(
    db: AsyncSession,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Optional[OrganizationMembership]:
    stmt = select(OrganizationMembership).where(
        OrganizationMembership.organization_id == organization_id,
        OrganizationMembership.user_id == user_id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def lock_approved_owners(db: AsyncSession, organization_id: uuid.UUID) -> Sequence[OrganizationMembership]:
    """
    Locks every APPROVED OWNER row of the organization (FOR UPDATE) and returns them.
    Callers check the last-owner rule against this locked set.
    """
    stmt = (
        select(OrganizationMembership)
        .where(OrganizationMembership.organization_id == organization_id)
        .where(OrganizationMembership.role == OrganizationRole.OWNER.value)
        .where(OrganizationMembership.status == MembershipStatus.APPROVED.value)
        .with_for_update()
    )
    return (await db.execute(stmt)).scalars().all()


async def list_memberships(db: AsyncSession, organization_id: uuid.UUID) -> Sequence[OrganizationMembership]:
    stmt = (
        select(OrganizationMembership)
        .where(OrganizationMembership.organization_id == organization_id)
        .order_by(OrganizationMembership.created_at.asc())
    )
    return (await db.execute(stmt)).scalars().all()


async def count_memberships(db: AsyncSession) -> int:
    res = await db.execute(select(func.count(OrganizationMembership.id)))
    return int(res.scalar() or 0)


async def highest_approved_role(db: AsyncSession, user_id: uuid.UUID) -> Optional[OrganizationRole]:
    """
    Highest organization role the user holds across APPROVED memberships, or None.
    """
    stmt = (
        select(OrganizationMembership.role)
        .where(OrganizationMembership.user_id == user_id)
        .where(OrganizationMembership.status == MembershipStatus.APPROVED.value)
    )
    roles = [parse_role(r) for r in (await db.execute(stmt)).scalars().all()]
    if not roles:
        return None
    return max(roles, key=rank)
