# mostrador/services/memberships.py
"""
Membership mutations (add / change role or status / remove).

The request gate has already checked MANAGE_USERS on the organization; the rules
here are the ones that depend on the target row:
  - only an OWNER may grant OWNER or touch an existing OWNER
  - an organization always keeps at least one approved OWNER
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.auth.membership import ResolvedMembership
from mostrador.core.errors import ConflictError, ForbiddenError, NotFoundError
from mostrador.core.roles import MembershipStatus, OrganizationRole, parse_role, parse_status
from mostrador.crud.audit_log import record_audit
from mostrador.crud.organization_membership import (
    get_membership,
    get_membership_for_user,
    lock_approved_owners,
)
from mostrador.models.organization_membership import OrganizationMembership
from mostrador.models.user import User

logger = logging.getLogger(__name__)

RULE_LAST_OWNER = "last_owner"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_owner_for_owner_changes(actor: ResolvedMembership, message: str) -> None:
    if actor.role is not OrganizationRole.OWNER:
        raise ForbiddenError(message)


async def _ensure_other_owner_remains(db: AsyncSession, member: OrganizationMembership, message: str) -> None:
    owners = await lock_approved_owners(db, member.organization_id)
    remaining = [o for o in owners if o.id != member.id]
    if not remaining:
        raise ConflictError(message, details={"rule": RULE_LAST_OWNER})


async def add_member(
    db: AsyncSession,
    *,
    actor: ResolvedMembership,
    organization_id: uuid.UUID,
    email: str,
    role: OrganizationRole,
    status: MembershipStatus = MembershipStatus.APPROVED,
) -> OrganizationMembership:
    if role is OrganizationRole.OWNER:
        _require_owner_for_owner_changes(actor, "Only organization owner can manage owner role")

    user = (
        await db.execute(select(User).where(User.email == User.normalize_email(email)))
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User")

    if await get_membership_for_user(db, organization_id, user.id) is not None:
        raise ConflictError("User is already a member of this organization")

    member = OrganizationMembership(
        organization_id=organization_id,
        user_id=user.id,
        role=role.value,
        status=status.value,
        invited_by_user_id=uuid.UUID(actor.user_id),
        joined_at=_utcnow() if status is MembershipStatus.APPROVED else None,
    )
    db.add(member)
    await db.flush()

    record_audit(
        db,
        actor_user_id=uuid.UUID(actor.user_id),
        organization_id=organization_id,
        action="MEMBER_ADDED",
        resource_type="user",
        resource_id=str(user.id),
        details={"role": role.value, "status": status.value},
    )
    await db.commit()
    await db.refresh(member)
    return member


async def update_member(
    db: AsyncSession,
    *,
    actor: ResolvedMembership,
    organization_id: uuid.UUID,
    member_id: uuid.UUID,
    role: Optional[OrganizationRole] = None,
    status: Optional[MembershipStatus] = None,
) -> OrganizationMembership:
    member = await get_membership(db, organization_id, member_id, for_update=True)
    if member is None:
        raise NotFoundError("Organization member")

    current_role = parse_role(member.role)
    current_status = parse_status(member.status)

    if current_role is OrganizationRole.OWNER or role is OrganizationRole.OWNER:
        _require_owner_for_owner_changes(actor, "Only organization owner can manage owner role")

    loses_ownership = current_role is OrganizationRole.OWNER and (
        (role is not None and role is not OrganizationRole.OWNER)
        or (status is not None and status is not MembershipStatus.APPROVED)
    )
    if loses_ownership and current_status is MembershipStatus.APPROVED:
        await _ensure_other_owner_remains(db, member, "Cannot demote or suspend the last owner of the organization")

    changes: dict[str, str] = {}
    if role is not None and role is not current_role:
        member.role = role.value
        changes["role"] = role.value
    if status is not None and status is not current_status:
        member.status = status.value
        changes["status"] = status.value
        if status is MembershipStatus.APPROVED and member.joined_at is None:
            member.joined_at = _utcnow()

    if changes:
        record_audit(
            db,
            actor_user_id=uuid.UUID(actor.user_id),
            organization_id=organization_id,
            action="MEMBER_UPDATED",
            resource_type="user",
            resource_id=str(member.user_id),
            details={"from": {"role": current_role.value, "status": current_status.value}, "to": changes},
        )
        logger.info("Membership %s updated in organization %s: %s", member.id, organization_id, changes)

    await db.commit()
    await db.refresh(member)
    return member


async def remove_member(
    db: AsyncSession,
    *,
    actor: ResolvedMembership,
    organization_id: uuid.UUID,
    member_id: uuid.UUID,
) -> None:
    member = await get_membership(db, organization_id, member_id, for_update=True)
    if member is None:
        raise NotFoundError("Organization member")

    if parse_role(member.role) is OrganizationRole.OWNER:
        _require_owner_for_owner_changes(actor, "Only organization owner can remove other owners")
        if parse_status(member.status) is MembershipStatus.APPROVED:
            await _ensure_other_owner_remains(db, member, "Cannot remove the last owner from organization")

    record_audit(
        db,
        actor_user_id=uuid.UUID(actor.user_id),
        organization_id=organization_id,
        action="MEMBER_REMOVED",
        resource_type="user",
        resource_id=str(member.user_id),
        details={"role": member.role},
    )
    await db.delete(member)
    await db.commit()
