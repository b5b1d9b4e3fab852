# mostrador/services/dev_operations.py
"""
DEV panel operations: system-role assignment and impersonation.

Plain permission denials (actor is not DEV) surface as 403. Breaking one of the
DEV business rules (self-escalation, impersonating a protected account) surfaces
as a 422 BusinessRuleError so operators can tell the two apart.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.auth.dev_policy import (
    DEFAULT_DEV_POLICY,
    RULE_DEV_ASSIGNER,
    RULE_DEV_SELF_ESCALATION,
    RULE_IMPERSONATION_CHAIN,
    DevBypassPolicy,
    Principal,
)
from mostrador.auth.permissions import Action
from mostrador.core.config import settings
from mostrador.core.errors import BadRequestError, BusinessRuleError, ForbiddenError, NotFoundError
from mostrador.core.roles import SystemRole, parse_system_role
from mostrador.core.security import TokenClaims, create_access_token
from mostrador.crud.audit_log import record_audit
from mostrador.crud.organization_membership import highest_approved_role
from mostrador.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestMeta:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class ImpersonationGrant:
    target: User
    access_token: str
    expires_in_minutes: int


def principal_for(user: User, highest_role=None) -> Principal:
    return Principal(
        user_id=str(user.id),
        system_role=parse_system_role(user.system_role),
        highest_organization_role=highest_role,
    )


async def load_principal(db: AsyncSession, user_id: uuid.UUID) -> tuple[User, Principal]:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user, principal_for(user, await highest_approved_role(db, user.id))


def validate_system_role_assignment(
    actor: Principal,
    target_user_id: str,
    new_role: Optional[SystemRole],
) -> None:
    """
    Rules for changing a user's system role (checked in this order):
      1. nobody may grant DEV to themself, DEV or not
      2. only a DEV may change anyone's system role (grant or revoke)
    """
    if new_role is SystemRole.DEV and actor.user_id == str(target_user_id):
        raise BusinessRuleError("Cannot assign DEV role to yourself", rule=RULE_DEV_SELF_ESCALATION)
    if not actor.is_dev:
        raise BusinessRuleError("Only DEV users can change system roles", rule=RULE_DEV_ASSIGNER)


async def assign_system_role(
    db: AsyncSession,
    *,
    actor: Principal,
    target_user_id: uuid.UUID,
    new_role: Optional[SystemRole],
    meta: RequestMeta = RequestMeta(),
) -> User:
    validate_system_role_assignment(actor, str(target_user_id), new_role)

    target = await db.get(User, target_user_id, with_for_update=True)
    if target is None:
        raise NotFoundError("User")

    previous = target.system_role
    target.system_role = new_role.value if new_role is not None else None

    record_audit(
        db,
        actor_user_id=uuid.UUID(actor.user_id),
        action="SYSTEM_ROLE_CHANGED",
        resource_type="user",
        resource_id=str(target.id),
        details={"from": previous, "to": target.system_role},
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
    )
    await db.commit()
    await db.refresh(target)

    logger.warning("System role of user %s changed %s -> %s by %s", target.id, previous, target.system_role, actor.user_id)
    return target


async def impersonate(
    db: AsyncSession,
    *,
    actor: Principal,
    target_user_id: uuid.UUID,
    reason: Optional[str] = None,
    meta: RequestMeta = RequestMeta(),
    policy: DevBypassPolicy = DEFAULT_DEV_POLICY,
) -> ImpersonationGrant:
    if not policy.can(actor, Action.IMPERSONATE).allowed:
        raise ForbiddenError(
            "You don't have permission to impersonate users",
            details={"required": {"action": Action.IMPERSONATE.value, "system_role": SystemRole.DEV.value}},
        )

    target, target_principal = await load_principal(db, target_user_id)

    if not policy.can_impersonate(actor, target_principal).allowed:
        raise BusinessRuleError(
            "DEV and ADMIN accounts cannot be impersonated",
            rule=RULE_IMPERSONATION_CHAIN,
        )

    record_audit(
        db,
        actor_user_id=uuid.UUID(actor.user_id),
        action="IMPERSONATE_USER",
        resource_type="user",
        resource_id=str(target.id),
        details={
            "target_user": {"id": str(target.id), "email": target.email, "system_role": target.system_role},
            "reason": reason or "No reason provided",
        },
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
    )
    await db.commit()

    minutes = settings.IMPERSONATION_TOKEN_EXPIRE_MINUTES
    token = create_access_token(str(target.id), expires_minutes=minutes, impersonator=actor.user_id)

    logger.warning("User %s started impersonating %s", actor.user_id, target.id)
    return ImpersonationGrant(target=target, access_token=token, expires_in_minutes=minutes)


async def stop_impersonation(
    db: AsyncSession,
    *,
    claims: TokenClaims,
    meta: RequestMeta = RequestMeta(),
) -> str:
    """
    Ends an impersonation session and returns a fresh token for the impersonator.
    """
    if not claims.impersonator:
        raise BadRequestError("Not currently impersonating")

    try:
        impersonator_id = uuid.UUID(claims.impersonator)
    except ValueError:
        raise BadRequestError("Invalid impersonation token")

    impersonator = await db.get(User, impersonator_id)
    if impersonator is None or not impersonator.is_active:
        raise NotFoundError("User")

    record_audit(
        db,
        actor_user_id=impersonator.id,
        action="STOP_IMPERSONATION",
        resource_type="user",
        resource_id=claims.subject,
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
    )
    await db.commit()

    logger.warning("User %s stopped impersonating %s", impersonator.id, claims.subject)
    return create_access_token(str(impersonator.id))
