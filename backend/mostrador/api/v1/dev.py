# mostrador/api/v1/dev.py
"""
DEV panel. Every route is gated on a DEV capability; organization roles never
grant access here.
"""
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.api.deps.auth import get_current_user, get_token_claims
from mostrador.api.deps.authorization import get_dev_policy, require_dev_capability
from mostrador.auth.dev_policy import DevBypassPolicy, Principal
from mostrador.auth.permissions import Action
from mostrador.core.roles import SystemRole
from mostrador.core.security import TokenClaims
from mostrador.crud.audit_log import list_audit_logs
from mostrador.crud.organization_membership import count_memberships
from mostrador.db.session import get_db
from mostrador.models.organization import Organization
from mostrador.models.user import User
from mostrador.schemas.dev import (
    AuditLogOut,
    ImpersonatedUserOut,
    ImpersonateRequest,
    ImpersonateResponse,
    InternalDataOut,
    StopImpersonationResponse,
    SystemRoleOut,
    SystemRoleUpdate,
)
from mostrador.services import dev_operations
from mostrador.services.dev_operations import RequestMeta

router = APIRouter(prefix="/dev", tags=["dev"])


def _request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/impersonate", response_model=ImpersonateResponse)
async def impersonate(
    payload: ImpersonateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    policy: DevBypassPolicy = Depends(get_dev_policy),
):
    """
    Issues a short-lived token acting as the target user.
    Non-DEV callers get 403; DEV or ADMIN-level targets get 422.
    """
    actor = dev_operations.principal_for(user)
    grant = await dev_operations.impersonate(
        db,
        actor=actor,
        target_user_id=payload.target_user_id,
        reason=payload.reason,
        meta=_request_meta(request),
        policy=policy,
    )
    target = grant.target
    return ImpersonateResponse(
        target_user=ImpersonatedUserOut(
            id=str(target.id),
            email=target.email,
            full_name=target.full_name,
            system_role=target.system_role,
        ),
        access_token=grant.access_token,
        expires_in_minutes=grant.expires_in_minutes,
    )


@router.post("/impersonate/stop", response_model=StopImpersonationResponse)
async def stop_impersonation(
    request: Request,
    db: AsyncSession = Depends(get_db),
    claims: TokenClaims = Depends(get_token_claims),
    _: User = Depends(get_current_user),
):
    token = await dev_operations.stop_impersonation(db, claims=claims, meta=_request_meta(request))
    return StopImpersonationResponse(access_token=token)


@router.put("/users/{user_id}/system-role", response_model=SystemRoleOut)
async def update_system_role(
    user_id: uuid.UUID,
    payload: SystemRoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # Not behind require_dev_capability: self-escalation must be reported as a
    # business rule even when the caller is not DEV.
    target = await dev_operations.assign_system_role(
        db,
        actor=dev_operations.principal_for(user),
        target_user_id=user_id,
        new_role=payload.system_role,
        meta=_request_meta(request),
    )
    return SystemRoleOut(user_id=str(target.id), system_role=target.system_role)


@router.get("/audit-logs", response_model=List[AuditLogOut])
async def get_audit_logs(
    limit: int = Query(100, ge=1, le=500),
    actor_user_id: Optional[uuid.UUID] = None,
    organization_id: Optional[uuid.UUID] = None,
    db: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_dev_capability(Action.VIEW_LOGS)),
):
    return await list_audit_logs(db, limit=limit, actor_user_id=actor_user_id, organization_id=organization_id)


@router.get("/internal", response_model=InternalDataOut)
async def get_internal_data(
    db: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_dev_capability(Action.VIEW_INTERNAL_DATA)),
):
    users = (await db.execute(select(func.count(User.id)))).scalar() or 0
    organizations = (await db.execute(select(func.count(Organization.id)))).scalar() or 0
    dev_users = (
        await db.execute(select(func.count(User.id)).where(User.system_role == SystemRole.DEV.value))
    ).scalar() or 0
    return InternalDataOut(
        users=int(users),
        organizations=int(organizations),
        memberships=await count_memberships(db),
        dev_users=int(dev_users),
    )
