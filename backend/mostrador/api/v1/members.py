# mostrador/api/v1/members.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.api.deps.authorization import (
    AuthorizationContext,
    get_actor_membership,
    get_evaluator,
    require_permission,
)
from mostrador.auth.evaluator import PermissionEvaluator
from mostrador.auth.permissions import Action, Resource
from mostrador.crud.organization_membership import list_memberships
from mostrador.db.session import get_db
from mostrador.schemas.membership import MemberCreate, MemberOut, MemberUpdate
from mostrador.services import memberships as membership_service

router = APIRouter(prefix="/organizations/{organization_id}/members", tags=["members"])

_manage_users = require_permission(Action.MANAGE_USERS, Resource.USER, resource_id_path="member_id")


@router.get("", response_model=List[MemberOut])
async def list_members(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(require_permission(Action.READ, Resource.ORGANIZATION)),
):
    return await list_memberships(db, organization_id)


@router.post("", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    organization_id: uuid.UUID,
    payload: MemberCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(_manage_users),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
):
    actor = await get_actor_membership(auth, evaluator)
    return await membership_service.add_member(
        db,
        actor=actor,
        organization_id=organization_id,
        email=payload.email,
        role=payload.role,
        status=payload.status,
    )


@router.patch("/{member_id}", response_model=MemberOut)
async def update_member(
    organization_id: uuid.UUID,
    member_id: uuid.UUID,
    payload: MemberUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(_manage_users),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
):
    """
    Change a member's role and/or status. OWNER rows are reserved to owners, and the
    last approved OWNER can be neither demoted nor suspended.
    """
    actor = await get_actor_membership(auth, evaluator)
    return await membership_service.update_member(
        db,
        actor=actor,
        organization_id=organization_id,
        member_id=member_id,
        role=payload.role,
        status=payload.status,
    )


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    organization_id: uuid.UUID,
    member_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(_manage_users),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
):
    actor = await get_actor_membership(auth, evaluator)
    await membership_service.remove_member(db, actor=actor, organization_id=organization_id, member_id=member_id)
    return None
