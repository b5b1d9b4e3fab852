# mostrador/api/v1/organizations.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.api.deps.auth import get_current_user
from mostrador.api.deps.authorization import AuthorizationContext, get_evaluator, require_permission
from mostrador.auth.evaluator import PermissionEvaluator
from mostrador.auth.navigation import visible_navigation
from mostrador.auth.permissions import Action, Resource
from mostrador.core.errors import ForbiddenError
from mostrador.db.session import get_db
from mostrador.models.user import User
from mostrador.schemas.organization import OrganizationCreate, OrganizationOut, OrganizationUpdate
from mostrador.schemas.permissions import (
    BatchPermissionCheckIn,
    BatchPermissionCheckOut,
    EffectivePermissionsOut,
    MembershipSummary,
    NavigationItemOut,
    NavigationSectionOut,
    PermissionCheckResult,
    PermissionOut,
)
from mostrador.services import organizations as organization_service

router = APIRouter(prefix="/organizations", tags=["organizations"])


# ---------------------------------------------------------
# Organization CRUD
# ---------------------------------------------------------
@router.post("", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
    payload: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await organization_service.create_organization(db, owner=user, name=payload.name, slug=payload.slug)


@router.get("", response_model=List[OrganizationOut])
async def list_organizations(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await organization_service.list_user_organizations(db, user.id)


@router.get("/{organization_id}", response_model=OrganizationOut)
async def get_organization(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(require_permission(Action.READ, Resource.ORGANIZATION)),
):
    return await organization_service.get_organization(db, organization_id)


@router.patch("/{organization_id}", response_model=OrganizationOut)
async def update_organization(
    organization_id: uuid.UUID,
    payload: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(require_permission(Action.UPDATE, Resource.ORGANIZATION)),
):
    return await organization_service.update_organization(db, organization_id, name=payload.name)


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Action.DELETE, Resource.ORGANIZATION)),
):
    await organization_service.delete_organization(db, organization_id, actor_id=auth.user.id)
    return None


# ---------------------------------------------------------
# Permissions consumed by the dashboard
# ---------------------------------------------------------
@router.get("/{organization_id}/permissions", response_model=EffectivePermissionsOut)
async def get_my_permissions(
    organization_id: uuid.UUID,
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
):
    """
    Caller's role and full permission set in the organization.
    """
    membership, permissions = await evaluator.effective_permissions(str(user.id), str(organization_id))
    if membership is None:
        raise ForbiddenError("You are not a member of this organization")

    ordered = sorted(permissions, key=lambda p: (p.resource.value, p.action.value))
    return EffectivePermissionsOut(
        organization_id=str(organization_id),
        role=membership.role,
        permissions=[PermissionOut(action=p.action, resource=p.resource) for p in ordered],
        membership=MembershipSummary(role=membership.role, status=membership.status),
    )


@router.post("/{organization_id}/permissions/check", response_model=BatchPermissionCheckOut)
async def check_permissions(
    organization_id: uuid.UUID,
    payload: BatchPermissionCheckIn,
    user: User = Depends(get_current_user),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
):
    """
    Evaluates each check independently. Non-members get all-false results, not a 403.
    DEV capabilities are answered by the DEV policy, as on the /dev routes.
    """
    checks = [item.to_check() for item in payload.checks]
    batch = await evaluator.check_batch(str(user.id), str(organization_id), checks)
    results = [
        PermissionCheckResult(
            action=item.action,
            resource=item.resource,
            resource_id=item.resource_id,
            allowed=decision.allowed,
        )
        for item, decision in zip(payload.checks, batch.decisions)
    ]
    return BatchPermissionCheckOut(results=results, any=batch.any, all=batch.all)


@router.get("/{organization_id}/navigation", response_model=List[NavigationSectionOut])
async def get_navigation(
    organization_id: uuid.UUID,
    auth: AuthorizationContext = Depends(require_permission(Action.READ, Resource.ORGANIZATION)),
    evaluator: PermissionEvaluator = Depends(get_evaluator),
):
    sections = await visible_navigation(evaluator, user_id=auth.user_id, organization_id=str(organization_id))
    return [
        NavigationSectionOut(
            title=section.title,
            items=[NavigationItemOut(title=item.title, href=item.href) for item in section.items],
        )
        for section in sections
    ]
