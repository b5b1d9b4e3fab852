from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from mostrador.auth.evaluator import ConditionContext, PermissionCheck
from mostrador.auth.permissions import Action, Resource
from mostrador.core.roles import MembershipStatus, OrganizationRole


class PermissionOut(BaseModel):
    action: Action
    resource: Resource


class MembershipSummary(BaseModel):
    role: OrganizationRole
    status: MembershipStatus


class EffectivePermissionsOut(BaseModel):
    organization_id: str
    role: OrganizationRole
    permissions: List[PermissionOut]
    membership: MembershipSummary


class ConditionContextIn(BaseModel):
    require_ownership: bool = False
    resource_owner_id: Optional[str] = None
    require_same_organization: bool = False
    target_organization_id: Optional[str] = None
    minimum_role: Optional[OrganizationRole] = None

    def to_context(self) -> ConditionContext:
        return ConditionContext(**self.model_dump())


class PermissionCheckIn(BaseModel):
    action: Action
    resource: Resource
    resource_id: Optional[str] = None
    conditions: Optional[ConditionContextIn] = None

    def to_check(self) -> PermissionCheck:
        return PermissionCheck(
            action=self.action,
            resource=self.resource,
            resource_id=self.resource_id,
            context=self.conditions.to_context() if self.conditions else None,
        )


class BatchPermissionCheckIn(BaseModel):
    checks: List[PermissionCheckIn] = Field(..., min_length=1, max_length=50)


class PermissionCheckResult(BaseModel):
    action: Action
    resource: Resource
    resource_id: Optional[str] = None
    allowed: bool


class BatchPermissionCheckOut(BaseModel):
    results: List[PermissionCheckResult]
    any: bool
    all: bool


class NavigationItemOut(BaseModel):
    href: str
    title: str


class NavigationSectionOut(BaseModel):
    title: str
    items: List[NavigationItemOut]
