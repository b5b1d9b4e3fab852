"""
Request gate: FastAPI dependencies that run the permission evaluator before a
handler executes.

    @router.delete("/{product_id}")
    async def delete_product(
        auth: AuthorizationContext = Depends(require_permission(Action.DELETE, Resource.PRODUCT)),
    ): ...

On deny the handler never runs; the caller gets the 403 refusal envelope.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.api.deps.auth import get_current_user
from mostrador.auth.dev_policy import DEFAULT_DEV_POLICY, DevBypassPolicy, Principal
from mostrador.auth.evaluator import ConditionContext, Decision, PermissionEvaluator
from mostrador.auth.membership import (
    MembershipResolver,
    ResolvedMembership,
    SqlMembershipResolver,
    SqlSystemRoleResolver,
    SystemRoleResolver,
)
from mostrador.auth.permissions import (
    DEFAULT_PERMISSION_TABLE,
    Action,
    PermissionTable,
    Resource,
    parse_action,
    parse_resource,
)
from mostrador.core.errors import BadRequestError, ForbiddenError, InvalidEvaluationInput
from mostrador.core.roles import OrganizationRole, SystemRole, parse_system_role
from mostrador.db.session import get_db
from mostrador.models.user import User

logger = logging.getLogger(__name__)

# (db, organization_id, resource_id) -> owner user id; raises NotFoundError for a missing row
OwnerLookup = Callable[[AsyncSession, uuid.UUID, str], Awaitable[Optional[str]]]


# ---------------------------------------------------------
# Evaluator wiring (override get_permission_table in tests)
# ---------------------------------------------------------
def get_permission_table() -> PermissionTable:
    return DEFAULT_PERMISSION_TABLE


def get_membership_resolver(db: AsyncSession = Depends(get_db)) -> MembershipResolver:
    return SqlMembershipResolver(db)


def get_system_role_resolver(db: AsyncSession = Depends(get_db)) -> SystemRoleResolver:
    return SqlSystemRoleResolver(db)


def get_dev_policy() -> DevBypassPolicy:
    return DEFAULT_DEV_POLICY


def get_evaluator(
    table: PermissionTable = Depends(get_permission_table),
    resolver: MembershipResolver = Depends(get_membership_resolver),
    dev_policy: DevBypassPolicy = Depends(get_dev_policy),
    system_roles: SystemRoleResolver = Depends(get_system_role_resolver),
) -> PermissionEvaluator:
    return PermissionEvaluator(table, resolver, dev_policy=dev_policy, system_roles=system_roles)


# ---------------------------------------------------------
# Request value extraction: path params -> query -> JSON body
# ---------------------------------------------------------
async def _json_body(request: Request) -> Any:
    if request.method in {"GET", "HEAD", "OPTIONS"}:
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


async def extract_request_value(request: Request, key: str) -> Optional[str]:
    """
    First non-empty value for `key` from route params, then query string, then a
    JSON object body. Returns None when none of them carries it.
    """
    value = request.path_params.get(key)
    if value not in (None, ""):
        return str(value)

    value = request.query_params.get(key)
    if value:
        return value

    body = await _json_body(request)
    if isinstance(body, dict):
        value = body.get(key)
        if value not in (None, ""):
            return str(value)

    return None


def _parse_organization_id(raw: Optional[str]) -> uuid.UUID:
    if not raw:
        raise BadRequestError("Organization ID is required")
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise BadRequestError("Organization ID must be a valid UUID")


@dataclass(frozen=True)
class AuthorizationContext:
    user: User
    organization_id: uuid.UUID
    action: Action
    resource: Resource
    decision: Decision
    resource_id: Optional[str] = None

    @property
    def user_id(self) -> str:
        return str(self.user.id)


def require_permission(
    action: Action | str,
    resource: Resource | str,
    *,
    organization_id_path: str = "organization_id",
    resource_id_path: Optional[str] = None,
    conditions: Optional[ConditionContext] = None,
    owner_lookup: Optional[OwnerLookup] = None,
    target_organization_id_path: Optional[str] = None,
):
    """
    Build a dependency enforcing `(action, resource)` on the request's organization.

    Args:
      organization_id_path: key looked up in path params, query string, then JSON body
      resource_id_path: same lookup for the target resource id (echoed in 403 details)
      conditions: extra checks handed to the evaluator
      owner_lookup: fills conditions.resource_owner_id from storage when ownership is required
      target_organization_id_path: fills conditions.target_organization_id from the request
    """
    # Route registration errors fail at import time, not per request.
    required_action = parse_action(action)
    required_resource = parse_resource(resource)

    async def _gate(
        request: Request,
        user: User = Depends(get_current_user),
        evaluator: PermissionEvaluator = Depends(get_evaluator),
        db: AsyncSession = Depends(get_db),
    ) -> AuthorizationContext:
        organization_id = _parse_organization_id(await extract_request_value(request, organization_id_path))

        resource_id = None
        if resource_id_path:
            resource_id = await extract_request_value(request, resource_id_path)

        async def _evaluate(context: Optional[ConditionContext]) -> Decision:
            try:
                decision = await evaluator.evaluate(
                    str(user.id),
                    str(organization_id),
                    required_action,
                    required_resource,
                    resource_id=resource_id,
                    context=context,
                )
            except InvalidEvaluationInput as exc:
                # Everything reaching the evaluator here came from the caller.
                raise BadRequestError(str(exc))

            if not decision.allowed:
                logger.info(
                    "Denied %s:%s for user=%s organization=%s resource=%s (%s)",
                    required_action.value,
                    required_resource.value,
                    user.id,
                    organization_id,
                    resource_id,
                    decision.reason,
                )
                raise ForbiddenError(
                    details={
                        "required": {"action": required_action.value, "resource": required_resource.value},
                        "resource": resource_id,
                    },
                )
            return decision

        context = conditions
        if context is not None:
            if context.require_ownership and owner_lookup is not None and resource_id:
                # Owner lookups run only for callers the table admits; they may raise 404.
                await _evaluate(None)
                context = replace(context, resource_owner_id=await owner_lookup(db, organization_id, resource_id))
            if context.require_same_organization and target_organization_id_path:
                target = await extract_request_value(request, target_organization_id_path)
                context = replace(context, target_organization_id=target)

        decision = await _evaluate(context)

        return AuthorizationContext(
            user=user,
            organization_id=organization_id,
            action=required_action,
            resource=required_resource,
            decision=decision,
            resource_id=resource_id,
        )

    return _gate


def require_role(min_role: OrganizationRole, *, organization_id_path: str = "organization_id"):
    """
    Minimum-role gate: READ on the organization plus a minimum_role condition.
    """
    return require_permission(
        Action.READ,
        Resource.ORGANIZATION,
        organization_id_path=organization_id_path,
        conditions=ConditionContext(minimum_role=min_role),
    )


async def get_actor_membership(
    auth: AuthorizationContext,
    evaluator: PermissionEvaluator,
) -> ResolvedMembership:
    """
    The acting user's membership after a gate has allowed the request.
    """
    membership = await evaluator.resolver.resolve(auth.user_id, str(auth.organization_id))
    if membership is None:
        # Membership vanished between the gate and the handler.
        raise ForbiddenError()
    return membership


def require_dev_capability(action: Action | str):
    """
    Gate for the DEV-only capabilities. Decided by the evaluator's DEV policy, the
    same path organization-scoped checks take for these actions.
    """
    required_action = parse_action(action)

    async def _gate(
        user: User = Depends(get_current_user),
        evaluator: PermissionEvaluator = Depends(get_evaluator),
    ) -> Principal:
        decision = await evaluator.check_capability(str(user.id), required_action)
        if not decision.allowed:
            logger.info("Denied DEV capability %s for user=%s (%s)", required_action.value, user.id, decision.reason)
            raise ForbiddenError(
                details={"required": {"action": required_action.value, "system_role": SystemRole.DEV.value}},
            )
        return Principal(user_id=str(user.id), system_role=parse_system_role(user.system_role))

    return _gate
