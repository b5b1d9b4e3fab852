"""
Permission evaluator: the single allow/deny decision used by every gate.

    evaluate(user_id, organization_id, action, resource, resource_id=?, context=?) -> Decision

0. DEV capabilities, when a DEV policy is wired in, skip the table and are
   decided by the policy from the user's system role.
1. Resolve the membership. Absent or not approved -> deny "not a member".
2. (action, resource) not granted to the role -> deny "insufficient role".
3. With a context:
     OWNER -> allow (trusted inside its own organization)
     minimum_role not met -> deny "insufficient role"
     require_ownership and owner != user -> deny "not resource owner"
     require_same_organization and target != organization -> deny "cross-organization access"
4. Allow.

Batches (check_batch, has_any, has_all) evaluate every check; "all" of an empty
batch is true and "any" of it is false.

A deny is a return value. Only malformed input raises (InvalidEvaluationInput), so
callers cannot confuse a bug with a legitimate refusal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional, Tuple

from mostrador.auth.membership import MembershipResolver, ResolvedMembership, SystemRoleResolver
from mostrador.auth.permissions import (
    Action,
    Permission,
    PermissionTable,
    Resource,
    parse_action,
    parse_resource,
)
from mostrador.core.errors import InvalidEvaluationInput
from mostrador.core.roles import OrganizationRole, has_at_least

if TYPE_CHECKING:
    from mostrador.auth.dev_policy import DevBypassPolicy

REASON_NOT_A_MEMBER = "not a member"
REASON_INSUFFICIENT_ROLE = "insufficient role"
REASON_NOT_RESOURCE_OWNER = "not resource owner"
REASON_CROSS_ORGANIZATION = "cross-organization access"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    # Diagnostics only; never shown to end users.
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(allowed=True)


def deny(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason)


@dataclass(frozen=True)
class ConditionContext:
    require_ownership: bool = False
    resource_owner_id: Optional[str] = None
    require_same_organization: bool = False
    target_organization_id: Optional[str] = None
    minimum_role: Optional[OrganizationRole] = None


@dataclass(frozen=True)
class PermissionCheck:
    action: Action
    resource: Resource
    resource_id: Optional[str] = None
    context: Optional[ConditionContext] = field(default=None)


@dataclass(frozen=True)
class BatchDecision:
    decisions: Tuple[Decision, ...]

    @property
    def any(self) -> bool:
        return any(d.allowed for d in self.decisions)

    @property
    def all(self) -> bool:
        return all(d.allowed for d in self.decisions)


def _require_id(name: str, value: object) -> str:
    if value is None:
        raise InvalidEvaluationInput(f"{name} is required")
    text = str(value).strip()
    if not text:
        raise InvalidEvaluationInput(f"{name} is required")
    return text


def _coerce_action(value: str | Action) -> Action:
    try:
        return parse_action(value)
    except ValueError as exc:
        raise InvalidEvaluationInput(str(exc)) from None


def _coerce_resource(value: str | Resource) -> Resource:
    try:
        return parse_resource(value)
    except ValueError as exc:
        raise InvalidEvaluationInput(str(exc)) from None


def check_conditions(
    membership: ResolvedMembership,
    context: ConditionContext,
) -> Decision:
    if membership.role is OrganizationRole.OWNER:
        return ALLOW

    if context.minimum_role is not None and not has_at_least(membership.role, context.minimum_role):
        return deny(REASON_INSUFFICIENT_ROLE)

    if context.require_ownership:
        owner = context.resource_owner_id
        if owner is None or str(owner) != membership.user_id:
            return deny(REASON_NOT_RESOURCE_OWNER)

    if context.require_same_organization:
        target = context.target_organization_id
        if target is None or str(target) != membership.organization_id:
            return deny(REASON_CROSS_ORGANIZATION)

    return ALLOW


class PermissionEvaluator:
    """
    Stateless apart from its collaborators, all injected:
      - table: the immutable role -> permissions lookup
      - resolver: membership lookup against shared storage
      - dev_policy / system_roles: decide the DEV capabilities (optional; without
        them those actions fall through to the table, which never grants them)
    """

    def __init__(
        self,
        table: PermissionTable,
        resolver: MembershipResolver,
        *,
        dev_policy: Optional["DevBypassPolicy"] = None,
        system_roles: Optional[SystemRoleResolver] = None,
    ) -> None:
        self.table = table
        self.resolver = resolver
        self.dev_policy = dev_policy
        self.system_roles = system_roles

    async def evaluate(
        self,
        user_id: str,
        organization_id: str,
        action: str | Action,
        resource: str | Resource,
        *,
        resource_id: Optional[str] = None,
        context: Optional[ConditionContext] = None,
    ) -> Decision:
        user_id = _require_id("user_id", user_id)
        organization_id = _require_id("organization_id", organization_id)
        action = _coerce_action(action)
        resource = _coerce_resource(resource)

        if self.dev_policy is not None and self.dev_policy.covers(action):
            return await self.check_capability(user_id, action)

        membership = await self.resolver.resolve(user_id, organization_id)
        if membership is None:
            return deny(REASON_NOT_A_MEMBER)

        if not self.table.allows(membership.role, action, resource):
            return deny(REASON_INSUFFICIENT_ROLE)

        if context is not None:
            return check_conditions(membership, context)

        return ALLOW

    async def check_capability(self, user_id: str, action: str | Action) -> Decision:
        """
        Organization-independent decision for a DEV capability. Raises
        InvalidEvaluationInput for any other action or when no policy is wired in.
        """
        user_id = _require_id("user_id", user_id)
        action = _coerce_action(action)
        if self.dev_policy is None:
            raise InvalidEvaluationInput("No DEV policy configured")

        system_role = None
        if self.system_roles is not None:
            system_role = await self.system_roles.resolve(user_id)
        return self.dev_policy.decide(user_id, system_role, action)

    async def check(self, user_id: str, organization_id: str, check: PermissionCheck) -> Decision:
        return await self.evaluate(
            user_id,
            organization_id,
            check.action,
            check.resource,
            resource_id=check.resource_id,
            context=check.context,
        )

    async def check_batch(
        self,
        user_id: str,
        organization_id: str,
        checks: Iterable[PermissionCheck],
    ) -> BatchDecision:
        decisions = []
        for c in checks:
            decisions.append(await self.check(user_id, organization_id, c))
        return BatchDecision(tuple(decisions))

    async def has_any(self, user_id: str, organization_id: str, checks: Iterable[PermissionCheck]) -> bool:
        return (await self.check_batch(user_id, organization_id, checks)).any

    async def has_all(self, user_id: str, organization_id: str, checks: Iterable[PermissionCheck]) -> bool:
        return (await self.check_batch(user_id, organization_id, checks)).all

    async def effective_permissions(
        self,
        user_id: str,
        organization_id: str,
    ) -> tuple[Optional[ResolvedMembership], FrozenSet[Permission]]:
        user_id = _require_id("user_id", user_id)
        organization_id = _require_id("organization_id", organization_id)

        membership = await self.resolver.resolve(user_id, organization_id)
        if membership is None:
            return None, frozenset()
        return membership, self.table.permissions_for(membership.role)
