"""
DEV bypass policy: system-wide capabilities for platform operators.

The capabilities below never consult the organization permission table. A user
without SystemRole.DEV is denied them outright, whatever their organization roles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from mostrador.auth.evaluator import ALLOW, Decision, deny
from mostrador.auth.permissions import Action
from mostrador.core.errors import InvalidEvaluationInput
from mostrador.core.roles import OrganizationRole, SystemRole, has_at_least

DEV_CAPABILITIES: FrozenSet[Action] = frozenset(
    {
        Action.VIEW_INTERNAL_DATA,
        Action.MANAGE_STRIPE,
        Action.VIEW_LOGS,
        Action.DEBUG_SYSTEM,
        Action.IMPERSONATE,
    }
)

REASON_NOT_DEV = "dev role required"
REASON_PROTECTED_TARGET = "target is protected from impersonation"

RULE_DEV_SELF_ESCALATION = "dev_self_escalation"
RULE_DEV_ASSIGNER = "dev_assigner_required"
RULE_IMPERSONATION_CHAIN = "impersonation_chain"


@dataclass(frozen=True)
class Principal:
    """The identity facts the policy needs about a user account."""

    user_id: str
    system_role: Optional[SystemRole] = None
    # Highest role the user holds in any approved membership, if any.
    highest_organization_role: Optional[OrganizationRole] = None

    @property
    def is_dev(self) -> bool:
        return self.system_role is SystemRole.DEV


def is_dev_capability(action: Action) -> bool:
    return action in DEV_CAPABILITIES


def is_protected_from_impersonation(target: Principal) -> bool:
    if target.is_dev:
        return True
    role = target.highest_organization_role
    return role is not None and has_at_least(role, OrganizationRole.ADMIN)


class DevBypassPolicy:
    def __init__(self, capabilities: FrozenSet[Action] = DEV_CAPABILITIES) -> None:
        self.capabilities = frozenset(capabilities)

    def can(self, actor: Principal, action: Action) -> Decision:
        if action not in self.capabilities:
            raise InvalidEvaluationInput(f"{action.value} is not a DEV capability")
        if not actor.is_dev:
            return deny(REASON_NOT_DEV)
        return ALLOW

    def covers(self, action: Action) -> bool:
        return action in self.capabilities

    def decide(self, user_id: str, system_role: Optional[SystemRole], action: Action) -> Decision:
        return self.can(Principal(user_id=user_id, system_role=system_role), action)

    def can_impersonate(self, actor: Principal, target: Optional[Principal] = None) -> Decision:
        decision = self.can(actor, Action.IMPERSONATE)
        if not decision.allowed:
            return decision
        # DEV and ADMIN-or-higher targets are never impersonable, even by a DEV.
        if target is not None and is_protected_from_impersonation(target):
            return deny(REASON_PROTECTED_TARGET)
        return ALLOW


DEFAULT_DEV_POLICY = DevBypassPolicy()


def can_impersonate(actor: Principal, target: Optional[Principal] = None) -> bool:
    return DEFAULT_DEV_POLICY.can_impersonate(actor, target).allowed
