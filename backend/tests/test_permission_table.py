# tests/test_permission_table.py
from __future__ import annotations

import pytest

from mostrador.auth.permissions import (
    DEFAULT_PERMISSION_TABLE,
    DESTRUCTIVE_ACTIONS,
    KNOWN_MONOTONICITY_EXCEPTIONS,
    PRODUCT_FAMILY,
    Action,
    Permission,
    PermissionTable,
    Resource,
    parse_action,
    parse_resource,
)
from mostrador.core.roles import (
    MembershipStatus,
    OrganizationRole,
    SystemRole,
    has_at_least,
    parse_role,
    parse_status,
    parse_system_role,
    rank,
)

ROLES = [OrganizationRole.USER, OrganizationRole.MANAGER, OrganizationRole.ADMIN, OrganizationRole.OWNER]


# ---------------------------------------------------------
# Role hierarchy
# ---------------------------------------------------------
def test_role_ranks_are_strictly_increasing():
    ranks = [rank(r) for r in ROLES]
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == len(ranks)


@pytest.mark.parametrize("actual", ROLES)
@pytest.mark.parametrize("required", ROLES)
def test_has_at_least_follows_rank(actual, required):
    assert has_at_least(actual, required) == (ROLES.index(actual) >= ROLES.index(required))


def test_parse_role_accepts_case_and_whitespace():
    assert parse_role(" admin ") is OrganizationRole.ADMIN
    assert parse_role(OrganizationRole.OWNER) is OrganizationRole.OWNER


@pytest.mark.parametrize("value", ["", None, "SUPERUSER", "DEV"])
def test_parse_role_rejects_unknown_values(value):
    with pytest.raises(ValueError):
        parse_role(value)


def test_system_role_is_separate_from_organization_roles():
    assert parse_system_role("dev") is SystemRole.DEV
    assert parse_system_role(None) is None
    assert parse_system_role("  ") is None
    with pytest.raises(ValueError):
        parse_system_role("OWNER")


def test_parse_status():
    assert parse_status("APPROVED") is MembershipStatus.APPROVED
    with pytest.raises(ValueError):
        parse_status("banned")


# ---------------------------------------------------------
# Default table
# ---------------------------------------------------------
def test_default_table_is_monotonic():
    violations = DEFAULT_PERMISSION_TABLE.monotonicity_violations()
    assert violations == KNOWN_MONOTONICITY_EXCEPTIONS
    assert KNOWN_MONOTONICITY_EXCEPTIONS == frozenset()


def test_user_only_reads_the_organization():
    org_perms = {p for p in DEFAULT_PERMISSION_TABLE.permissions_for(OrganizationRole.USER) if p.resource is Resource.ORGANIZATION}
    assert org_perms == {Permission(Action.READ, Resource.ORGANIZATION)}


@pytest.mark.parametrize("resource", PRODUCT_FAMILY)
def test_manager_edits_but_never_destroys_the_catalog(resource):
    table = DEFAULT_PERMISSION_TABLE
    assert table.allows(OrganizationRole.MANAGER, Action.CREATE, resource)
    assert table.allows(OrganizationRole.MANAGER, Action.UPDATE, resource)
    for action in DESTRUCTIVE_ACTIONS:
        assert not table.allows(OrganizationRole.MANAGER, action, resource)
        assert table.allows(OrganizationRole.ADMIN, action, resource)


def test_owner_only_grants():
    table = DEFAULT_PERMISSION_TABLE
    for action, resource in [
        (Action.DELETE, Resource.ORGANIZATION),
        (Action.MANAGE_ROLES, Resource.ROLE),
        (Action.MANAGE_BILLING, Resource.BILLING),
    ]:
        assert table.allows(OrganizationRole.OWNER, action, resource)
        assert not table.allows(OrganizationRole.ADMIN, action, resource)


def test_no_role_holds_dev_capabilities():
    dev_actions = {
        Action.IMPERSONATE,
        Action.VIEW_INTERNAL_DATA,
        Action.MANAGE_STRIPE,
        Action.VIEW_LOGS,
        Action.DEBUG_SYSTEM,
    }
    for role in ROLES:
        held = {p.action for p in DEFAULT_PERMISSION_TABLE.permissions_for(role)}
        assert not held & dev_actions


# ---------------------------------------------------------
# Table construction
# ---------------------------------------------------------
def test_table_requires_every_role():
    with pytest.raises(ValueError):
        PermissionTable({OrganizationRole.OWNER: []})


def test_table_is_immutable():
    grants = DEFAULT_PERMISSION_TABLE.permissions_for(OrganizationRole.USER)
    assert isinstance(grants, frozenset)
    with pytest.raises(TypeError):
        DEFAULT_PERMISSION_TABLE._grants[OrganizationRole.USER] = frozenset()  # type: ignore[index]


def test_monotonicity_violations_are_reported():
    read_product = Permission(Action.READ, Resource.PRODUCT)
    table = PermissionTable(
        {
            OrganizationRole.USER: [read_product],
            OrganizationRole.MANAGER: [read_product],
            OrganizationRole.ADMIN: [],
            OrganizationRole.OWNER: [read_product],
        }
    )
    violations = table.monotonicity_violations()
    assert (OrganizationRole.USER, OrganizationRole.ADMIN, read_product) in violations
    assert (OrganizationRole.MANAGER, OrganizationRole.ADMIN, read_product) in violations
    assert len(violations) == 2


def test_parse_action_and_resource():
    assert parse_action("manage_users") is Action.MANAGE_USERS
    assert parse_resource("PRODUCT") is Resource.PRODUCT
    with pytest.raises(ValueError):
        parse_action("FLY")
    with pytest.raises(ValueError):
        parse_resource("spaceship")
