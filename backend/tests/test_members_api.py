# tests/test_members_api.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import add_membership, auth_headers, create_organization, create_user, member_of
from mostrador.core.roles import MembershipStatus, OrganizationRole
from mostrador.models.audit_log import AuditLog
from mostrador.models.organization_membership import OrganizationMembership


async def membership_row(db, org, user) -> OrganizationMembership:
    stmt = select(OrganizationMembership).where(
        OrganizationMembership.organization_id == org.id,
        OrganizationMembership.user_id == user.id,
    )
    return (await db.execute(stmt.execution_options(populate_existing=True))).scalar_one()


@pytest.mark.asyncio
async def test_list_members_requires_membership(client, db):
    org = await create_organization(db)
    user = await member_of(db, org, OrganizationRole.USER)
    outsider = await create_user(db)

    res = await client.get(f"/api/v1/organizations/{org.id}/members", headers=auth_headers(user))
    assert res.status_code == 200
    assert [m["role"] for m in res.json()] == ["USER"]

    res = await client.get(f"/api/v1/organizations/{org.id}/members", headers=auth_headers(outsider))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_admin_adds_member(client, db):
    org = await create_organization(db)
    admin = await member_of(db, org, OrganizationRole.ADMIN)
    newcomer = await create_user(db, "newcomer@example.com")

    res = await client.post(
        f"/api/v1/organizations/{org.id}/members",
        json={"email": "Newcomer@Example.com", "role": "MANAGER"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["user_id"] == str(newcomer.id)
    assert body["role"] == "MANAGER"
    assert body["status"] == "approved"
    assert body["invited_by_user_id"] == str(admin.id)

    res = await client.post(
        f"/api/v1/organizations/{org.id}/members",
        json={"email": "newcomer@example.com"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 409

    audit = (await db.execute(select(AuditLog).where(AuditLog.action == "MEMBER_ADDED"))).scalar_one()
    assert audit.organization_id == org.id


@pytest.mark.asyncio
async def test_unknown_email_is_404(client, db):
    org = await create_organization(db)
    admin = await member_of(db, org, OrganizationRole.ADMIN)

    res = await client.post(
        f"/api/v1/organizations/{org.id}/members",
        json={"email": "ghost@example.com"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 404
    assert res.json()["error"] == {"code": "NOT_FOUND", "message": "User not found"}


@pytest.mark.asyncio
async def test_manager_cannot_manage_members(client, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)
    await create_user(db, "newcomer@example.com")

    res = await client.post(
        f"/api/v1/organizations/{org.id}/members",
        json={"email": "newcomer@example.com"},
        headers=auth_headers(manager),
    )
    assert res.status_code == 403
    assert res.json()["error"]["details"]["required"] == {"action": "MANAGE_USERS", "resource": "user"}


@pytest.mark.asyncio
async def test_admin_cannot_grant_or_touch_owner(client, db):
    org = await create_organization(db)
    admin = await member_of(db, org, OrganizationRole.ADMIN)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    target = await member_of(db, org, OrganizationRole.USER)
    target_row = await membership_row(db, org, target)
    owner_row = await membership_row(db, org, owner)

    res = await client.patch(
        f"/api/v1/organizations/{org.id}/members/{target_row.id}",
        json={"role": "OWNER"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 403

    res = await client.delete(f"/api/v1/organizations/{org.id}/members/{owner_row.id}", headers=auth_headers(admin))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_update_requires_a_change(client, db):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    target = await member_of(db, org, OrganizationRole.USER)
    target_row = await membership_row(db, org, target)

    res = await client.patch(
        f"/api/v1/organizations/{org.id}/members/{target_row.id}", json={}, headers=auth_headers(owner)
    )
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_promotion_takes_effect_on_next_request(client, db):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    target = await member_of(db, org, OrganizationRole.MANAGER)
    target_row = await membership_row(db, org, target)
    products = f"/api/v1/organizations/{org.id}/products"

    res = await client.post(products, json={"name": "Cafe", "price_amount": "2.50"}, headers=auth_headers(target))
    assert res.status_code == 201
    product_id = res.json()["id"]
    assert (await client.delete(f"{products}/{product_id}", headers=auth_headers(target))).status_code == 403

    res = await client.patch(
        f"/api/v1/organizations/{org.id}/members/{target_row.id}",
        json={"role": "ADMIN"},
        headers=auth_headers(owner),
    )
    assert res.status_code == 200
    assert res.json()["role"] == "ADMIN"

    assert (await client.delete(f"{products}/{product_id}", headers=auth_headers(target))).status_code == 204


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["suspended", "pending"])
async def test_inactive_member_loses_access(client, db, status):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    target = await member_of(db, org, OrganizationRole.ADMIN)
    target_row = await membership_row(db, org, target)

    res = await client.patch(
        f"/api/v1/organizations/{org.id}/members/{target_row.id}",
        json={"status": status},
        headers=auth_headers(owner),
    )
    assert res.status_code == 200

    res = await client.get(f"/api/v1/organizations/{org.id}/products", headers=auth_headers(target))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_last_owner_cannot_be_removed(client, db):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    owner_row = await membership_row(db, org, owner)

    res = await client.delete(f"/api/v1/organizations/{org.id}/members/{owner_row.id}", headers=auth_headers(owner))
    assert res.status_code == 409
    assert res.json()["error"] == {
        "code": "CONFLICT",
        "message": "Cannot remove the last owner from organization",
        "details": {"rule": "last_owner"},
    }

    assert (await membership_row(db, org, owner)).role == "OWNER"


@pytest.mark.asyncio
async def test_last_owner_cannot_be_demoted_or_suspended(client, db):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    owner_row = await membership_row(db, org, owner)
    url = f"/api/v1/organizations/{org.id}/members/{owner_row.id}"

    for payload in ({"role": "ADMIN"}, {"status": "suspended"}):
        res = await client.patch(url, json=payload, headers=auth_headers(owner))
        assert res.status_code == 409
        assert res.json()["error"]["details"] == {"rule": "last_owner"}


@pytest.mark.asyncio
async def test_owner_removed_when_another_owner_remains(client, db):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    co_owner = await create_user(db)
    co_row = await add_membership(db, org.id, co_owner.id, OrganizationRole.OWNER)

    res = await client.delete(f"/api/v1/organizations/{org.id}/members/{co_row.id}", headers=auth_headers(owner))
    assert res.status_code == 204

    # A suspended owner does not count towards the remaining owners.
    suspended = await create_user(db)
    await add_membership(db, org.id, suspended.id, OrganizationRole.OWNER, MembershipStatus.SUSPENDED)
    owner_row = await membership_row(db, org, owner)
    res = await client.delete(f"/api/v1/organizations/{org.id}/members/{owner_row.id}", headers=auth_headers(owner))
    assert res.status_code == 409
