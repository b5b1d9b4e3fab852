# tests/test_request_gate.py
from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import AsyncClient, ASGITransport

from conftest import auth_headers, create_organization, create_user, member_of
from mostrador.api.deps.authorization import (
    AuthorizationContext,
    get_evaluator,
    get_membership_resolver,
    get_permission_table,
    require_dev_capability,
    require_permission,
    require_role,
)
from mostrador.auth.evaluator import PermissionEvaluator
from mostrador.auth.permissions import Action, Permission, PermissionTable, Resource
from mostrador.core.errors import MembershipStoreError, register_exception_handlers
from mostrador.core.roles import OrganizationRole, SystemRole
from mostrador.db.session import get_db


class FailingResolver:
    async def resolve(self, user_id, organization_id):
        raise MembershipStoreError("Membership store unavailable")


@pytest.fixture()
def gate_app(sessionmaker):
    """Minimal app exercising the gate with every organization-id source."""
    app = FastAPI()
    register_exception_handlers(app)
    app.state.handled = 0

    @app.post("/things")
    async def create_thing(
        auth: AuthorizationContext = Depends(require_permission(Action.CREATE, Resource.PRODUCT)),
    ):
        app.state.handled += 1
        return {"organization_id": str(auth.organization_id)}

    @app.post("/orgs/{organization_id}/things")
    async def create_scoped_thing(
        auth: AuthorizationContext = Depends(require_permission(Action.CREATE, Resource.PRODUCT)),
    ):
        return {"organization_id": str(auth.organization_id)}

    @app.delete("/orgs/{organization_id}/things/{thing_id}")
    async def delete_thing(
        organization_id: uuid.UUID,
        thing_id: str,
        auth: AuthorizationContext = Depends(
            require_permission(Action.DELETE, Resource.PRODUCT, resource_id_path="thing_id")
        ),
    ):
        app.state.handled += 1
        return {"deleted": thing_id}

    @app.get("/orgs/{organization_id}/admin-only")
    async def admin_only(_: AuthorizationContext = Depends(require_role(OrganizationRole.ADMIN))):
        return {"ok": True}

    @app.get("/broken")
    async def broken(evaluator: PermissionEvaluator = Depends(get_evaluator)):
        await evaluator.evaluate("", "org", Action.READ, Resource.PRODUCT)
        return {"ok": True}

    @app.get("/stripe")
    async def stripe(_=Depends(require_dev_capability(Action.MANAGE_STRIPE))):
        return {"ok": True}

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    return app


@pytest_asyncio.fixture()
async def gate_client(gate_app):
    async with AsyncClient(
        transport=ASGITransport(app=gate_app, raise_app_exceptions=False), base_url="http://test"
    ) as ac:
        yield ac


def test_unknown_action_fails_at_registration():
    with pytest.raises(ValueError):
        require_permission("FLY", Resource.PRODUCT)


@pytest.mark.asyncio
async def test_unauthenticated_is_401_before_evaluation(gate_client, db):
    org = await create_organization(db)

    res = await gate_client.post("/things", params={"organization_id": str(org.id)})
    assert res.status_code == 401
    assert res.json() == {"success": False, "error": {"code": "UNAUTHORIZED", "message": "Authentication required"}}

    res = await gate_client.post(
        "/things",
        params={"organization_id": str(org.id)},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_organization_id_from_query(gate_client, gate_app, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)

    res = await gate_client.post("/things", params={"organization_id": str(org.id)}, headers=auth_headers(manager))
    assert res.status_code == 200, res.text
    assert res.json() == {"organization_id": str(org.id)}
    assert gate_app.state.handled == 1


@pytest.mark.asyncio
async def test_organization_id_from_json_body(gate_client, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)

    res = await gate_client.post("/things", json={"organization_id": str(org.id)}, headers=auth_headers(manager))
    assert res.status_code == 200, res.text


@pytest.mark.asyncio
async def test_path_wins_over_query_and_body(gate_client, db):
    org = await create_organization(db)
    other = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)

    res = await gate_client.post(
        f"/orgs/{org.id}/things",
        params={"organization_id": str(other.id)},
        json={"organization_id": str(other.id)},
        headers=auth_headers(manager),
    )
    assert res.status_code == 200, res.text
    assert res.json() == {"organization_id": str(org.id)}

    # Same request routed through the organization the caller is not in.
    res = await gate_client.post(
        f"/orgs/{other.id}/things", params={"organization_id": str(org.id)}, headers=auth_headers(manager)
    )
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_query_wins_over_body(gate_client, db):
    org = await create_organization(db)
    other = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)

    res = await gate_client.post(
        "/things",
        params={"organization_id": str(org.id)},
        json={"organization_id": str(other.id)},
        headers=auth_headers(manager),
    )
    assert res.status_code == 200, res.text
    assert res.json() == {"organization_id": str(org.id)}

    res = await gate_client.post(
        "/things",
        params={"organization_id": str(other.id)},
        json={"organization_id": str(org.id)},
        headers=auth_headers(manager),
    )
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_empty_query_value_falls_through_to_body(gate_client, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)

    res = await gate_client.post(
        "/things",
        params={"organization_id": ""},
        json={"organization_id": str(org.id)},
        headers=auth_headers(manager),
    )
    assert res.status_code == 200, res.text
    assert res.json() == {"organization_id": str(org.id)}


@pytest.mark.asyncio
async def test_missing_organization_id_is_400(gate_client, db):
    user = await create_user(db)

    res = await gate_client.post("/things", json={"name": "x"}, headers=auth_headers(user))
    assert res.status_code == 400
    assert res.json()["error"] == {"code": "BAD_REQUEST", "message": "Organization ID is required"}

    res = await gate_client.post("/things", content=b"{not json", headers=auth_headers(user))
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_malformed_organization_id_is_400(gate_client, db):
    user = await create_user(db)

    res = await gate_client.post("/things", params={"organization_id": "not-a-uuid"}, headers=auth_headers(user))
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "BAD_REQUEST"


@pytest.mark.asyncio
async def test_deny_is_403_envelope_and_handler_never_runs(gate_client, gate_app, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)

    res = await gate_client.delete(f"/orgs/{org.id}/things/abc", headers=auth_headers(manager))
    assert res.status_code == 403
    assert res.json() == {
        "success": False,
        "error": {
            "code": "FORBIDDEN",
            "message": "Insufficient permissions",
            "details": {"required": {"action": "DELETE", "resource": "product"}, "resource": "abc"},
        },
    }
    assert gate_app.state.handled == 0


@pytest.mark.asyncio
async def test_admin_passes_delete_gate(gate_client, db):
    org = await create_organization(db)
    admin = await member_of(db, org, OrganizationRole.ADMIN)

    res = await gate_client.delete(f"/orgs/{org.id}/things/abc", headers=auth_headers(admin))
    assert res.status_code == 200
    assert res.json() == {"deleted": "abc"}


@pytest.mark.asyncio
async def test_require_role(gate_client, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)
    owner = await member_of(db, org, OrganizationRole.OWNER)

    assert (await gate_client.get(f"/orgs/{org.id}/admin-only", headers=auth_headers(manager))).status_code == 403
    assert (await gate_client.get(f"/orgs/{org.id}/admin-only", headers=auth_headers(owner))).status_code == 200


@pytest.mark.asyncio
async def test_dev_capability_gate(gate_client, db):
    org = await create_organization(db)
    owner = await member_of(db, org, OrganizationRole.OWNER)
    dev = await create_user(db, system_role=SystemRole.DEV)

    res = await gate_client.get("/stripe", headers=auth_headers(owner))
    assert res.status_code == 403
    assert res.json()["error"]["details"]["required"] == {"action": "MANAGE_STRIPE", "system_role": "DEV"}

    assert (await gate_client.get("/stripe", headers=auth_headers(dev))).status_code == 200


@pytest.mark.asyncio
async def test_store_failure_is_503_not_403(gate_client, gate_app, db):
    org = await create_organization(db)
    manager = await member_of(db, org, OrganizationRole.MANAGER)
    gate_app.dependency_overrides[get_membership_resolver] = lambda: FailingResolver()

    res = await gate_client.post("/things", params={"organization_id": str(org.id)}, headers=auth_headers(manager))
    assert res.status_code == 503
    assert res.json()["error"]["code"] == "STORE_UNAVAILABLE"
    assert gate_app.state.handled == 0


@pytest.mark.asyncio
async def test_injected_table_drives_the_gate(gate_client, gate_app, db):
    org = await create_organization(db)
    user = await member_of(db, org, OrganizationRole.USER)
    grant = [Permission(Action.DELETE, Resource.PRODUCT)]
    gate_app.dependency_overrides[get_permission_table] = lambda: PermissionTable(
        {role: grant for role in OrganizationRole}
    )

    res = await gate_client.delete(f"/orgs/{org.id}/things/abc", headers=auth_headers(user))
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_invalid_evaluation_input_escaping_a_handler_is_500(gate_client):
    res = await gate_client.get("/broken")
    assert res.status_code == 500
    assert res.json()["error"]["code"] == "INTERNAL_ERROR"
