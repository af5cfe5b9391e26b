"""Role and permission management endpoints."""
import pytest

from tests.helpers import auth_headers, make_user

pytestmark = pytest.mark.asyncio


async def test_role_grant_flow(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    user = await make_user(db, "u@acme.io")

    permission = await async_client.post(
        "/permissions/permissions", json={"name": "invoices.void", "description": "Void invoices"}, headers=headers
    )
    assert permission.status_code == 201, permission.text
    assert permission.json()["guard_name"] == "api"

    role = await async_client.post("/permissions/roles", json={"name": "voider"}, headers=headers)
    assert role.status_code == 201, role.text
    role_id = role.json()["id"]

    granted = await async_client.post(
        f"/permissions/roles/{role_id}/permissions", json={"permission": "invoices.void"}, headers=headers
    )
    assert [p["name"] for p in granted.json()["permissions"]] == ["invoices.void"]

    check_url = f"/users/{user.id}/permissions/check"
    params = {"permission": "invoices.void"}
    assert (await async_client.get(check_url, params=params, headers=headers)).json()["granted"] is False

    assigned = await async_client.post(f"/permissions/users/{user.id}/roles", json={"role": "voider"}, headers=headers)
    assert [r["name"] for r in assigned.json()] == ["voider"]
    assert (await async_client.get(check_url, params=params, headers=headers)).json()["granted"] is True

    removed = await async_client.delete(f"/permissions/users/{user.id}/roles/voider", headers=headers)
    assert removed.json() == []
    assert (await async_client.get(check_url, params=params, headers=headers)).json()["granted"] is False


async def test_direct_permission_grant(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    user = await make_user(db, "u@acme.io")

    response = await async_client.post(
        f"/permissions/users/{user.id}/permissions", json={"permission": "reports.read"}, headers=headers
    )

    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["reports.read"]


async def test_same_name_in_another_guard(async_client, admin, catalog):
    headers = auth_headers(admin)

    duplicate = await async_client.post("/permissions/permissions", json={"name": "approve-invoice"}, headers=headers)
    other_guard = await async_client.post(
        "/permissions/permissions", json={"name": "approve-invoice", "guard_name": "web"}, headers=headers
    )
    web = await async_client.get("/permissions/permissions", params={"guard_name": "web"}, headers=headers)

    assert duplicate.status_code == 409
    assert other_guard.status_code == 201
    assert [p["guard_name"] for p in web.json()] == ["web"]


async def test_unknown_role_and_permission(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    user = await make_user(db, "u@acme.io")

    role = await async_client.post(f"/permissions/users/{user.id}/roles", json={"role": "ghost"}, headers=headers)
    permission = await async_client.post(
        f"/permissions/roles/{catalog.approver.id}/permissions", json={"permission": "ghost"}, headers=headers
    )

    assert role.status_code == 404
    assert permission.status_code == 404


async def test_invalid_names_are_rejected(async_client, admin):
    response = await async_client.post("/permissions/roles", json={"name": "bad name!"}, headers=auth_headers(admin))

    assert response.status_code == 400
    assert "name" in response.json()


async def test_delete_role_and_audit_log(async_client, admin, catalog):
    headers = auth_headers(admin)

    deleted = await async_client.delete(f"/permissions/roles/{catalog.auditor.id}", headers=headers)
    assert deleted.status_code == 204
    assert (await async_client.get(f"/permissions/roles/{catalog.auditor.id}", headers=headers)).status_code == 404

    position = await async_client.get("/positions/Auditor", headers=headers)
    assert position.json()["roles"] == []

    logs = await async_client.get("/permissions/audit-logs", params={"resource_type": "role"}, headers=headers)
    assert [(log["action"], log["details"]) for log in logs.json()] == [("delete", {"name": "auditor"})]
