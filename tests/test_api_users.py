"""User endpoints: creation with positions, assignment, checks and deletion."""
import pytest
from sqlalchemy import select

from pbac.features.permissions.models import Permission, Role
from pbac.features.positions.models import Position, model_has_positions
from tests.helpers import auth_headers, make_user

pytestmark = pytest.mark.asyncio


async def _names(response) -> list[str]:
    return sorted(position["name"] for position in response.json())


async def test_create_user_with_positions(async_client, admin, catalog):
    headers = auth_headers(admin)

    response = await async_client.post(
        "/users/",
        json={"email": "new@acme.io", "name": "New", "positions": ["Manager", catalog.clerk.id, ""]},
        headers=headers,
    )

    assert response.status_code == 201, response.text
    user_id = response.json()["id"]
    positions = await async_client.get(f"/users/{user_id}/positions", headers=headers)
    assert await _names(positions) == ["Accounts Clerk", "Manager"]

    check = await async_client.get(
        f"/users/{user_id}/permissions/check", params={"permission": "approve-invoice"}, headers=headers
    )
    assert check.json() == {"permission": "approve-invoice", "guard_name": None, "granted": True}


async def test_create_user_with_unknown_position_creates_nothing(async_client, admin, catalog):
    headers = auth_headers(admin)

    response = await async_client.post(
        "/users/", json={"email": "new@acme.io", "name": "New", "positions": ["Janitor"]}, headers=headers
    )

    assert response.status_code == 404
    listed = await async_client.get("/users/")
    assert [u["name"] for u in listed.json()] == ["admin"]


async def test_duplicate_email(async_client, admin):
    response = await async_client.post(
        "/users/", json={"email": "admin@acme.io", "name": "Again"}, headers=auth_headers(admin)
    )

    assert response.status_code == 409


async def test_me(async_client, admin):
    response = await async_client.get("/users/me", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["email"] == "admin@acme.io"
    assert response.json()["last_login_at"] is not None


async def test_invalid_token(async_client):
    response = await async_client.get("/users/me", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


async def test_assign_sync_and_remove(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    user = await make_user(db, "u@acme.io")
    url = f"/users/{user.id}/positions"

    assigned = await async_client.post(url, json={"positions": ["Manager"]}, headers=headers)
    assigned = await async_client.post(url, json={"positions": ["Manager", "Auditor"]}, headers=headers)
    assert await _names(assigned) == ["Auditor", "Manager"]

    synced = await async_client.put(url, json={"positions": ["Accounts Clerk", catalog.auditor_position.id]}, headers=headers)
    assert await _names(synced) == ["Accounts Clerk", "Auditor"]

    removed = await async_client.delete(f"{url}/Auditor", headers=headers)
    assert await _names(removed) == ["Accounts Clerk"]

    missing = await async_client.put(url, json={"positions": ["Janitor"]}, headers=headers)
    assert missing.status_code == 404
    current = await async_client.get(url, headers=headers)
    assert await _names(current) == ["Accounts Clerk"]


async def test_position_and_permission_checks(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    user = await make_user(db, "u@acme.io")
    await async_client.post(f"/users/{user.id}/positions", json={"positions": ["Auditor"]}, headers=headers)

    held = await async_client.get(f"/users/{user.id}/positions/check", params={"position": "Manager|Auditor"}, headers=headers)
    not_held = await async_client.get(f"/users/{user.id}/positions/check", params={"position": "Manager"}, headers=headers)
    assert held.json() == {"position": "Manager|Auditor", "held": True}
    assert not_held.json()["held"] is False

    denied = await async_client.get(
        f"/users/{user.id}/permissions/check", params={"permission": "approve-invoice"}, headers=headers
    )
    unknown = await async_client.get(
        f"/users/{user.id}/permissions/check", params={"permission": "approve-everything"}, headers=headers
    )
    assert denied.json()["granted"] is False
    assert unknown.status_code == 404

    permissions = await async_client.get(f"/users/{user.id}/permissions", headers=headers)
    assert [p["name"] for p in permissions.json()] == ["reports.read"]


async def test_list_users_by_position(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    manager = await make_user(db, "m@acme.io", name="Mia")
    await make_user(db, "n@acme.io", name="Ned")
    await async_client.post(f"/users/{manager.id}/positions", json={"positions": ["Manager"]}, headers=headers)

    everyone = await async_client.get("/users/")
    managers = await async_client.get("/users/", params={"position": "Manager"})
    unknown = await async_client.get("/users/", params={"position": "Janitor"})

    assert [u["name"] for u in everyone.json()] == ["Mia", "Ned", "admin"]
    assert [u["name"] for u in managers.json()] == ["Mia"]
    assert unknown.status_code == 404


async def test_soft_delete_restore_and_force_delete(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    user = await make_user(db, "u@acme.io")
    await async_client.post(f"/users/{user.id}/positions", json={"positions": ["Manager"]}, headers=headers)

    async def assignment_count() -> int:
        rows = await db.execute(select(model_has_positions).where(model_has_positions.c.model_id == user.id))
        return len(rows.all())

    deleted = await async_client.delete(f"/users/{user.id}", headers=headers)
    assert deleted.status_code == 204
    assert (await async_client.get(f"/users/{user.id}")).status_code == 404
    assert await assignment_count() == 1

    restored = await async_client.post(f"/users/{user.id}/restore", headers=headers)
    assert restored.status_code == 200
    assert restored.json()["deleted_at"] is None
    positions = await async_client.get(f"/users/{user.id}/positions", headers=headers)
    assert await _names(positions) == ["Manager"]

    forced = await async_client.delete(f"/users/{user.id}/force", headers=headers)
    assert forced.status_code == 204
    assert await assignment_count() == 0


async def test_cannot_delete_self(async_client, admin):
    response = await async_client.delete(f"/users/{admin.id}", headers=auth_headers(admin))

    assert response.status_code == 400


async def test_read_access_granted_through_a_position(async_client, db, admin, catalog):
    headers = auth_headers(admin)
    users_read = Permission(name="users.read")
    viewer_role = Role(name="viewer", permissions=[users_read])
    db.add_all([users_read, viewer_role, Position(name="HR", roles=[viewer_role])])
    await db.commit()
    hr = await make_user(db, "hr@acme.io")
    plain = await make_user(db, "plain@acme.io")
    await async_client.post(f"/users/{hr.id}/positions", json={"positions": ["HR"]}, headers=headers)

    url = f"/users/{plain.id}/positions"
    assert (await async_client.get(url, headers=auth_headers(hr))).status_code == 200
    assert (await async_client.get(url, headers=auth_headers(plain))).status_code == 403
    check = await async_client.get(
        f"/users/{plain.id}/positions/check", params={"position": "HR"}, headers=auth_headers(hr)
    )
    assert check.json()["held"] is False
