"""
Integration tests for user, device and permission endpoints.
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core import capabilities
from tracker.services import push_tokens
from tracker.testing import (
    create_department,
    create_subtask,
    create_task,
    create_user,
    get_auth_headers,
    get_or_create_permission,
    grant_permissions,
)


@pytest.mark.integration
async def test_read_me(client: AsyncClient, session: AsyncSession):
    department = await create_department(session)
    user = await create_user(session, department_id=department.id)
    await grant_permissions(session, user, capabilities.LOG_TIME_OWN, capabilities.ADD_COMMENT)

    response = await client.get("/api/v1/users/me", headers=get_auth_headers(user))

    assert response.status_code == 200
    assert response.json() == {
        "id": user.id,
        "department_id": department.id,
        "permissions": [capabilities.ADD_COMMENT, capabilities.LOG_TIME_OWN],
    }


@pytest.mark.integration
async def test_user_without_permissions_has_empty_list(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)

    response = await client.get("/api/v1/users/me", headers=get_auth_headers(user))

    assert response.json()["permissions"] == []


@pytest.mark.integration
async def test_permission_management_requires_manage_users(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    headers = get_auth_headers(user)

    assert (await client.get(f"/api/v1/users/{user.id}/permissions", headers=headers)).status_code == 403
    response = await client.put(f"/api/v1/users/{user.id}/permissions", headers=headers, json={"permission_ids": []})
    assert response.status_code == 403


@pytest.mark.integration
async def test_permission_change_applies_on_next_request(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session)
    worker = await create_user(session)
    await grant_permissions(session, admin, capabilities.MANAGE_USERS)
    view_any = await get_or_create_permission(session, capabilities.VIEW_ANY_TASK)
    await create_task(session, admin, admin, title="Admin only")
    worker_headers = get_auth_headers(worker)

    before = await client.get("/api/v1/tasks/", headers=worker_headers)
    assert before.json() == []

    response = await client.put(
        f"/api/v1/users/{worker.id}/permissions",
        headers=get_auth_headers(admin),
        json={"permission_ids": [view_any.id]},
    )
    assert response.status_code == 200
    assert response.json() == {"permission_ids": [view_any.id], "permissions": [capabilities.VIEW_ANY_TASK]}

    after = await client.get("/api/v1/tasks/", headers=worker_headers)
    assert [task["title"] for task in after.json()] == ["Admin only"]

    read_back = await client.get(f"/api/v1/users/{worker.id}/permissions", headers=get_auth_headers(admin))
    assert read_back.json()["permission_ids"] == [view_any.id]


@pytest.mark.integration
async def test_permission_update_errors(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session)
    await grant_permissions(session, admin, capabilities.MANAGE_USERS)
    headers = get_auth_headers(admin)

    unknown = await client.put(f"/api/v1/users/{admin.id}/permissions", headers=headers, json={"permission_ids": [999]})
    assert unknown.status_code == 400

    missing = await client.put("/api/v1/users/4242/permissions", headers=headers, json={"permission_ids": []})
    assert missing.status_code == 404

    # The rejected update left the admin's own rights intact
    assert (await client.get("/api/v1/users/permissions", headers=headers)).status_code == 200


@pytest.mark.integration
async def test_register_and_unregister_device(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    headers = get_auth_headers(user)
    token = "fcm-device-token-abcdefghijklmnopqrstuvwxyz"

    for _ in range(2):
        response = await client.post("/api/v1/users/devices", headers=headers, json={"token": token})
        assert response.status_code == 200
        assert response.json() == {"status": "registered"}
    assert await push_tokens.get_tokens_for_user(session, user_id=user.id) == [token]

    response = await client.request("DELETE", "/api/v1/users/devices", headers=headers, json={"token": token})
    assert response.status_code == 200
    assert response.json() == {"status": "unregistered"}
    assert await push_tokens.get_tokens_for_user(session, user_id=user.id) == []

    again = await client.request("DELETE", "/api/v1/users/devices", headers=headers, json={"token": token})
    assert again.status_code == 404


@pytest.mark.integration
async def test_device_moves_to_latest_account(client: AsyncClient, session: AsyncSession):
    first = await create_user(session)
    second = await create_user(session)
    token = "fcm-shared-device-token-0123456789"

    await client.post("/api/v1/users/devices", headers=get_auth_headers(first), json={"token": token})
    await client.post("/api/v1/users/devices", headers=get_auth_headers(second), json={"token": token})

    assert await push_tokens.get_tokens_for_user(session, user_id=first.id) == []
    assert await push_tokens.get_tokens_for_user(session, user_id=second.id) == [token]


@pytest.mark.integration
async def test_user_admin_requires_manage_users(client: AsyncClient, session: AsyncSession):
    user = await create_user(session)
    other = await create_user(session)
    headers = get_auth_headers(user)

    assert (await client.get("/api/v1/users/", headers=headers)).status_code == 403
    assert (await client.post("/api/v1/users/", headers=headers, json={"name": "New"})).status_code == 403
    assert (await client.get(f"/api/v1/users/{other.id}", headers=headers)).status_code == 403
    assert (await client.put(f"/api/v1/users/{other.id}", headers=headers, json={"name": "X"})).status_code == 403
    assert (await client.delete(f"/api/v1/users/{other.id}", headers=headers)).status_code == 403


@pytest.mark.integration
async def test_create_list_and_update_users(client: AsyncClient, session: AsyncSession):
    department = await create_department(session)
    admin = await create_user(session, name="Admin")
    await grant_permissions(session, admin, capabilities.MANAGE_USERS)
    headers = get_auth_headers(admin)

    response = await client.post(
        "/api/v1/users/",
        headers=headers,
        json={"name": "Dana", "email": "dana@example.com", "department_id": department.id},
    )
    assert response.status_code == 201
    dana_id = response.json()["id"]

    duplicate = await client.post("/api/v1/users/", headers=headers, json={"name": "Copy", "email": "dana@example.com"})
    assert duplicate.status_code == 400
    invalid = await client.post("/api/v1/users/", headers=headers, json={"name": "Bad", "email": "not-an-email"})
    assert invalid.status_code == 422

    listing = await client.get("/api/v1/users/", headers=headers)
    assert [user["name"] for user in listing.json()] == ["Admin", "Dana"]

    updated = await client.put(f"/api/v1/users/{dana_id}", headers=headers, json={"job_title": "Lead"})
    assert updated.status_code == 200
    assert updated.json()["job_title"] == "Lead"
    assert updated.json()["department_id"] == department.id

    read_back = await client.get(f"/api/v1/users/{dana_id}", headers=headers)
    assert read_back.json()["job_title"] == "Lead"

    assert (await client.put(f"/api/v1/users/{dana_id}", headers=headers, json={})).status_code == 400
    assert (await client.put("/api/v1/users/4242", headers=headers, json={"name": "X"})).status_code == 404
    assert (await client.get("/api/v1/users/4242", headers=headers)).status_code == 404


@pytest.mark.integration
async def test_delete_user(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session)
    leaver = await create_user(session)
    busy = await create_user(session)
    await create_task(session, admin, busy)
    await grant_permissions(session, admin, capabilities.MANAGE_USERS)
    headers = get_auth_headers(admin)

    assert (await client.delete(f"/api/v1/users/{leaver.id}", headers=headers)).status_code == 204
    assert (await client.get(f"/api/v1/users/{leaver.id}", headers=headers)).status_code == 404
    # A deleted account can no longer authenticate
    assert (await client.get("/api/v1/users/me", headers=get_auth_headers(leaver))).status_code == 401

    blocked = await client.delete(f"/api/v1/users/{busy.id}", headers=headers)
    assert blocked.status_code == 400
    assert "tasks (1)" in blocked.json()["detail"]

    assert (await client.delete(f"/api/v1/users/{admin.id}", headers=headers)).status_code == 400
    assert (await client.delete("/api/v1/users/4242", headers=headers)).status_code == 404


@pytest.mark.integration
async def test_related_tasks_for_user(client: AsyncClient, session: AsyncSession):
    lead = await create_user(session)
    alice = await create_user(session)
    bob = await create_user(session)
    parent = await create_task(session, lead, alice, title="For Alice")
    await create_task(session, bob, lead, title="From Bob")
    await create_subtask(session, parent, alice, title="Alice subtask")
    await grant_permissions(session, lead, capabilities.VIEW_REPORTS, capabilities.VIEW_ANY_TASK)
    headers = get_auth_headers(lead)

    response = await client.get(f"/api/v1/users/{alice.id}/related-tasks", headers=headers)

    assert response.status_code == 200
    assert [task["title"] for task in response.json()] == ["For Alice"]
    assert (await client.get("/api/v1/users/4242/related-tasks", headers=headers)).status_code == 404
    forbidden = await client.get(f"/api/v1/users/{alice.id}/related-tasks", headers=get_auth_headers(bob))
    assert forbidden.status_code == 403
