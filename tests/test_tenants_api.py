from __future__ import annotations

from support import PASSWORD, auth_headers, grant


async def test_login_and_me(client, seed) -> None:
    response = await client.post(
        "/login", data={"username": "AGENT@example.com", "password": PASSWORD}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "SUPPORT_AGENT"

    me = await client.get(
        "/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["id"] == seed.agent.id


async def test_login_rejects_bad_password(client, seed) -> None:
    response = await client.post(
        "/login", data={"username": "agent@example.com", "password": "wrong-password"}
    )
    assert response.status_code == 401


async def test_only_admins_create_tenants(client, seed) -> None:
    body = {"name": "Brandt Agriculture", "slug": "brandt-ag"}

    denied = await client.post("/tenants", json=body, headers=auth_headers(seed.manager))
    created = await client.post("/tenants", json=body, headers=auth_headers(seed.admin))
    duplicate = await client.post("/tenants", json=body, headers=auth_headers(seed.admin))

    assert denied.status_code == 403
    assert created.status_code == 201
    assert created.json()["slug"] == "brandt-ag"
    assert duplicate.status_code == 409


async def test_tenant_list_follows_access(client, session_factory, seed) -> None:
    before = await client.get("/tenants", headers=auth_headers(seed.manager))
    await grant(session_factory, seed.manager, seed.tenant)
    after = await client.get("/tenants", headers=auth_headers(seed.manager))
    everything = await client.get("/tenants", headers=auth_headers(seed.admin))

    assert [t["id"] for t in before.json()] == [seed.other_tenant.id]
    assert {t["id"] for t in after.json()} == {seed.tenant.id, seed.other_tenant.id}
    assert len(everything.json()) == 2


async def test_foreign_tenant_is_forbidden_whether_or_not_it_exists(client, seed) -> None:
    existing = await client.get(f"/tenants/{seed.tenant.id}", headers=auth_headers(seed.outsider))
    missing = await client.get("/tenants/does-not-exist", headers=auth_headers(seed.outsider))
    admin_missing = await client.get("/tenants/does-not-exist", headers=auth_headers(seed.admin))

    assert existing.status_code == 403
    assert missing.status_code == 403
    assert existing.json() == missing.json()
    assert admin_missing.status_code == 404


async def test_manager_adds_support_agent_with_invitation(client, session_factory, seed) -> None:
    await grant(session_factory, seed.manager, seed.tenant)

    response = await client.post(
        f"/tenants/{seed.tenant.id}/users",
        json={"name": "New Agent", "email": "new.agent@example.com", "send_invitation": True},
        headers=auth_headers(seed.manager),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["tenant_id"] == seed.tenant.id
    assert body["role"] == "SUPPORT_AGENT"
    assert body["must_change_password"] is True


async def test_manager_cannot_create_admin(client, seed) -> None:
    response = await client.post(
        f"/tenants/{seed.other_tenant.id}/users",
        json={"name": "Boss", "email": "boss@example.com", "password": "s3cret-pass", "role": "ADMIN"},
        headers=auth_headers(seed.manager),
    )

    assert response.status_code == 403


async def test_support_agent_cannot_manage_users(client, seed) -> None:
    response = await client.post(
        f"/tenants/{seed.tenant.id}/users",
        json={"name": "X", "email": "x@example.com", "password": "s3cret-pass"},
        headers=auth_headers(seed.agent),
    )

    assert response.status_code == 403


async def test_change_password_clears_flag(client, seed) -> None:
    response = await client.post(
        "/me/change-password",
        json={"current_password": PASSWORD, "new_password": "a-brand-new-password"},
        headers=auth_headers(seed.agent),
    )
    wrong = await client.post(
        "/me/change-password",
        json={"current_password": "not-it", "new_password": "another-password"},
        headers=auth_headers(seed.agent),
    )

    assert response.status_code == 200
    assert response.json()["must_change_password"] is False
    assert wrong.status_code == 400


async def test_admin_manages_manager_grants(client, seed) -> None:
    url = f"/admin/managers/{seed.manager.id}/tenant-access"

    created = await client.post(url, json={"tenant_id": seed.tenant.id}, headers=auth_headers(seed.admin))
    duplicate = await client.post(url, json={"tenant_id": seed.tenant.id}, headers=auth_headers(seed.admin))
    listed = await client.get(url, headers=auth_headers(seed.admin))
    scoped = await client.get(f"/tenants/{seed.tenant.id}", headers=auth_headers(seed.manager))
    revoked = await client.delete(f"{url}/{seed.tenant.id}", headers=auth_headers(seed.admin))
    after = await client.get(f"/tenants/{seed.tenant.id}", headers=auth_headers(seed.manager))

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert [g["tenant_id"] for g in listed.json()] == [seed.tenant.id]
    assert scoped.status_code == 200
    assert revoked.status_code == 204
    assert after.status_code == 403


async def test_grants_only_apply_to_managers(client, seed) -> None:
    response = await client.post(
        f"/admin/managers/{seed.agent.id}/tenant-access",
        json={"tenant_id": seed.other_tenant.id},
        headers=auth_headers(seed.admin),
    )

    assert response.status_code == 400


async def test_admin_deletes_tenant(client, seed) -> None:
    response = await client.delete(f"/tenants/{seed.other_tenant.id}", headers=auth_headers(seed.admin))
    gone = await client.get(f"/tenants/{seed.other_tenant.id}", headers=auth_headers(seed.admin))

    assert response.status_code == 204
    assert gone.status_code == 404
