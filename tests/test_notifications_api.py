from __future__ import annotations

from datetime import timedelta

from chatdesk.db.base import utcnow
from chatdesk.models import NotificationType
from chatdesk.services.notification_service import NotificationService
from support import auth_headers


async def _notify(session_factory, seed, title: str, age_minutes: int = 0, tenant=None) -> str:
    tenant = tenant or seed.tenant
    async with session_factory() as session:
        notification = await NotificationService.create(
            session,
            tenant_id=tenant.id,
            user_id=seed.agent.id,
            type=NotificationType.document_processed,
            title=title,
            message=f"{title} is ready",
            metadata={"documentId": "doc-1"},
        )
        notification.created_at = utcnow() - timedelta(minutes=age_minutes)
        await session.commit()
        return notification.id


async def test_feed_is_newest_first_with_unread_count(client, session_factory, seed) -> None:
    await _notify(session_factory, seed, "older", age_minutes=10)
    await _notify(session_factory, seed, "newer")

    response = await client.get(
        f"/tenants/{seed.tenant.id}/notifications", headers=auth_headers(seed.agent)
    )

    assert response.status_code == 200
    body = response.json()
    assert [n["title"] for n in body["items"]] == ["newer", "older"]
    assert body["items"][0]["metadata"] == {"documentId": "doc-1"}
    assert body["unread"] == 2


async def test_since_and_limit_narrow_the_feed(client, session_factory, seed) -> None:
    await _notify(session_factory, seed, "older", age_minutes=10)
    await _notify(session_factory, seed, "newer")
    url = f"/tenants/{seed.tenant.id}/notifications"

    recent = await client.get(
        url,
        params={"since": (utcnow() - timedelta(minutes=5)).isoformat()},
        headers=auth_headers(seed.agent),
    )
    limited = await client.get(url, params={"limit": 1}, headers=auth_headers(seed.agent))

    assert [n["title"] for n in recent.json()["items"]] == ["newer"]
    assert [n["title"] for n in limited.json()["items"]] == ["newer"]


async def test_mark_read(client, session_factory, seed) -> None:
    notification_id = await _notify(session_factory, seed, "manual ready")
    base = f"/tenants/{seed.tenant.id}/notifications"

    marked = await client.post(f"{base}/{notification_id}/read", headers=auth_headers(seed.agent))
    feed = await client.get(base, headers=auth_headers(seed.agent))
    unknown = await client.post(f"{base}/missing/read", headers=auth_headers(seed.agent))

    assert marked.status_code == 200
    assert marked.json()["read"] is True
    assert feed.json()["unread"] == 0
    assert unknown.status_code == 404


async def test_notifications_stay_in_their_tenant(client, session_factory, seed) -> None:
    foreign_id = await _notify(session_factory, seed, "acme upload", tenant=seed.other_tenant)

    feed = await client.get(
        f"/tenants/{seed.tenant.id}/notifications", headers=auth_headers(seed.admin)
    )
    cross = await client.post(
        f"/tenants/{seed.tenant.id}/notifications/{foreign_id}/read",
        headers=auth_headers(seed.admin),
    )
    denied = await client.get(
        f"/tenants/{seed.other_tenant.id}/notifications", headers=auth_headers(seed.agent)
    )

    assert feed.json()["items"] == []
    assert cross.status_code == 404
    assert denied.status_code == 403
