"""
api/routes/notifications.py
---------------------------
Tenant notification feed, polled by the dashboard.

GET  /tenants/{tenant_id}/notifications?since=&limit=  — Newest first.
POST /tenants/{tenant_id}/notifications/{id}/read      — Mark as read.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.db.session import get_db
from chatdesk.dependencies import get_tenant_scope
from chatdesk.models.tenant import Tenant
from chatdesk.schemas.notification import NotificationListResponse, NotificationRead
from chatdesk.services.notification_service import NotificationService

router = APIRouter(prefix="/tenants/{tenant_id}/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="Recent notifications for a tenant",
)
async def list_notifications(
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
    since: datetime | None = Query(default=None, description="Only newer than this"),
    limit: int = Query(default=10, ge=1, le=100),
) -> NotificationListResponse:
    notifications = await NotificationService.list_recent(db, tenant.id, limit, since)
    items = [NotificationRead.model_validate(n) for n in notifications]
    return NotificationListResponse(items=items, unread=sum(1 for n in items if not n.read))


@router.post(
    "/{notification_id}/read",
    response_model=NotificationRead,
    summary="Mark a notification as read",
)
async def mark_notification_read(
    notification_id: str,
    tenant: Annotated[Tenant, Depends(get_tenant_scope)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationRead:
    notification = await NotificationService.mark_read(db, tenant.id, notification_id)
    return NotificationRead.model_validate(notification)
