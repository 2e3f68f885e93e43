"""
services/notification_service.py
--------------------------------
Tenant notification feed.

Notifications are written in the same transaction as the lifecycle change
that caused them and read by clients polling with a `since` timestamp.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatdesk.core.errors import NotFoundError
from chatdesk.core.logging import get_logger
from chatdesk.models.notification import Notification, NotificationType

logger = get_logger(__name__)


class NotificationService:

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        tenant_id: str,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            tenant_id=tenant_id,
            user_id=user_id,
            type=type.value,
            title=title,
            message=message,
            meta=metadata or {},
        )
        db.add(notification)
        await db.flush()
        logger.info(
            "Notification created",
            notification_id=notification.id,
            type=notification.type,
            tenant_id=tenant_id,
        )
        return notification

    @staticmethod
    async def list_recent(
        db: AsyncSession,
        tenant_id: str,
        limit: int = 10,
        since: datetime | None = None,
    ) -> list[Notification]:
        stmt = select(Notification).where(Notification.tenant_id == tenant_id)
        if since is not None:
            stmt = stmt.where(Notification.created_at > since)
        result = await db.execute(
            stmt.order_by(Notification.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, tenant_id: str, notification_id: str) -> Notification:
        result = await db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.tenant_id == tenant_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification not found")
        notification.read = True
        await db.flush()
        return notification
