"""
schemas/notification.py
-----------------------
Notification feed models.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    id: str
    type: str
    title: str
    message: str
    metadata: dict[str, Any] = Field(validation_alias="meta")
    read: bool
    user_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    items: list[NotificationRead]
    unread: int
