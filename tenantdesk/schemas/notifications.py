from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    context: dict = {}
    is_read: bool
    created_at: datetime


class NotificationsPage(BaseModel):
    items: list[NotificationOut]
    unread: int
