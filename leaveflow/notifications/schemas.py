"""Notification Pydantic schemas for request / response validation."""


import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from leaveflow.common.constants import NotificationType
from leaveflow.common.pagination import PaginationMeta


# ── Responses ───────────────────────────────────────────────────────

class NotificationResponse(BaseModel):
    """Single notification in API responses."""

    id: uuid.UUID
    user_id: uuid.UUID
    leave_request_id: Optional[uuid.UUID] = None
    type: NotificationType
    title: str
    message: str
    is_read: bool
    read_at: Optional[datetime] = None
    is_archived: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NotificationListMeta(PaginationMeta):
    """Extends standard pagination meta with unread count."""

    unread: int


class NotificationListResponse(BaseModel):
    """Paginated list of notifications with unread count in meta."""

    data: list[NotificationResponse]
    meta: NotificationListMeta


class NotificationStats(BaseModel):
    """Per-user counters for the notification centre."""

    total: int = 0
    unread: int = 0
    last_7_days: int = 0
    by_type: dict[str, int] = {}
