"""Notification endpoints — list, stats, mark read, archive, delete."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.dependencies import get_current_user
from leaveflow.common.constants import NotificationType
from leaveflow.common.pagination import PaginationParams
from leaveflow.database import get_db
from leaveflow.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)
from leaveflow.notifications.service import NotificationService
from leaveflow.users.models import User

router = APIRouter(prefix="", tags=["notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    type: Optional[NotificationType] = Query(
        default=None, alias="type", description="Filter by notification type"
    ),
    archived: bool = Query(default=False, description="List archived notifications instead"),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List notifications for the authenticated user (paginated)."""
    return await NotificationService.get_notifications(
        db,
        user_id=user.id,
        pagination=pagination,
        is_read=is_read,
        notification_type=type,
        archived=archived,
    )


# ── GET /unread-count — badge count ─────────────────────────────────
# NOTE: This route MUST be registered before /{notification_id}/read
# to avoid FastAPI treating "unread-count" as a UUID path parameter.

@router.get("/unread-count")
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return the number of unread notifications (polled by the header badge)."""
    count = await NotificationService.get_unread_count(db, user.id)
    return {"data": {"count": count}}


# ── GET /stats — per-type counters ──────────────────────────────────

@router.get("/stats")
async def notification_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Total, unread, last-7-days and per-type notification counts."""
    stats = await NotificationService.get_stats(db, user.id)
    return {"data": stats}


# ── PUT /read-all — bulk mark all as read ───────────────────────────

@router.put("/read-all")
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark all unread notifications as read for the authenticated user."""
    count = await NotificationService.mark_all_read(db, user.id)
    return {"message": "All notifications marked as read", "data": {"count": count}}


# ── PUT /{notification_id}/read — mark single as read ───────────────

@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark a single notification as read."""
    notification = await NotificationService.mark_read(db, notification_id, user.id)
    return {
        "message": "Notification marked as read",
        "data": NotificationResponse.model_validate(notification),
    }


# ── PUT /{notification_id}/archive ──────────────────────────────────

@router.put("/{notification_id}/archive")
async def archive_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Archive one of the caller's notifications."""
    notification = await NotificationService.archive(db, notification_id, user.id)
    return {
        "message": "Notification archived",
        "data": NotificationResponse.model_validate(notification),
    }


# ── DELETE /{notification_id} ───────────────────────────────────────

@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete one of the caller's notifications."""
    await NotificationService.delete_notification(db, notification_id, user.id)
    return {"message": "Notification deleted"}
