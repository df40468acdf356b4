"""Notification service — user-facing CRUD plus the leave workflow emitter."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import LeaveStatus, NotificationType, UserRole
from leaveflow.common.exceptions import ForbiddenException, NotFoundException
from leaveflow.common.pagination import PaginationParams, paginate
from leaveflow.notifications.models import Notification
from leaveflow.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
    NotificationStats,
)
from leaveflow.users.models import User

if TYPE_CHECKING:
    from leaveflow.leave.models import LeaveRequest

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        leave_request_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            user_id=user_id,
            leave_request_id=leave_request_id,
            type=type,
            title=title,
            message=message,
            is_read=False,
            is_archived=False,
            created_at=datetime.now(timezone.utc),
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        user_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        notification_type: Optional[NotificationType] = None,
        archived: bool = False,
    ) -> NotificationListResponse:
        """Return paginated notifications for a user, newest first."""
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_archived.is_(archived))
            .order_by(Notification.created_at.desc(), Notification.id)
        )

        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
        if notification_type is not None:
            query = query.where(Notification.type == notification_type)

        rows, meta = await paginate(db, query, pagination, model=Notification)

        # Unread count ignores the filters; it feeds the header badge
        unread = await NotificationService.get_unread_count(db, user_id)

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=NotificationListMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def _get_owned(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalars().first()

        if notification is None:
            raise NotFoundException("Notification", notification_id)

        if notification.user_id != user_id:
            raise ForbiddenException("You can only manage your own notifications.")

        return notification

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await NotificationService._get_owned(db, notification_id, user_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def archive(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Hide a notification from the default list; archiving also marks it read."""
        notification = await NotificationService._get_owned(db, notification_id, user_id)

        if not notification.is_archived:
            notification.is_archived = True
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = datetime.now(timezone.utc)
            await db.flush()
        return notification

    @staticmethod
    async def delete_notification(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        """Delete one of the caller's notifications."""
        notification = await NotificationService._get_owned(db, notification_id, user_id)
        await db.execute(delete(Notification).where(Notification.id == notification.id))
        await db.flush()

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> int:
        """Return the number of unread notifications for a user."""
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    @staticmethod
    async def get_stats(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> NotificationStats:
        """Totals, unread, per-type counts and the last seven days' volume."""
        rows = (
            await db.execute(
                select(Notification.type, func.count())
                .where(Notification.user_id == user_id)
                .group_by(Notification.type)
            )
        ).all()
        by_type = {t.value: count for t, count in rows}

        since = datetime.now(timezone.utc) - timedelta(days=7)
        recent = (
            await db.execute(
                select(func.count())
                .select_from(Notification)
                .where(
                    Notification.user_id == user_id,
                    Notification.created_at >= since,
                )
            )
        ).scalar_one()

        return NotificationStats(
            total=sum(by_type.values()),
            unread=await NotificationService.get_unread_count(db, user_id),
            last_7_days=recent,
            by_type=by_type,
        )


# ── Leave workflow emitter ──────────────────────────────────────────
# Called by the leave service after a submission or transition has been
# written. Delivery is best-effort: each write runs in a SAVEPOINT and a
# database failure is logged, never propagated to the caller.


_DISPOSITIONS: dict[LeaveStatus, tuple[NotificationType, str, str]] = {
    LeaveStatus.admin_approved: (
        NotificationType.approved,
        "Leave Request Approved",
        "has been approved",
    ),
    LeaveStatus.manager_rejected: (
        NotificationType.rejected,
        "Leave Request Rejected",
        "was rejected by your manager",
    ),
    LeaveStatus.admin_rejected: (
        NotificationType.rejected,
        "Leave Request Rejected",
        "was rejected by an administrator",
    ),
    LeaveStatus.cancelled: (
        NotificationType.cancelled,
        "Leave Request Cancelled",
        "has been cancelled",
    ),
}


async def get_designated_admin_id(
    db: AsyncSession,
    *,
    exclude_user_id: Optional[uuid.UUID] = None,
) -> Optional[uuid.UUID]:
    """Longest-standing active admin, skipping *exclude_user_id*."""
    query = (
        select(User.id)
        .where(User.role == UserRole.admin, User.is_active.is_(True))
        .order_by(User.created_at.asc(), User.id)
        .limit(1)
    )
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    return (await db.execute(query)).scalar_one_or_none()


class NotificationEmitter:
    """One notification per leave workflow event."""

    @staticmethod
    async def _deliver(
        db: AsyncSession,
        leave_request: "LeaveRequest",
        *,
        recipient_id: Optional[uuid.UUID],
        type: NotificationType,
        title: str,
        message: str,
    ) -> Optional[Notification]:
        try:
            async with db.begin_nested():
                if recipient_id is None:
                    recipient_id = await get_designated_admin_id(
                        db, exclude_user_id=leave_request.user_id,
                    )
                if recipient_id is None:
                    logger.warning(
                        "No active admin to notify for leave request %s (%s)",
                        leave_request.id, type.value,
                    )
                    return None
                return await NotificationService.create_notification(
                    db,
                    user_id=recipient_id,
                    type=type,
                    title=title,
                    message=message,
                    leave_request_id=leave_request.id,
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to write %s notification for leave request %s",
                type.value, leave_request.id,
            )
            return None

    @staticmethod
    async def request_submitted(
        db: AsyncSession,
        leave_request: "LeaveRequest",
        owner: User,
    ) -> Optional[Notification]:
        """Tell the owner's manager (or the designated admin) about a new request."""
        return await NotificationEmitter._deliver(
            db,
            leave_request,
            recipient_id=owner.manager_id,
            type=NotificationType.request_submitted,
            title="New Leave Request",
            message=(
                f"{owner.full_name} requested leave from {leave_request.start_date} "
                f"to {leave_request.end_date} ({leave_request.total_days} day(s)) "
                f"and it requires your approval."
            ),
        )

    @staticmethod
    async def awaiting_admin(
        db: AsyncSession,
        leave_request: "LeaveRequest",
        owner: User,
    ) -> Optional[Notification]:
        """Tell the designated admin a manager-approved request needs final review."""
        return await NotificationEmitter._deliver(
            db,
            leave_request,
            recipient_id=None,
            type=NotificationType.awaiting_admin,
            title="Leave Request Awaiting Final Approval",
            message=(
                f"The leave request of {owner.full_name} from "
                f"{leave_request.start_date} to {leave_request.end_date} was "
                f"approved by the manager and requires admin approval."
            ),
        )

    @staticmethod
    async def disposition(
        db: AsyncSession,
        leave_request: "LeaveRequest",
    ) -> Optional[Notification]:
        """Tell the owner how their request ended."""
        type, title, outcome = _DISPOSITIONS[leave_request.status]
        comment = {
            LeaveStatus.manager_rejected: leave_request.manager_comment,
            LeaveStatus.admin_rejected: leave_request.admin_comment,
        }.get(leave_request.status)
        message = (
            f"Your leave request from {leave_request.start_date} to "
            f"{leave_request.end_date} {outcome}."
        )
        if comment:
            message += f" Comment: {comment}"
        return await NotificationEmitter._deliver(
            db,
            leave_request,
            recipient_id=leave_request.user_id,
            type=type,
            title=title,
            message=message,
        )
