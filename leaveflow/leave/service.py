"""Leave service layer — submission, two-stage approval, balances, reporting.

Business logic:
  - Leave type catalog seeding and listing
  - Submission with date, notice, overlap, balance and monthly-cap validation
  - Manager / admin approval, rejection and owner cancellation through the
    transition table in ``leaveflow.leave.workflow``
  - Role-scoped listing, pending-approval queues and yearly statistics
    (organisation-wide and per user)
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import func, inspect, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import (
    BLOCKING_STATUSES,
    DEFAULT_LEAVE_TYPES,
    ApprovalLevel,
    LeaveStatus,
    TransitionAction,
    UserRole,
)
from leaveflow.common.exceptions import (
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leaveflow.common.filters import apply_filters
from leaveflow.common.pagination import PaginationParams, paginate
from leaveflow.leave.ledger import BalanceLedger, MonthlyUsageLedger
from leaveflow.leave.models import LeaveRequest, LeaveType
from leaveflow.leave.schemas import (
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestListOut,
    LeaveRequestOut,
    LeaveStatisticsOut,
    LeaveSummaryOut,
    LeaveTypeBrief,
    LeaveTypeOut,
    LeaveTypeStats,
    MonthlyUsageOut,
    MonthStats,
    UserLeaveStatsOut,
)
from leaveflow.leave.workflow import Recipient, authorize_transition, plan_transition
from leaveflow.notifications.service import NotificationEmitter
from leaveflow.users.models import User
from leaveflow.users.schemas import UserBrief

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations. Every method takes the request's session."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_active_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> User:
        query = select(User).where(User.id == user_id, User.is_active.is_(True))
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        user = result.scalars().first()
        if user is None:
            raise NotFoundException("User", str(user_id))
        return user

    @staticmethod
    async def _get_team_ids(db: AsyncSession, manager_id: uuid.UUID) -> list[uuid.UUID]:
        reports = await db.execute(
            select(User.id).where(
                User.manager_id == manager_id,
                User.is_active.is_(True),
            )
        )
        return [r[0] for r in reports.all()]

    @staticmethod
    def _build_request_response(
        req: LeaveRequest,
        *,
        user: Optional[User] = None,
        leave_type: Optional[LeaveType] = None,
    ) -> LeaveRequestOut:
        """Build LeaveRequestOut from ORM, enriching only already-loaded relationships."""
        state = inspect(req)
        out = LeaveRequestOut.model_validate(
            {attr.key: getattr(req, attr.key) for attr in state.mapper.column_attrs}
        )
        if user is None and "user" not in state.unloaded:
            user = req.user
        if leave_type is None and "leave_type" not in state.unloaded:
            leave_type = req.leave_type
        if user is not None:
            out.user = UserBrief.model_validate(user)
        if leave_type is not None:
            out.leave_type = LeaveTypeBrief.model_validate(leave_type)
        return out

    # ─────────────────────────────────────────────────────────────────
    # Leave Types
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def seed_leave_types(db: AsyncSession) -> list[LeaveType]:
        """Insert the default catalog; categories that already exist are skipped."""
        existing = set(
            (await db.execute(select(LeaveType.category))).scalars().all()
        )
        now = datetime.now(timezone.utc)
        created: list[LeaveType] = []
        for spec in DEFAULT_LEAVE_TYPES:
            if spec["category"] in existing:
                continue
            lt = LeaveType(**spec, is_active=True, created_at=now, updated_at=now)
            db.add(lt)
            created.append(lt)
        if created:
            await db.flush()
            logger.info(
                "Seeded leave types: %s",
                ", ".join(lt.category.value for lt in created),
            )
        return created

    @staticmethod
    async def get_leave_types(
        db: AsyncSession,
        *,
        is_active: Optional[bool] = True,
    ) -> list[LeaveTypeOut]:
        """List leave types, active only by default."""

        query = select(LeaveType).order_by(LeaveType.name)
        if is_active is not None:
            query = query.where(LeaveType.is_active == is_active)

        result = await db.execute(query)
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        """Balances for a user and year; the year is provisioned on first access."""
        await BalanceLedger.provision_year(db, user_id, year)
        balances = await BalanceLedger.get_balance(db, user_id, year)
        return [BalanceLedger.to_out(b) for b in balances]

    @staticmethod
    async def get_summary(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> LeaveSummaryOut:
        """Totals across every leave type for one user and year."""
        balances = await BalanceLedger.get_balance(db, user_id, year)
        return BalanceLedger.summarize(year, balances)

    @staticmethod
    async def get_monthly_usage(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        month: int,
    ) -> list[MonthlyUsageOut]:
        """Monthly-cap usage per capped leave type; read-only."""
        return await MonthlyUsageLedger.usage_for(db, user_id, year, month)

    @staticmethod
    async def provision_balances(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        """Admin: create a user's missing balance rows for *year*."""
        await LeaveService._get_active_user(db, user_id)
        created = await BalanceLedger.provision_year(db, user_id, year)
        for balance in created:
            await create_audit_entry(
                db,
                action="provision",
                entity_type="leave_balance",
                entity_id=balance.id,
                actor_id=actor_id,
                new_values={
                    "user_id": str(user_id),
                    "leave_type_id": str(balance.leave_type_id),
                    "year": year,
                    "total_days": balance.total_days,
                },
            )
        balances = await BalanceLedger.get_balance(db, user_id, year)
        return [BalanceLedger.to_out(b) for b in balances]

    @staticmethod
    async def rollover_balances(
        db: AsyncSession,
        from_year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        """Admin: carry unused days of *from_year* into the next year."""
        created = await BalanceLedger.rollover_year(db, from_year)
        for balance in created:
            await create_audit_entry(
                db,
                action="rollover",
                entity_type="leave_balance",
                entity_id=balance.id,
                actor_id=actor_id,
                new_values={
                    "user_id": str(balance.user_id),
                    "year": balance.year,
                    "total_days": balance.total_days,
                    "carried_forward_days": balance.carried_forward_days,
                },
            )
        return [BalanceLedger.to_out(b) for b in created]

    # ─────────────────────────────────────────────────────────────────
    # Submit Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_leave(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Submit a leave request with full validation:
        - Active leave type
        - Dates not in the past and within one calendar year
        - Max consecutive days and notice period (waived for emergencies)
        - No overlap with pending or approved requests
        - Sufficient remaining balance
        - Monthly cap of the leave type (waived for emergencies)

        The owner's user row is locked first, so two submissions by the same
        user run one after the other and the overlap check sees the first.
        """

        now = datetime.now(timezone.utc)
        today = now.date()

        owner = await LeaveService._get_active_user(db, user_id, for_update=True)

        # ── Load leave type ─────────────────────────────────────────
        lt_result = await db.execute(
            select(LeaveType).where(
                LeaveType.id == data.leave_type_id,
                LeaveType.is_active.is_(True),
            )
        )
        leave_type = lt_result.scalars().first()
        if leave_type is None:
            raise NotFoundException("LeaveType", str(data.leave_type_id))

        # ── Date checks ─────────────────────────────────────────────
        if data.start_date < today:
            raise ValidationException(
                {"start_date": ["Leave cannot start in the past."]}
            )
        if data.end_date < data.start_date:
            raise ValidationException(
                {"end_date": ["end_date must be on or after start_date."]}
            )
        if data.start_date.year != data.end_date.year:
            raise ValidationException(
                {"end_date": [
                    "A leave request must fall within a single calendar year; "
                    "submit one request per year."
                ]}
            )

        total_days = (data.end_date - data.start_date).days + 1

        # ── Max consecutive days check ──────────────────────────────
        if leave_type.max_consecutive_days and total_days > leave_type.max_consecutive_days:
            raise ValidationException(
                {"dates": [
                    f"{leave_type.name} allows a maximum of "
                    f"{leave_type.max_consecutive_days} consecutive days."
                ]}
            )

        # ── Advance notice check ────────────────────────────────────
        if leave_type.notice_period_days > 0 and not data.emergency:
            days_ahead = (data.start_date - today).days
            if days_ahead < leave_type.notice_period_days:
                raise ValidationException(
                    {"start_date": [
                        f"{leave_type.name} requires at least "
                        f"{leave_type.notice_period_days} day(s) advance notice."
                    ]}
                )

        # ── Check overlapping leaves ────────────────────────────────
        overlap_result = await db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.user_id == user_id,
                LeaveRequest.status.in_(BLOCKING_STATUSES),
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date,
            )
        )
        if overlap_result.scalar_one() > 0:
            raise ValidationException(
                {"dates": [
                    "You already have a pending or approved leave request "
                    "overlapping with these dates."
                ]}
            )

        # ── Check sufficient balance ────────────────────────────────
        year = data.start_date.year
        balance = await BalanceLedger.get_for_update(db, user_id, leave_type.id, year)
        remaining = balance.available_days if balance is not None else 0
        if total_days > remaining:
            logger.warning(
                "Leave submission refused for user %s: %s needs %d day(s), %d remaining",
                user_id, leave_type.category.value, total_days, remaining,
            )
            raise InsufficientBalanceException(leave_type.name, remaining, total_days)

        # ── Monthly cap ─────────────────────────────────────────────
        await MonthlyUsageLedger.reserve(
            db, user_id, leave_type, data.start_date, data.end_date,
            emergency=data.emergency,
        )

        # ── Create leave request ────────────────────────────────────
        leave_request = LeaveRequest(
            user_id=user_id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            reason=data.reason,
            emergency=data.emergency,
            status=LeaveStatus.pending,
            created_at=now,
            updated_at=now,
        )
        db.add(leave_request)
        await db.flush()

        await BalanceLedger.apply_delta(db, balance, pending=total_days)

        # ── Audit ───────────────────────────────────────────────────
        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=user_id,
            new_values={
                "leave_type": leave_type.category.value,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": total_days,
                "emergency": data.emergency,
                "status": LeaveStatus.pending.value,
            },
        )

        logger.info(
            "Leave request %s submitted by %s: %s, %d day(s)",
            leave_request.id, user_id, leave_type.category.value, total_days,
        )

        # ── Notify approver ─────────────────────────────────────────
        await NotificationEmitter.request_submitted(db, leave_request, owner)

        return LeaveService._build_request_response(
            leave_request, user=owner, leave_type=leave_type,
        )

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def transition(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        action: TransitionAction,
        level: Optional[ApprovalLevel] = None,
        *,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Apply one approve / reject / cancel move inside the caller's transaction.

        The request row is locked and re-read before the state check, so a
        second concurrent reviewer waits and then fails on the new status.
        """

        now = datetime.now(timezone.utc)
        actor = await LeaveService._get_active_user(db, actor_id)

        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.leave_type),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))

        owner = leave_req.user
        plan = plan_transition(leave_req.status, action, level)
        if action == TransitionAction.cancel:
            level = None

        try:
            authorize_transition(
                action=action,
                level=level,
                actor_id=actor.id,
                actor_role=actor.role,
                owner_id=owner.id,
                owner_manager_id=owner.manager_id,
            )
        except ForbiddenException:
            logger.warning(
                "User %s (%s) may not %s leave request %s at %s level",
                actor.id, actor.role.value, action.value, request_id,
                level.value if level else "owner",
            )
            raise

        # ── Balance ─────────────────────────────────────────────────
        pending_delta = plan.pending_delta(leave_req.total_days)
        used_delta = plan.used_delta(leave_req.total_days)
        if pending_delta or used_delta:
            balance = await BalanceLedger.get_for_update(
                db, owner.id, leave_req.leave_type_id, leave_req.year,
            )
            if balance is None:
                raise InvalidStateException(
                    f"No {leave_req.year} balance exists for this leave request."
                )
            await BalanceLedger.apply_delta(
                db, balance, pending=pending_delta, used=used_delta,
            )
        if plan.releases_days:
            await MonthlyUsageLedger.release(
                db, owner.id, leave_req.leave_type_id,
                leave_req.start_date, leave_req.end_date,
            )

        # ── Update request ──────────────────────────────────────────
        old_status = leave_req.status
        leave_req.status = plan.new_status
        leave_req.updated_at = now
        if level == ApprovalLevel.manager:
            leave_req.manager_id = actor.id
            leave_req.manager_comment = comment
            leave_req.manager_action_at = now
        elif level == ApprovalLevel.admin:
            leave_req.admin_id = actor.id
            leave_req.admin_comment = comment
            leave_req.admin_action_at = now
        else:
            leave_req.cancelled_at = now
            leave_req.cancel_reason = comment

        await db.flush()

        # ── Audit ───────────────────────────────────────────────────
        await create_audit_entry(
            db,
            action=action.value,
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values={"status": old_status.value},
            new_values={
                "status": plan.new_status.value,
                "level": level.value if level else None,
                "comment": comment,
            },
        )

        logger.info(
            "Leave request %s: %s -> %s by %s",
            leave_req.id, old_status.value, plan.new_status.value, actor.id,
        )

        # ── Notify ──────────────────────────────────────────────────
        if plan.notify == Recipient.admin:
            await NotificationEmitter.awaiting_admin(db, leave_req, owner)
        else:
            await NotificationEmitter.disposition(db, leave_req)

        return LeaveService._build_request_response(leave_req)

    @staticmethod
    async def manager_approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        return await LeaveService.transition(
            db, request_id, actor_id,
            TransitionAction.approve, ApprovalLevel.manager, comment=comment,
        )

    @staticmethod
    async def manager_reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        return await LeaveService.transition(
            db, request_id, actor_id,
            TransitionAction.reject, ApprovalLevel.manager, comment=comment,
        )

    @staticmethod
    async def admin_approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        return await LeaveService.transition(
            db, request_id, actor_id,
            TransitionAction.approve, ApprovalLevel.admin, comment=comment,
        )

    @staticmethod
    async def admin_reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        comment: Optional[str] = None,
    ) -> LeaveRequestOut:
        return await LeaveService.transition(
            db, request_id, actor_id,
            TransitionAction.reject, ApprovalLevel.admin, comment=comment,
        )

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        reason: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Owner cancels a pending or manager-approved request."""
        return await LeaveService.transition(
            db, request_id, user_id, TransitionAction.cancel, comment=reason,
        )

    # ─────────────────────────────────────────────────────────────────
    # Read Leave Requests
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer: User,
    ) -> LeaveRequestOut:
        """One request, visible to its owner, the owner's manager and admins."""
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.leave_type),
            )
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))

        owner = leave_req.user
        if not (
            viewer.role == UserRole.admin
            or viewer.id == owner.id
            or owner.manager_id == viewer.id
        ):
            raise ForbiddenException("You are not allowed to view this leave request.")

        return LeaveService._build_request_response(leave_req)

    @staticmethod
    async def get_leave_requests(
        db: AsyncSession,
        viewer: User,
        pagination: PaginationParams,
        *,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> LeaveRequestListOut:
        """List leave requests with pagination and filters.

        Scope follows the viewer's role:
          - employee: own requests only
          - manager: own requests plus direct reports
          - admin: every request
        """

        query = (
            select(LeaveRequest)
            .options(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.leave_type),
            )
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        )

        if viewer.role == UserRole.manager:
            team_ids = await LeaveService._get_team_ids(db, viewer.id)
            query = query.where(LeaveRequest.user_id.in_([viewer.id, *team_ids]))
        elif viewer.role != UserRole.admin:
            query = query.where(LeaveRequest.user_id == viewer.id)

        # from_date / to_date select requests that overlap the window
        query = apply_filters(
            query,
            LeaveRequest,
            {
                "user_id": user_id,
                "status": status,
                "leave_type_id": leave_type_id,
                "end_date__from": from_date,
                "start_date__to": to_date,
            },
        )

        rows, meta = await paginate(db, query, pagination, model=LeaveRequest)
        return LeaveRequestListOut(
            data=[LeaveService._build_request_response(r) for r in rows],
            meta=meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Pending Approvals
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_pending_approvals(
        db: AsyncSession,
        reviewer: User,
    ) -> list[LeaveRequestOut]:
        """Requests waiting on *reviewer*, oldest first.

        Managers see their team's ``pending`` requests. Admins see every
        ``manager_approved`` request plus ``pending`` ones from users with no
        manager. A reviewer's own requests are never listed.
        """

        query = (
            select(LeaveRequest)
            .join(User, LeaveRequest.user_id == User.id)
            .where(LeaveRequest.user_id != reviewer.id)
            .options(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.leave_type),
            )
            .order_by(LeaveRequest.created_at.asc(), LeaveRequest.id)
        )

        if reviewer.role == UserRole.admin:
            query = query.where(
                or_(
                    LeaveRequest.status == LeaveStatus.manager_approved,
                    (LeaveRequest.status == LeaveStatus.pending)
                    & User.manager_id.is_(None),
                )
            )
        elif reviewer.role == UserRole.manager:
            query = query.where(
                User.manager_id == reviewer.id,
                LeaveRequest.status == LeaveStatus.pending,
            )
        else:
            return []

        result = await db.execute(query)
        return [
            LeaveService._build_request_response(r)
            for r in result.scalars().all()
        ]

    # ─────────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        year: int,
    ) -> LeaveStatisticsOut:
        """Organisation-wide request counts for requests starting in *year*."""

        in_year = (
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        )

        status_rows = (
            await db.execute(
                select(LeaveRequest.status, func.count())
                .where(*in_year)
                .group_by(LeaveRequest.status)
            )
        ).all()
        counts = {status: n for status, n in status_rows}

        type_rows = (
            await db.execute(
                select(
                    LeaveType.id,
                    LeaveType.name,
                    func.count(LeaveRequest.id),
                    func.coalesce(func.sum(LeaveRequest.total_days), 0),
                )
                .join(LeaveRequest, LeaveRequest.leave_type_id == LeaveType.id)
                .where(*in_year)
                .group_by(LeaveType.id, LeaveType.name)
                .order_by(LeaveType.name)
            )
        ).all()

        return LeaveStatisticsOut(
            year=year,
            total_requests=sum(counts.values()),
            pending_requests=(
                counts.get(LeaveStatus.pending, 0)
                + counts.get(LeaveStatus.manager_approved, 0)
            ),
            approved_requests=counts.get(LeaveStatus.admin_approved, 0),
            rejected_requests=(
                counts.get(LeaveStatus.manager_rejected, 0)
                + counts.get(LeaveStatus.admin_rejected, 0)
            ),
            cancelled_requests=counts.get(LeaveStatus.cancelled, 0),
            by_leave_type=[
                LeaveTypeStats(
                    leave_type_id=lt_id,
                    leave_type=name,
                    requests_count=n,
                    total_days_requested=int(days),
                )
                for lt_id, name, n, days in type_rows
            ],
        )

    @staticmethod
    async def get_user_stats(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> UserLeaveStatsOut:
        """One user's requests starting in *year*, by status, type and month."""

        requests = (
            await db.execute(
                select(LeaveRequest)
                .where(
                    LeaveRequest.user_id == user_id,
                    LeaveRequest.start_date >= date(year, 1, 1),
                    LeaveRequest.start_date <= date(year, 12, 31),
                )
                .options(selectinload(LeaveRequest.leave_type))
                .order_by(LeaveRequest.start_date)
            )
        ).scalars().all()

        counts: dict[LeaveStatus, int] = {}
        by_type: dict[uuid.UUID, LeaveTypeStats] = {}
        by_month: dict[int, MonthStats] = {}
        for req in requests:
            counts[req.status] = counts.get(req.status, 0) + 1

            lt_stats = by_type.setdefault(
                req.leave_type_id,
                LeaveTypeStats(leave_type_id=req.leave_type_id, leave_type=req.leave_type.name),
            )
            lt_stats.requests_count += 1
            lt_stats.total_days_requested += req.total_days

            month_stats = by_month.setdefault(
                req.start_date.month, MonthStats(month=req.start_date.month),
            )
            month_stats.requests_count += 1
            month_stats.total_days += req.total_days

        balances = await BalanceLedger.get_balance(db, user_id, year)

        return UserLeaveStatsOut(
            user_id=user_id,
            year=year,
            total_requests=len(requests),
            total_days_requested=sum(r.total_days for r in requests),
            pending_requests=(
                counts.get(LeaveStatus.pending, 0)
                + counts.get(LeaveStatus.manager_approved, 0)
            ),
            approved_requests=counts.get(LeaveStatus.admin_approved, 0),
            rejected_requests=(
                counts.get(LeaveStatus.manager_rejected, 0)
                + counts.get(LeaveStatus.admin_rejected, 0)
            ),
            cancelled_requests=counts.get(LeaveStatus.cancelled, 0),
            by_leave_type=sorted(by_type.values(), key=lambda s: s.leave_type),
            by_month=[by_month[m] for m in sorted(by_month)],
            balances=[BalanceLedger.to_out(b) for b in balances],
        )
