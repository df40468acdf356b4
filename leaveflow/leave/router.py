"""Leave router — submit, review, cancel, balances, statistics.

All endpoints require authentication. Manager/admin-specific endpoints enforce role checks.
"""


import uuid
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.dependencies import get_current_user, require_role
from leaveflow.common.constants import LeaveStatus, UserRole
from leaveflow.common.pagination import PaginationParams
from leaveflow.common.rate_limit import limiter
from leaveflow.config import settings
from leaveflow.database import get_db
from leaveflow.leave.schemas import (
    LeaveApproveRequest,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestListOut,
    LeaveRequestOut,
    LeaveStatisticsOut,
    LeaveSummaryOut,
    LeaveTypeOut,
    MonthlyUsageOut,
    ProvisionRequest,
    RolloverRequest,
)
from leaveflow.leave.service import LeaveService
from leaveflow.users.models import User

router = APIRouter(prefix="", tags=["leave"])


def _year_or_current(year: Optional[int]) -> int:
    return year or datetime.now(timezone.utc).year


# ── POST / — submit ─────────────────────────────────────────────────

@router.post("", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(settings.SUBMIT_RATE_LIMIT)
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Validates dates, notice period, overlap, balance and monthly cap."""
    return await LeaveService.submit_leave(db, user.id, body)


# ── GET / — role-scoped list ────────────────────────────────────────

@router.get("", response_model=LeaveRequestListOut)
async def list_leave_requests(
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests visible to the caller (own, team, or all for admins)."""
    return await LeaveService.get_leave_requests(
        db,
        user,
        pagination,
        user_id=user_id,
        status=status,
        leave_type_id=leave_type_id,
        from_date=from_date,
        to_date=to_date,
    )


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def get_leave_types(
    is_active: Optional[bool] = Query(True),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the leave type catalog."""
    return await LeaveService.get_leave_types(db, is_active=is_active)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Leave year; defaults to current year"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's leave balances for a given year."""
    return await LeaveService.get_balances(db, user.id, _year_or_current(year))


# ── POST /balances/provision ────────────────────────────────────────

@router.post("/balances/provision", response_model=list[LeaveBalanceOut])
async def provision_balances(
    body: ProvisionRequest,
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Create a user's balance rows for a year from the active leave types."""
    return await LeaveService.provision_balances(
        db, body.user_id, _year_or_current(body.year), actor_id=user.id,
    )


# ── POST /balances/rollover ─────────────────────────────────────────

@router.post("/balances/rollover", response_model=list[LeaveBalanceOut])
async def rollover_balances(
    body: RolloverRequest,
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Carry unused days forward into the following year."""
    return await LeaveService.rollover_balances(db, body.from_year, actor_id=user.id)


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary", response_model=LeaveSummaryOut)
async def get_summary(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Totals across the caller's leave types."""
    return await LeaveService.get_summary(db, user.id, _year_or_current(year))


# ── GET /monthly-usage ──────────────────────────────────────────────

@router.get("/monthly-usage", response_model=list[MonthlyUsageOut])
async def get_monthly_usage(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12, description="Defaults to the current month"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's usage against each leave type's monthly cap."""
    now = datetime.now(timezone.utc)
    return await LeaveService.get_monthly_usage(
        db, user.id, year or now.year, month or now.month,
    )


# ── GET /pending-approvals ──────────────────────────────────────────

@router.get("/pending-approvals", response_model=list[LeaveRequestOut])
async def pending_approvals(
    user: User = Depends(require_role(UserRole.manager, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Requests waiting on the caller's review."""
    return await LeaveService.get_pending_approvals(db, user)


# ── GET /statistics ─────────────────────────────────────────────────

@router.get("/statistics", response_model=LeaveStatisticsOut)
async def statistics(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Organisation-wide leave statistics for a year."""
    return await LeaveService.get_statistics(db, _year_or_current(year))


# ── GET /{id} ───────────────────────────────────────────────────────
# NOTE: Registered after the fixed paths above so "types", "summary" etc.
# are not parsed as UUIDs.

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Fetch one leave request (owner, owner's manager or admin)."""
    return await LeaveService.get_leave_request(db, request_id, user)


# ── PUT /{id}/approve/manager ───────────────────────────────────────

@router.put("/{request_id}/approve/manager", response_model=LeaveRequestOut)
async def manager_approve(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """First-stage approval. Days stay pending until the admin decision."""
    return await LeaveService.manager_approve(db, request_id, user.id, comment=body.comment)


# ── PUT /{id}/reject/manager ────────────────────────────────────────

@router.put("/{request_id}/reject/manager", response_model=LeaveRequestOut)
async def manager_reject(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """First-stage rejection. Releases the pending days."""
    return await LeaveService.manager_reject(db, request_id, user.id, comment=body.comment)


# ── PUT /{id}/approve/admin ─────────────────────────────────────────

@router.put("/{request_id}/approve/admin", response_model=LeaveRequestOut)
async def admin_approve(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Final approval. Moves the days from pending to used."""
    return await LeaveService.admin_approve(db, request_id, user.id, comment=body.comment)


# ── PUT /{id}/reject/admin ──────────────────────────────────────────

@router.put("/{request_id}/reject/admin", response_model=LeaveRequestOut)
async def admin_reject(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Final rejection. Releases the pending days."""
    return await LeaveService.admin_reject(db, request_id, user.id, comment=body.comment)


# ── PUT /{id}/cancel ────────────────────────────────────────────────

@router.put("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel one of the caller's pending or manager-approved requests."""
    return await LeaveService.cancel_leave(db, request_id, user.id, reason=body.reason)
