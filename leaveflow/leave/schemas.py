"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from leaveflow.common.constants import LeaveCategory, LeaveStatus
from leaveflow.common.pagination import PaginationMeta
from leaveflow.users.schemas import UserBrief


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    category: LeaveCategory
    name: str


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    category: LeaveCategory
    name: str
    description: Optional[str] = None
    annual_days: int
    carry_forward_days: int = 0
    max_consecutive_days: Optional[int] = None
    notice_period_days: int = 0
    monthly_limit_days: Optional[int] = None
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for a single leave type; remaining is always recomputed."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    total_days: int
    used_days: int
    pending_days: int
    carried_forward_days: int = 0

    leave_type: Optional[LeaveTypeBrief] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_days(self) -> int:
        return self.total_days - self.used_days - self.pending_days


class LeaveSummaryOut(BaseModel):
    """Totals across every leave type for one user and year."""

    year: int
    total_days: int = 0
    used_days: int = 0
    pending_days: int = 0
    remaining_days: int = 0
    balances: list[LeaveBalanceOut] = []


class MonthlyUsageOut(BaseModel):
    """Days held against one leave type's monthly cap."""

    leave_type_id: uuid.UUID
    leave_type: LeaveTypeBrief
    year: int
    month: int
    used_days: int = 0
    max_allowed: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_days(self) -> int:
        return max(0, self.max_allowed - self.used_days)


class ProvisionRequest(BaseModel):
    """Admin payload for provisioning a user's balances for a year."""

    user_id: uuid.UUID
    year: Optional[int] = Field(
        None, ge=2000, le=2100, description="Target year; defaults to current year"
    )


class RolloverRequest(BaseModel):
    """Admin payload for carrying balances forward into the next year."""

    from_year: int = Field(..., ge=2000, le=2100)


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)
    emergency: bool = False

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    emergency: bool = False
    status: LeaveStatus
    manager_id: Optional[uuid.UUID] = None
    manager_comment: Optional[str] = None
    manager_action_at: Optional[datetime] = None
    admin_id: Optional[uuid.UUID] = None
    admin_comment: Optional[str] = None
    admin_action_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Enriched by service
    user: Optional[UserBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


class LeaveRequestListOut(BaseModel):
    """Paginated list of leave requests."""

    data: list[LeaveRequestOut]
    meta: PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    comment: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    comment: Optional[str] = Field(None, max_length=500)


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    reason: Optional[str] = Field(None, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Statistics
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeStats(BaseModel):
    leave_type_id: uuid.UUID
    leave_type: str
    requests_count: int = 0
    total_days_requested: int = 0


class LeaveStatisticsOut(BaseModel):
    """Organisation-wide leave statistics for a year (admin dashboard)."""

    year: int
    total_requests: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    cancelled_requests: int = 0
    by_leave_type: list[LeaveTypeStats] = []


class MonthStats(BaseModel):
    month: int
    requests_count: int = 0
    total_days: int = 0


class UserLeaveStatsOut(BaseModel):
    """One user's leave activity for a year (profile page)."""

    user_id: uuid.UUID
    year: int
    total_requests: int = 0
    total_days_requested: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    cancelled_requests: int = 0
    by_leave_type: list[LeaveTypeStats] = []
    by_month: list[MonthStats] = []
    balances: list[LeaveBalanceOut] = []
