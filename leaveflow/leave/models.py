"""Leave ORM models: LeaveType, LeaveBalance, MonthlyLeaveUsage, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import LeaveCategory, LeaveStatus
from leaveflow.database import Base

if TYPE_CHECKING:
    from leaveflow.users.models import User


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    category: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category", create_type=False),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    annual_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    carry_forward_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0
    )
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    notice_period_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0
    )
    # None means no per-month cap
    monthly_limit_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "user_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint("used_days >= 0", name="ck_leave_balance_used"),
        sa.CheckConstraint("pending_days >= 0", name="ck_leave_balance_pending"),
    )
    # remaining_days is generated on every UPDATE; fetch it back with the row
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    used_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    pending_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    carried_forward_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0
    )
    # remaining_days is a GENERATED ALWAYS column, read-only in the ORM
    remaining_days: Mapped[int] = mapped_column(
        sa.Integer,
        sa.Computed("total_days - used_days - pending_days"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="leave_balances")
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")

    @property
    def available_days(self) -> int:
        """Remaining days recomputed from the counters, never the stored column."""
        return self.total_days - self.used_days - self.pending_days


class MonthlyLeaveUsage(Base):
    """Days held against a leave type in one calendar month of leave dates."""

    __tablename__ = "monthly_leave_usage"
    __table_args__ = (
        sa.UniqueConstraint(
            "user_id", "leave_type_id", "year", "month", name="uq_monthly_leave_usage"
        ),
        sa.CheckConstraint("used_days >= 0", name="ck_monthly_usage_used"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_monthly_usage_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    used_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    max_allowed: Mapped[Optional[int]] = mapped_column(sa.Integer)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    leave_type: Mapped[LeaveType] = relationship()


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_request_dates"),
        sa.Index("ix_leave_requests_user_status", "user_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    emergency: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", create_type=False),
        nullable=False,
        default=LeaveStatus.pending,
    )

    # Manager stage
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    manager_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    manager_action_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    # Admin stage
    admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    admin_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    admin_action_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancel_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(
        back_populates="leave_requests", foreign_keys=[user_id]
    )
    manager: Mapped[Optional["User"]] = relationship(foreign_keys=[manager_id])
    admin: Mapped[Optional["User"]] = relationship(foreign_keys=[admin_id])
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")

    @property
    def year(self) -> int:
        """Leave year whose balance this request draws on."""
        return self.start_date.year
