"""User ORM model — people, roles and reporting lines.

SQLAlchemy 2.0 async-compatible model with Mapped[] annotations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import UserRole
from leaveflow.database import Base

if TYPE_CHECKING:
    from leaveflow.leave.models import LeaveBalance, LeaveRequest
    from leaveflow.notifications.models import Notification


class User(Base):
    """An employee, manager or administrator."""

    __tablename__ = "users"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identity ────────────────────────────────────────────────────
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(sa.String(100))

    # ── Access ──────────────────────────────────────────────────────
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role", create_type=False),
        nullable=False,
        default=UserRole.employee,
    )
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )

    # ── Status / Timestamps ─────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    manager: Mapped[Optional[User]] = relationship(
        remote_side=[id],
        foreign_keys=[manager_id],
        back_populates="direct_reports",
    )
    direct_reports: Mapped[list[User]] = relationship(
        back_populates="manager",
        foreign_keys=[manager_id],
    )
    leave_balances: Mapped[list["LeaveBalance"]] = relationship(
        back_populates="user",
    )
    leave_requests: Mapped[list["LeaveRequest"]] = relationship(
        back_populates="user",
        foreign_keys="LeaveRequest.user_id",
    )
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="user",
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
