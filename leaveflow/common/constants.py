"""Enums and constants for LeaveFlow — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveCategory(str, enum.Enum):
    casual = "casual"
    health = "health"
    annual = "annual"
    sick = "sick"
    personal = "personal"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    manager_approved = "manager_approved"
    admin_approved = "admin_approved"
    manager_rejected = "manager_rejected"
    admin_rejected = "admin_rejected"
    cancelled = "cancelled"


TERMINAL_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.admin_approved,
    LeaveStatus.manager_rejected,
    LeaveStatus.admin_rejected,
    LeaveStatus.cancelled,
})

# Statuses that still hold days on the calendar (used for overlap checks)
BLOCKING_STATUSES: frozenset[LeaveStatus] = frozenset({
    LeaveStatus.pending,
    LeaveStatus.manager_approved,
    LeaveStatus.admin_approved,
})


class TransitionAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


class ApprovalLevel(str, enum.Enum):
    manager = "manager"
    admin = "admin"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    request_submitted = "request_submitted"
    awaiting_admin = "awaiting_admin"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    info = "info"


# ── Default leave type catalog (seeded once) ────────────────────────

DEFAULT_LEAVE_TYPES: list[dict] = [
    {
        "category": LeaveCategory.casual,
        "name": "Casual Leave",
        "description": "Short personal leave for planned or unplanned needs.",
        "annual_days": 12,
        "carry_forward_days": 0,
        "max_consecutive_days": 3,
        "notice_period_days": 1,
        "monthly_limit_days": 1,
    },
    {
        "category": LeaveCategory.health,
        "name": "Health Leave",
        "description": "Leave for illness, medical appointments and recovery.",
        "annual_days": 12,
        "carry_forward_days": 5,
        "max_consecutive_days": None,
        "notice_period_days": 0,
        "monthly_limit_days": 1,
    },
]

# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
