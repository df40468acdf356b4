"""Test data factories and auth helpers shared by the test modules."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import DEFAULT_LEAVE_TYPES, LeaveCategory, UserRole
from leaveflow.config import settings
from leaveflow.leave.models import LeaveBalance, LeaveType
from leaveflow.users.models import User


# ── Dates ───────────────────────────────────────────────────────────
# Requests are placed in next year so they are never in the past and
# always clear the notice period, whatever today's date is.

NEXT_YEAR = datetime.now(timezone.utc).year + 1


def next_year_date(month: int, day: int) -> date:
    return date(NEXT_YEAR, month, day)


# ── Model factories ─────────────────────────────────────────────────

def _make_user(
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    role: UserRole = UserRole.employee,
    manager_id: Optional[uuid.UUID] = None,
    created_at: Optional[datetime] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        email=email or f"user.{uuid.uuid4().hex[:8]}@leaveflow.dev",
        first_name=first_name,
        last_name=last_name,
        department="Engineering",
        role=role,
        manager_id=manager_id,
        is_active=True,
        created_at=created_at or datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def seed_user(db: AsyncSession, **kwargs) -> User:
    user = User(**_make_user(**kwargs))
    db.add(user)
    await db.flush()
    return user


async def seed_leave_types(
    db: AsyncSession,
    *,
    monthly_limits: bool = False,
) -> dict[LeaveCategory, LeaveType]:
    """Insert the default catalog (casual 12, health 12).

    Monthly caps are cleared unless *monthly_limits* is set, so multi-day
    scenarios are not blocked by the one-day-per-month default.
    """
    now = datetime.now(timezone.utc)
    types: dict[LeaveCategory, LeaveType] = {}
    for spec in DEFAULT_LEAVE_TYPES:
        values = dict(spec)
        if not monthly_limits:
            values["monthly_limit_days"] = None
        lt = LeaveType(id=uuid.uuid4(), **values, is_active=True, created_at=now, updated_at=now)
        db.add(lt)
        types[lt.category] = lt
    await db.flush()
    return types


async def seed_balance(
    db: AsyncSession,
    user: User,
    leave_type: LeaveType,
    *,
    year: int = NEXT_YEAR,
    total_days: Optional[int] = None,
    used_days: int = 0,
    pending_days: int = 0,
) -> LeaveBalance:
    balance = LeaveBalance(
        id=uuid.uuid4(),
        user_id=user.id,
        leave_type_id=leave_type.id,
        leave_type=leave_type,
        year=year,
        total_days=leave_type.annual_days if total_days is None else total_days,
        used_days=used_days,
        pending_days=pending_days,
        carried_forward_days=0,
        updated_at=datetime.now(timezone.utc),
    )
    db.add(balance)
    await db.flush()
    return balance


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
