"""User endpoints — profile, directory, team, admin management and per-user stats."""


import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.dependencies import get_current_user, require_role
from leaveflow.common.constants import UserRole
from leaveflow.common.pagination import PaginationParams
from leaveflow.database import get_db
from leaveflow.leave.schemas import UserLeaveStatsOut
from leaveflow.leave.service import LeaveService
from leaveflow.users.models import User
from leaveflow.users.schemas import (
    UserCreate,
    UserListOut,
    UserOut,
    UserStatusUpdate,
    UserUpdate,
)
from leaveflow.users.service import UserService

router = APIRouter(prefix="", tags=["users"])


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me", response_model=UserOut)
async def get_me(
    user: User = Depends(get_current_user),
):
    """Return the authenticated user's profile."""
    return UserOut.model_validate(user)


# ── GET /team ───────────────────────────────────────────────────────

@router.get("/team", response_model=list[UserOut])
async def get_team(
    user: User = Depends(require_role(UserRole.manager, UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Direct reports (managers) or every active user (admins)."""
    team = await UserService.get_team(db, user)
    return [UserOut.model_validate(u) for u in team]


# ── GET / — role-scoped directory ───────────────────────────────────

@router.get("", response_model=UserListOut)
async def list_users(
    role: Optional[UserRole] = Query(None),
    department: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="Name, email or department"),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Users visible to the caller (self, team, or everyone for admins)."""
    return await UserService.get_users(
        db,
        user,
        pagination,
        role=role,
        department=department,
        is_active=is_active,
        search=search,
    )


# ── POST / — create user ────────────────────────────────────────────

@router.post("", response_model=UserOut, status_code=201)
async def create_user(
    body: UserCreate,
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Create a user and provision this year's leave balances."""
    created = await UserService.create_user(db, body, actor_id=user.id)
    return UserOut.model_validate(created)


# ── GET /{id} ───────────────────────────────────────────────────────
# NOTE: Registered after /me and /team so those are not parsed as UUIDs.

@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """One user (self, the user's manager or admin)."""
    return UserOut.model_validate(await UserService.get_user(db, user_id, user))


# ── PUT /{id} ───────────────────────────────────────────────────────

@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update profile fields; role and manager changes need an admin."""
    updated = await UserService.update_user(db, user_id, body, actor=user)
    return UserOut.model_validate(updated)


# ── PUT /{id}/toggle-status ─────────────────────────────────────────

@router.put("/{user_id}/toggle-status", response_model=UserOut)
async def toggle_status(
    user_id: uuid.UUID,
    body: UserStatusUpdate,
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Activate or deactivate an account."""
    updated = await UserService.set_active(db, user_id, body.is_active, actor_id=user.id)
    return UserOut.model_validate(updated)


# ── GET /{id}/stats ─────────────────────────────────────────────────

@router.get("/{user_id}/stats", response_model=UserLeaveStatsOut)
async def get_user_stats(
    user_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """A user's leave activity for a year (self, the user's manager or admin)."""
    target = await UserService.get_user(db, user_id, user)
    return await LeaveService.get_user_stats(
        db, target.id, year or datetime.now(timezone.utc).year,
    )
