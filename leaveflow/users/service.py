"""User service — profiles, role-scoped listing and admin user management."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import UserRole
from leaveflow.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leaveflow.common.filters import apply_filters, apply_search
from leaveflow.common.pagination import PaginationParams, paginate
from leaveflow.leave.ledger import BalanceLedger
from leaveflow.users.models import User
from leaveflow.users.schemas import UserCreate, UserListOut, UserOut, UserUpdate

logger = logging.getLogger(__name__)

_ADMIN_ONLY_FIELDS = ("role", "manager_id")


class UserService:
    """Async user operations."""

    @staticmethod
    async def _get_reporting_manager(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> User:
        manager = (
            await db.execute(
                select(User).where(User.id == manager_id, User.is_active.is_(True))
            )
        ).scalars().first()
        if manager is None:
            raise NotFoundException("User", str(manager_id))
        if manager.role == UserRole.employee:
            raise ValidationException(
                {"manager_id": ["The reporting manager must be a manager or admin."]}
            )
        return manager

    # ── List / read ─────────────────────────────────────────────────

    @staticmethod
    async def get_users(
        db: AsyncSession,
        viewer: User,
        pagination: PaginationParams,
        *,
        role: Optional[UserRole] = None,
        department: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> UserListOut:
        """Paginated user directory.

        Admins see everyone, managers see themselves and their direct
        reports, employees see only themselves.
        """
        query = select(User).order_by(User.last_name, User.first_name, User.id)

        if viewer.role == UserRole.manager:
            query = query.where(or_(User.id == viewer.id, User.manager_id == viewer.id))
        elif viewer.role != UserRole.admin:
            query = query.where(User.id == viewer.id)

        query = apply_filters(
            query,
            User,
            {"role": role, "department": department, "is_active": is_active},
        )
        query = apply_search(
            query, User, search, ["first_name", "last_name", "email", "department"],
        )

        rows, meta = await paginate(db, query, pagination, model=User)
        return UserListOut(data=[UserOut.model_validate(u) for u in rows], meta=meta)

    @staticmethod
    async def get_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        viewer: User,
    ) -> User:
        """One user, visible to admins, the user and the user's manager."""
        user = (
            await db.execute(select(User).where(User.id == user_id))
        ).scalars().first()
        if user is None:
            raise NotFoundException("User", str(user_id))
        if not (
            viewer.role == UserRole.admin
            or viewer.id == user.id
            or user.manager_id == viewer.id
        ):
            raise ForbiddenException("You are not allowed to view this user.")
        return user

    @staticmethod
    async def get_team(
        db: AsyncSession,
        viewer: User,
    ) -> Sequence[User]:
        """Direct reports for a manager; every active user for an admin."""
        query = (
            select(User)
            .where(User.is_active.is_(True))
            .order_by(User.last_name, User.first_name)
        )
        if viewer.role != UserRole.admin:
            query = query.where(User.manager_id == viewer.id)
        result = await db.execute(query)
        return result.scalars().all()

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_user(
        db: AsyncSession,
        data: UserCreate,
        *,
        actor_id: uuid.UUID,
    ) -> User:
        """Create a user and provision the current year's balances."""
        email = data.email.lower()

        dup = await db.execute(
            select(func.count()).select_from(User).where(func.lower(User.email) == email)
        )
        if dup.scalar_one() > 0:
            raise ConflictError("email", email)

        if data.manager_id is not None:
            await UserService._get_reporting_manager(db, data.manager_id)

        now = datetime.now(timezone.utc)
        user = User(
            email=email,
            first_name=data.first_name,
            last_name=data.last_name,
            department=data.department,
            role=data.role,
            manager_id=data.manager_id,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        await db.flush()

        await BalanceLedger.provision_year(db, user.id, now.year)

        await create_audit_entry(
            db,
            action="create",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor_id,
            new_values={
                "email": email,
                "role": data.role.value,
                "manager_id": str(data.manager_id) if data.manager_id else None,
            },
        )
        logger.info("User %s created with role %s", user.id, data.role.value)
        return user

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: UserUpdate,
        *,
        actor: User,
    ) -> User:
        """Partial update. Non-admins may only edit their own profile fields."""
        user = await UserService.get_user(db, user_id, actor)

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return user

        if actor.role != UserRole.admin:
            if actor.id != user.id:
                raise ForbiddenException("You can only update your own profile.")
            if any(field in changes for field in _ADMIN_ONLY_FIELDS):
                raise ForbiddenException("Only admins can change roles or reporting managers.")

        if "role" in changes:
            if changes["role"] is None:
                raise ValidationException({"role": ["Role cannot be empty."]})
            if changes["role"] == UserRole.employee and user.role != UserRole.employee:
                reports = (
                    await db.execute(
                        select(func.count()).select_from(User).where(
                            User.manager_id == user.id,
                            User.is_active.is_(True),
                        )
                    )
                ).scalar_one()
                if reports:
                    raise ValidationException(
                        {"role": ["Reassign this user's direct reports before demoting them."]}
                    )

        if changes.get("manager_id") is not None:
            if changes["manager_id"] == user.id:
                raise ValidationException({"manager_id": ["A user cannot report to themselves."]})
            await UserService._get_reporting_manager(db, changes["manager_id"])

        old_values: dict[str, Any] = {}
        new_values: dict[str, Any] = {}
        for field, value in changes.items():
            old_values[field] = _audit_value(getattr(user, field))
            new_values[field] = _audit_value(value)
            setattr(user, field, value)

        user.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=new_values,
        )
        logger.info("User %s updated by %s: %s", user.id, actor.id, ", ".join(changes))
        return user

    @staticmethod
    async def set_active(
        db: AsyncSession,
        user_id: uuid.UUID,
        is_active: bool,
        *,
        actor_id: uuid.UUID,
    ) -> User:
        """Admin: activate or deactivate an account. Admins cannot toggle themselves."""
        if user_id == actor_id:
            raise ValidationException(
                {"is_active": ["You cannot change the status of your own account."]}
            )

        user = (
            await db.execute(select(User).where(User.id == user_id))
        ).scalars().first()
        if user is None:
            raise NotFoundException("User", str(user_id))
        if user.is_active == is_active:
            return user

        user.is_active = is_active
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="activate" if is_active else "deactivate",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor_id,
            old_values={"is_active": not is_active},
            new_values={"is_active": is_active},
        )
        logger.info(
            "User %s %s by %s",
            user.id, "activated" if is_active else "deactivated", actor_id,
        )
        return user


def _audit_value(value: Any) -> Any:
    """JSON-safe form of a column value for the audit trail."""
    if isinstance(value, uuid.UUID):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    return value
