"""User Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leaveflow.common.constants import UserRole
from leaveflow.common.pagination import PaginationMeta


class UserBrief(BaseModel):
    """Minimal user info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    department: Optional[str] = None


class UserOut(BaseModel):
    """Full user representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    department: Optional[str] = None
    role: UserRole
    manager_id: Optional[uuid.UUID] = None
    is_active: bool = True
    created_at: datetime


class UserCreate(BaseModel):
    """Admin payload for provisioning a new user."""

    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    role: UserRole = UserRole.employee
    manager_id: Optional[uuid.UUID] = None


class UserUpdate(BaseModel):
    """Partial update; ``role`` and ``manager_id`` are admin-only."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    role: Optional[UserRole] = None
    manager_id: Optional[uuid.UUID] = None


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserListOut(BaseModel):
    """Paginated list of users."""

    data: list[UserOut]
    meta: PaginationMeta
