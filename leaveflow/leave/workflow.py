"""
Leave Request Approval State Machine

This module is the single source of truth for leave status transitions.
Every approve / reject / cancel goes through ``plan_transition`` (is the
move legal from this state?) and ``authorize_transition`` (may this actor
make it?). Persistence lives in ``LeaveService.transition``.

Lifecycle::

    pending ──manager approve──► manager_approved ──admin approve──► admin_approved
       │                              │
       ├──manager reject──► manager_rejected
       │                              ├──admin reject──► admin_rejected
       └──owner cancel──► cancelled ◄─┘ (owner cancel)
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Optional

from leaveflow.common.constants import (
    TERMINAL_STATUSES,
    ApprovalLevel,
    LeaveStatus,
    TransitionAction,
    UserRole,
)
from leaveflow.common.exceptions import ForbiddenException, InvalidStateException


class Recipient(str, enum.Enum):
    """Who is told about a transition."""

    owner = "owner"
    admin = "admin"


@dataclass(frozen=True)
class TransitionPlan:
    """Outcome of a legal transition.

    Balance deltas are expressed as multiples of the request's total_days:
    ``pending_sign=-1`` releases the held days, ``used_sign=+1`` consumes them.
    """

    new_status: LeaveStatus
    pending_sign: int
    used_sign: int
    notify: Recipient

    def pending_delta(self, days: int) -> int:
        return self.pending_sign * days

    def used_delta(self, days: int) -> int:
        return self.used_sign * days

    @property
    def releases_days(self) -> bool:
        """True when the request gives its held days back without using them."""
        return self.pending_sign < 0 and self.used_sign == 0


# (current status, action, level) -> plan. Cancel is level-less.
TRANSITIONS: dict[
    tuple[LeaveStatus, TransitionAction, Optional[ApprovalLevel]], TransitionPlan
] = {
    (LeaveStatus.pending, TransitionAction.approve, ApprovalLevel.manager): TransitionPlan(
        LeaveStatus.manager_approved, 0, 0, Recipient.admin,
    ),
    (LeaveStatus.pending, TransitionAction.reject, ApprovalLevel.manager): TransitionPlan(
        LeaveStatus.manager_rejected, -1, 0, Recipient.owner,
    ),
    (LeaveStatus.manager_approved, TransitionAction.approve, ApprovalLevel.admin): TransitionPlan(
        LeaveStatus.admin_approved, -1, 1, Recipient.owner,
    ),
    (LeaveStatus.manager_approved, TransitionAction.reject, ApprovalLevel.admin): TransitionPlan(
        LeaveStatus.admin_rejected, -1, 0, Recipient.owner,
    ),
    (LeaveStatus.pending, TransitionAction.cancel, None): TransitionPlan(
        LeaveStatus.cancelled, -1, 0, Recipient.owner,
    ),
    (LeaveStatus.manager_approved, TransitionAction.cancel, None): TransitionPlan(
        LeaveStatus.cancelled, -1, 0, Recipient.owner,
    ),
}


def is_terminal(status: LeaveStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_actions(
    status: LeaveStatus,
) -> list[tuple[TransitionAction, Optional[ApprovalLevel]]]:
    """Actions that are legal from *status* (empty for terminal states)."""
    return [
        (action, level)
        for (current, action, level) in TRANSITIONS
        if current == status
    ]


def plan_transition(
    status: LeaveStatus,
    action: TransitionAction,
    level: Optional[ApprovalLevel] = None,
) -> TransitionPlan:
    """Return the plan for a move, or raise ``InvalidStateException``."""
    if action == TransitionAction.cancel:
        level = None

    plan = TRANSITIONS.get((status, action, level))
    if plan is not None:
        return plan

    if is_terminal(status):
        raise InvalidStateException(
            f"Leave request is already {status.value}; no further changes are allowed."
        )
    target = f"{level.value} {action.value}" if level else action.value
    raise InvalidStateException(
        f"Cannot {target} a leave request with status '{status.value}'."
    )


def authorize_transition(
    *,
    action: TransitionAction,
    level: Optional[ApprovalLevel],
    actor_id: uuid.UUID,
    actor_role: UserRole,
    owner_id: uuid.UUID,
    owner_manager_id: Optional[uuid.UUID],
) -> None:
    """Raise ``ForbiddenException`` unless the actor may perform the move."""
    if action == TransitionAction.cancel:
        if actor_id != owner_id:
            raise ForbiddenException("You can only cancel your own leave requests.")
        return

    if actor_id == owner_id:
        raise ForbiddenException("You cannot review your own leave request.")

    if level == ApprovalLevel.admin:
        if actor_role != UserRole.admin:
            raise ForbiddenException("Only admins can perform admin approvals.")
        return

    # Manager stage: the owner's manager, or any admin standing in
    if actor_role == UserRole.admin:
        return
    if actor_role == UserRole.manager and owner_manager_id == actor_id:
        return
    raise ForbiddenException(
        "You can only review leave requests for your team members."
    )
