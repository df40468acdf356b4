"""Common module — shared utilities for LeaveFlow."""

from leaveflow.common.audit import AuditTrail, create_audit_entry
from leaveflow.common.constants import (
    BLOCKING_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TERMINAL_STATUSES,
    ApprovalLevel,
    LeaveCategory,
    LeaveStatus,
    NotificationType,
    TransitionAction,
    UserRole,
)
from leaveflow.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateException,
    MonthlyLimitExceededException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leaveflow.common.pagination import (
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalLevel",
    "LeaveCategory",
    "LeaveStatus",
    "NotificationType",
    "TransitionAction",
    "UserRole",
    "BLOCKING_STATUSES",
    "TERMINAL_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidStateException",
    "MonthlyLimitExceededException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
