"""Enum definitions for application constants."""

from callwatch.db.enums.auth import Role
from callwatch.db.enums.calls import (
    CallPriority,
    CallStatus,
    CallType,
    DEFAULT_CALL_PRIORITY,
    DEFAULT_CALL_STATUS,
    DEFAULT_CALL_TYPE,
    TERMINAL_CALL_STATUSES,
)
from callwatch.db.enums.notifications import (
    GrantFailureCode,
    GrantOutcome,
    NotificationChannel,
    TriggerKind,
)
from callwatch.db.enums.permissions import (
    ROLES_CAN_MANAGE_ANY_CALL,
    ROLES_CAN_MANAGE_SCHEDULE_PERMISSIONS,
    ROLES_CAN_SCHEDULE_FOR_OTHERS,
    ROLES_SEE_ALL_SCHEDULES,
)

__all__ = [
    "CallPriority",
    "CallStatus",
    "CallType",
    "DEFAULT_CALL_PRIORITY",
    "DEFAULT_CALL_STATUS",
    "DEFAULT_CALL_TYPE",
    "GrantFailureCode",
    "GrantOutcome",
    "NotificationChannel",
    "ROLES_CAN_MANAGE_ANY_CALL",
    "ROLES_CAN_MANAGE_SCHEDULE_PERMISSIONS",
    "ROLES_CAN_SCHEDULE_FOR_OTHERS",
    "ROLES_SEE_ALL_SCHEDULES",
    "Role",
    "TERMINAL_CALL_STATUSES",
    "TriggerKind",
]
