"""Call and interview scheduling enums."""

from enum import Enum


class CallStatus(str, Enum):
    """
    Call lifecycle status.

    Flow: scheduled → in_progress → completed
                              ↘ failed
          scheduled → rescheduled → scheduled (new time)
          scheduled → cancelled
    """

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    RESCHEDULED = "rescheduled"  # Transitional; a reschedule lands back on SCHEDULED
    CANCELLED = "cancelled"


class CallType(str, Enum):
    """Kind of call on a schedule."""

    INTERVIEW = "interview"
    FOLLOW_UP = "follow_up"
    NETWORKING = "networking"
    CLIENT = "client"
    PERSONAL = "personal"


class CallPriority(str, Enum):
    """Call priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Statuses after which a call never produces reminders again
TERMINAL_CALL_STATUSES = frozenset(
    {CallStatus.COMPLETED, CallStatus.FAILED, CallStatus.CANCELLED}
)

DEFAULT_CALL_STATUS = CallStatus.SCHEDULED
DEFAULT_CALL_TYPE = CallType.FOLLOW_UP
DEFAULT_CALL_PRIORITY = CallPriority.MEDIUM
