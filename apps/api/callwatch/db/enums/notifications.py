"""Notification-related enums."""

from enum import Enum


class TriggerKind(str, Enum):
    """Why a call reminder fired."""

    OFFSET = "offset"  # Configured minutes-before ladder
    SNOOZE = "snooze"  # One-shot re-fire requested by the viewer


class NotificationChannel(str, Enum):
    """Delivery channels for call reminders."""

    IN_APP = "in_app"
    WEBSOCKET = "websocket"
    LOG = "log"


class GrantOutcome(str, Enum):
    """Per-target classification of a batch grant."""

    CREATED = "created"
    RESTORED = "restored"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class GrantFailureCode(str, Enum):
    """Reason a single grant entry failed."""

    SELF_GRANT_INVALID = "self_grant_invalid"
    NOT_FOUND = "not_found"
    PERSISTENCE_ERROR = "persistence_error"
