"""Notification schemas - reminder events and monitor controls."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class NotificationCallRead(BaseModel):
    id: UUID
    owner_id: UUID
    contact_name: str
    company: str | None
    phone_number: str | None
    call_type: str
    scheduled_time: datetime
    priority: str
    preparation_notes: str | None


class NotificationRead(BaseModel):
    """A fired reminder."""
    call_id: UUID
    kind: str  # offset | snooze
    offset_minutes: int
    minutes_until: int
    title: str
    message: str
    fired_at: datetime
    call: NotificationCallRead


class NotificationListResponse(BaseModel):
    items: list[NotificationRead]
    count: int


class NextReminderRead(BaseModel):
    """The next reminder the scheduler expects to fire."""
    call_id: UUID
    contact_name: str
    offset_minutes: int
    due_at: datetime


class SnoozeRequest(BaseModel):
    minutes: int | None = Field(None, ge=1, le=120)  # Defaults to NOTIFICATION_SNOOZE_MINUTES


class MonitorStatus(BaseModel):
    """Reminder monitor state for the current user."""
    running: bool
    offsets_minutes: list[int]
    poll_interval_seconds: float
    snooze_minutes: int
    channels: list[str]
