"""Call schemas - Pydantic models for the calls API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from callwatch.db.enums import CallPriority, CallStatus, CallType


# =============================================================================
# Requests
# =============================================================================

class CallCreate(BaseModel):
    """Schema for scheduling a call."""
    contact_name: str = Field(..., min_length=1, max_length=100)
    company: str | None = Field(None, max_length=100)
    phone_number: str | None = Field(None, max_length=20)
    email: EmailStr | None = None
    call_type: CallType = CallType.INTERVIEW
    scheduled_time: datetime
    duration_minutes: int = Field(30, ge=5, le=480)
    priority: CallPriority = CallPriority.MEDIUM
    notes: str | None = Field(None, max_length=5000)
    preparation_notes: str | None = Field(None, max_length=5000)
    owner_id: UUID | None = None  # Defaults to the caller; admin may set others


class CallComplete(BaseModel):
    outcome_notes: str | None = Field(None, max_length=5000)


class CallFail(BaseModel):
    reason: str | None = Field(None, max_length=255)


class CallReschedule(BaseModel):
    scheduled_time: datetime


# =============================================================================
# Responses
# =============================================================================

class CallRead(BaseModel):
    """Schema for reading a call."""
    id: UUID
    owner_id: UUID
    created_by_id: UUID | None
    contact_name: str
    company: str | None
    phone_number: str | None
    email: str | None
    call_type: CallType
    scheduled_time: datetime
    duration_minutes: int
    status: CallStatus
    priority: CallPriority
    notes: str | None
    preparation_notes: str | None
    outcome_notes: str | None
    failed_reason: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime


class CallListResponse(BaseModel):
    """Visible calls for the current user."""
    items: list[CallRead]
    total: int
    has_granted_access: bool  # Sees at least one schedule besides their own
