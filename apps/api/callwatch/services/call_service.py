"""Call data layer - reads and writes for scheduled calls and interviews.

Everything above this module (visibility, lifecycle, reminders) treats it as
the external store: `fetch_calls` is the read path, `update_call_status` the
write path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from callwatch.db.enums import (
    CallPriority,
    CallStatus,
    CallType,
    DEFAULT_CALL_PRIORITY,
    DEFAULT_CALL_TYPE,
)
from callwatch.db.models import Call
from callwatch.utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)


class CallServiceError(Exception):
    """Base exception for call data errors."""

    pass


class CallNotFoundError(CallServiceError):
    """Call not found."""

    def __init__(self, call_id: UUID):
        super().__init__(f"Call {call_id} not found")
        self.call_id = call_id


class CallPersistenceError(CallServiceError):
    """Write to the call store failed (not retried here)."""

    pass


# Columns a status update may touch alongside the status itself
STATUS_UPDATE_FIELDS = frozenset(
    {
        "scheduled_time",
        "outcome_notes",
        "failed_reason",
        "started_at",
        "completed_at",
    }
)


@dataclass(frozen=True)
class CallSnapshot:
    """Immutable read view of a call, safe to hold outside a DB session."""

    id: UUID
    owner_id: UUID
    contact_name: str
    company: str | None
    phone_number: str | None
    call_type: str
    scheduled_time: datetime
    duration_minutes: int
    status: str
    priority: str
    notes: str | None = None
    preparation_notes: str | None = None

    @property
    def is_scheduled(self) -> bool:
        return self.status == CallStatus.SCHEDULED.value


def to_snapshot(call: Call) -> CallSnapshot:
    return CallSnapshot(
        id=call.id,
        owner_id=call.owner_id,
        contact_name=call.contact_name,
        company=call.company,
        phone_number=call.phone_number,
        call_type=call.call_type,
        scheduled_time=ensure_utc(call.scheduled_time),
        duration_minutes=call.duration_minutes,
        status=call.status,
        priority=call.priority,
        notes=call.notes,
        preparation_notes=call.preparation_notes,
    )


# =============================================================================
# Reads
# =============================================================================

def get_call(db: Session, call_id: UUID) -> Call | None:
    return db.get(Call, call_id)


def fetch_calls(
    db: Session,
    owner_ids: Iterable[UUID] | None,
    statuses: Iterable[CallStatus] | None = None,
) -> list[Call]:
    """
    Fetch calls for a set of owners, soonest first.

    owner_ids=None means every owner (admin view). An empty collection
    returns nothing without querying.
    """
    query = db.query(Call)
    if owner_ids is not None:
        owner_ids = list(owner_ids)
        if not owner_ids:
            return []
        query = query.filter(Call.owner_id.in_(owner_ids))
    if statuses is not None:
        status_values = [CallStatus(s).value for s in statuses]
        query = query.filter(Call.status.in_(status_values))
    return query.order_by(Call.scheduled_time.asc(), Call.id.asc()).all()


# =============================================================================
# Writes
# =============================================================================

def _commit(db: Session, action: str, call_id: UUID | None = None) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Call %s failed for call=%s: %s", action, call_id, type(exc).__name__)
        raise CallPersistenceError(f"Failed to {action} call") from exc


def create_call(
    db: Session,
    *,
    owner_id: UUID,
    created_by_id: UUID | None,
    contact_name: str,
    scheduled_time: datetime,
    company: str | None = None,
    phone_number: str | None = None,
    email: str | None = None,
    call_type: CallType = DEFAULT_CALL_TYPE,
    duration_minutes: int = 30,
    priority: CallPriority = DEFAULT_CALL_PRIORITY,
    notes: str | None = None,
    preparation_notes: str | None = None,
) -> Call:
    """Create a scheduled call on owner_id's schedule."""
    call = Call(
        owner_id=owner_id,
        created_by_id=created_by_id,
        contact_name=contact_name,
        company=company,
        phone_number=phone_number,
        email=email,
        call_type=CallType(call_type).value,
        scheduled_time=ensure_utc(scheduled_time),
        duration_minutes=duration_minutes,
        status=CallStatus.SCHEDULED.value,
        priority=CallPriority(priority).value,
        notes=notes,
        preparation_notes=preparation_notes,
    )
    db.add(call)
    _commit(db, "create")
    db.refresh(call)
    logger.info("Call created call=%s owner=%s", call.id, owner_id)
    return call


def update_call_status(
    db: Session,
    call_id: UUID,
    new_status: CallStatus,
    **fields,
) -> Call:
    """
    Write a new status (plus transition fields) for a call.

    Does not validate the transition; CallLifecycle does that before
    calling in.
    """
    unknown = set(fields) - STATUS_UPDATE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported call fields: {', '.join(sorted(unknown))}")

    call = get_call(db, call_id)
    if not call:
        raise CallNotFoundError(call_id)

    call.status = CallStatus(new_status).value
    for key, value in fields.items():
        if isinstance(value, datetime):
            value = ensure_utc(value)
        setattr(call, key, value)

    _commit(db, "update", call_id)
    db.refresh(call)
    return call


def delete_call(db: Session, call_id: UUID) -> None:
    call = get_call(db, call_id)
    if not call:
        raise CallNotFoundError(call_id)
    db.delete(call)
    _commit(db, "delete", call_id)
    logger.info("Call deleted call=%s", call_id)
