"""
Call lifecycle - status transitions and their reminder side effects.

    scheduled -> in_progress -> completed | failed
    scheduled -> rescheduled -> scheduled (new time)
    scheduled -> cancelled

Each transition is written through call_service first. Only after the write
commits are running reminder schedulers told about it, so a failed write
never leaves reminders out of sync with the store.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from callwatch.db.enums import CallStatus, ROLES_CAN_MANAGE_ANY_CALL
from callwatch.db.models import Call
from callwatch.services import call_service
from callwatch.services.call_service import CallNotFoundError
from callwatch.services.notification_scheduler import (
    CallRescheduled,
    CallRetired,
    CallStarted,
    SchedulerCommand,
)
from callwatch.utils.datetime_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[CallStatus, frozenset[CallStatus]] = {
    CallStatus.SCHEDULED: frozenset(
        {CallStatus.IN_PROGRESS, CallStatus.RESCHEDULED, CallStatus.CANCELLED}
    ),
    CallStatus.RESCHEDULED: frozenset({CallStatus.SCHEDULED}),
    CallStatus.IN_PROGRESS: frozenset({CallStatus.COMPLETED, CallStatus.FAILED}),
    CallStatus.COMPLETED: frozenset(),
    CallStatus.FAILED: frozenset(),
    CallStatus.CANCELLED: frozenset(),
}


class CallLifecycleError(Exception):
    """Base exception for call lifecycle errors."""

    pass


class InvalidTransitionError(CallLifecycleError):
    """Requested status change is not an edge of the lifecycle."""

    def __init__(self, call_id: UUID, current: CallStatus, requested: CallStatus):
        super().__init__(
            f"Cannot move call from '{current.value}' to '{requested.value}'"
        )
        self.call_id = call_id
        self.current = current
        self.requested = requested


class CallAccessDeniedError(CallLifecycleError):
    """Actor may not change this call."""

    pass


class CommandBus(Protocol):
    def broadcast(self, command: SchedulerCommand) -> int: ...


def can_transition(current: CallStatus, requested: CallStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def _load(db: Session, call_id: UUID, actor_id: UUID, actor_role: str) -> Call:
    call = call_service.get_call(db, call_id)
    if not call:
        raise CallNotFoundError(call_id)
    if call.owner_id != actor_id and actor_role not in ROLES_CAN_MANAGE_ANY_CALL:
        raise CallAccessDeniedError("Only the call owner or an admin can change this call")
    return call


def _check(call: Call, *path: CallStatus) -> None:
    current = CallStatus(call.status)
    for requested in path:
        if not can_transition(current, requested):
            raise InvalidTransitionError(call.id, CallStatus(call.status), requested)
        current = requested


def _notify(commands: CommandBus | None, command: SchedulerCommand) -> None:
    if commands is not None:
        commands.broadcast(command)


def start(
    db: Session,
    call_id: UUID,
    actor_id: UUID,
    actor_role: str,
    *,
    commands: CommandBus | None = None,
    now: datetime | None = None,
) -> Call:
    """Scheduled -> in_progress. Future-offset reminders are dropped; "starting now" may still fire."""
    call = _load(db, call_id, actor_id, actor_role)
    _check(call, CallStatus.IN_PROGRESS)
    call = call_service.update_call_status(
        db, call_id, CallStatus.IN_PROGRESS, started_at=now or utcnow()
    )
    _notify(commands, CallStarted(call_id))
    logger.info("Call started call=%s", call_id)
    return call


def complete(
    db: Session,
    call_id: UUID,
    actor_id: UUID,
    actor_role: str,
    outcome_notes: str | None = None,
    *,
    commands: CommandBus | None = None,
    now: datetime | None = None,
) -> Call:
    call = _load(db, call_id, actor_id, actor_role)
    _check(call, CallStatus.COMPLETED)
    fields = {"completed_at": now or utcnow()}
    if outcome_notes is not None:
        fields["outcome_notes"] = outcome_notes
    call = call_service.update_call_status(db, call_id, CallStatus.COMPLETED, **fields)
    _notify(commands, CallRetired(call_id))
    logger.info("Call completed call=%s", call_id)
    return call


def fail(
    db: Session,
    call_id: UUID,
    actor_id: UUID,
    actor_role: str,
    reason: str | None = None,
    *,
    commands: CommandBus | None = None,
    now: datetime | None = None,
) -> Call:
    call = _load(db, call_id, actor_id, actor_role)
    _check(call, CallStatus.FAILED)
    call = call_service.update_call_status(
        db,
        call_id,
        CallStatus.FAILED,
        failed_reason=reason or "Call failed",
        completed_at=now or utcnow(),
    )
    _notify(commands, CallRetired(call_id))
    logger.info("Call failed call=%s", call_id)
    return call


def cancel(
    db: Session,
    call_id: UUID,
    actor_id: UUID,
    actor_role: str,
    *,
    commands: CommandBus | None = None,
) -> Call:
    call = _load(db, call_id, actor_id, actor_role)
    _check(call, CallStatus.CANCELLED)
    call = call_service.update_call_status(db, call_id, CallStatus.CANCELLED)
    _notify(commands, CallRetired(call_id))
    logger.info("Call cancelled call=%s", call_id)
    return call


def reschedule(
    db: Session,
    call_id: UUID,
    actor_id: UUID,
    actor_role: str,
    new_time: datetime,
    *,
    commands: CommandBus | None = None,
) -> Call:
    """
    Move a scheduled call to new_time.

    Passes through 'rescheduled' and lands back on 'scheduled' in a single
    write. Every reminder for the old time is dropped.
    """
    call = _load(db, call_id, actor_id, actor_role)
    _check(call, CallStatus.RESCHEDULED, CallStatus.SCHEDULED)
    new_time = ensure_utc(new_time)
    call = call_service.update_call_status(
        db, call_id, CallStatus.SCHEDULED, scheduled_time=new_time
    )
    _notify(commands, CallRescheduled(call_id, new_time))
    logger.info("Call rescheduled call=%s", call_id)
    return call


def delete(
    db: Session,
    call_id: UUID,
    actor_id: UUID,
    actor_role: str,
    *,
    commands: CommandBus | None = None,
) -> None:
    _load(db, call_id, actor_id, actor_role)
    call_service.delete_call(db, call_id)
    _notify(commands, CallRetired(call_id))
