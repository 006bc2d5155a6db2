"""Notifications router - call reminder monitor and user actions.

Starting the monitor runs a reminder scheduler for the current user inside
this API process. Snooze and dismiss are forwarded to that scheduler as
commands; nothing here touches trigger state directly.
"""

import asyncio
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from callwatch.core.deps import (
    get_call_provider_factory,
    get_current_session,
    get_notification_channels,
    get_notification_inbox,
    get_scheduler_config,
    get_scheduler_registry,
    require_csrf_header,
)
from callwatch.core.websocket import manager
from callwatch.schemas.auth import UserSession
from callwatch.schemas.notification import (
    MonitorStatus,
    NextReminderRead,
    NotificationCallRead,
    NotificationListResponse,
    NotificationRead,
    SnoozeRequest,
)
from callwatch.services.notification_sink import build_sink

router = APIRouter()


def _event_to_read(event) -> NotificationRead:
    call = event.call
    return NotificationRead(
        call_id=call.id,
        kind=event.trigger.kind.value,
        offset_minutes=event.trigger.offset_minutes,
        minutes_until=event.minutes_until,
        title=event.title,
        message=event.message,
        fired_at=event.fired_at,
        call=NotificationCallRead(
            id=call.id,
            owner_id=call.owner_id,
            contact_name=call.contact_name,
            company=call.company,
            phone_number=call.phone_number,
            call_type=call.call_type,
            scheduled_time=call.scheduled_time,
            priority=call.priority,
            preparation_notes=call.preparation_notes,
        ),
    )


def _status(scheduler, config, channels: list[str]) -> MonitorStatus:
    return MonitorStatus(
        running=bool(scheduler and scheduler.is_running),
        offsets_minutes=list(config.offsets),
        poll_interval_seconds=config.poll_interval_seconds,
        snooze_minutes=config.snooze_minutes,
        channels=channels,
    )


def _require_scheduler(registry, session: UserSession):
    scheduler = registry.get(session.user_id)
    if scheduler is None:
        raise HTTPException(status_code=409, detail="Reminder monitor is not running")
    return scheduler


# =============================================================================
# Monitor
# =============================================================================

@router.get("/monitor", response_model=MonitorStatus)
def get_monitor(
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
    config=Depends(get_scheduler_config),
    channels: list[str] = Depends(get_notification_channels),
):
    return _status(registry.get(session.user_id), config, channels)


@router.post(
    "/monitor",
    response_model=MonitorStatus,
    dependencies=[Depends(require_csrf_header)],
)
async def start_monitor(
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
    inbox=Depends(get_notification_inbox),
    provider_factory=Depends(get_call_provider_factory),
    config=Depends(get_scheduler_config),
    channels: list[str] = Depends(get_notification_channels),
):
    """
    Start reminders for the current user.

    Replaces any scheduler already running for this user (new tab, re-login).
    The first tick runs immediately.
    """
    sink = build_sink(
        channels,
        inbox=inbox,
        manager=manager,
        loop=asyncio.get_running_loop(),
    )
    scheduler = await registry.start_for(
        session.user_id,
        provider_factory(session.user_id),
        sink,
        config,
    )
    return _status(scheduler, config, channels)


@router.delete(
    "/monitor",
    response_model=MonitorStatus,
    dependencies=[Depends(require_csrf_header)],
)
async def stop_monitor(
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
    inbox=Depends(get_notification_inbox),
    config=Depends(get_scheduler_config),
    channels: list[str] = Depends(get_notification_channels),
):
    """Stop reminders for the current user (logout)."""
    await registry.stop_for(session.user_id)
    inbox.clear(session.user_id)
    return _status(None, config, channels)


# =============================================================================
# Reminders
# =============================================================================

@router.get("/active", response_model=NotificationListResponse)
def list_active(
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
):
    """Reminders currently displayed (fired, not dismissed), newest first."""
    scheduler = registry.get(session.user_id)
    events = scheduler.active_notifications() if scheduler else []
    return NotificationListResponse(
        items=[_event_to_read(e) for e in events],
        count=len(events),
    )


@router.get("/inbox", response_model=NotificationListResponse)
def list_inbox(
    limit: int = Query(20, ge=1, le=100),
    session: UserSession = Depends(get_current_session),
    inbox=Depends(get_notification_inbox),
):
    """Recently fired reminders, dismissed or not. Not persisted."""
    events = inbox.recent(session.user_id, limit)
    return NotificationListResponse(
        items=[_event_to_read(e) for e in events],
        count=len(events),
    )


@router.get("/next", response_model=NextReminderRead | None)
def next_reminder(
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
):
    scheduler = _require_scheduler(registry, session)
    pending = scheduler.next_pending()
    if pending is None:
        return None
    return NextReminderRead(
        call_id=pending.call.id,
        contact_name=pending.call.contact_name,
        offset_minutes=pending.offset_minutes,
        due_at=pending.due_at,
    )


@router.post("/dismiss-all", dependencies=[Depends(require_csrf_header)])
def dismiss_all(
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
):
    _require_scheduler(registry, session).dismiss_all()
    return {"status": "accepted"}


@router.post("/{call_id}/snooze", dependencies=[Depends(require_csrf_header)])
def snooze(
    call_id: UUID,
    data: SnoozeRequest | None = None,
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
):
    """Hide the reminder and show it again once, after `minutes`."""
    scheduler = _require_scheduler(registry, session)
    minutes = (data.minutes if data else None) or scheduler.config.snooze_minutes
    scheduler.snooze(call_id, minutes)
    return {"status": "accepted", "minutes": minutes}


@router.post("/{call_id}/dismiss", dependencies=[Depends(require_csrf_header)])
def dismiss(
    call_id: UUID,
    session: UserSession = Depends(get_current_session),
    registry=Depends(get_scheduler_registry),
):
    _require_scheduler(registry, session).dismiss(call_id)
    return {"status": "accepted"}
