"""
Notification sinks - where fired call reminders go.

The scheduler hands every fired reminder to a single NotificationSink.
Sinks never report back: a failed delivery is logged and the reminder
still counts as fired.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol
from uuid import UUID

from callwatch.core.structured_logging import build_log_context
from callwatch.db.enums import NotificationChannel, TriggerKind
from callwatch.services.call_service import CallSnapshot

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class NotificationTrigger:
    """A reminder point for one call: offset minutes before start, or a snooze."""

    call_id: UUID
    kind: TriggerKind
    offset_minutes: int


@dataclass(frozen=True)
class NotificationEvent:
    """A trigger that fired, with the call as it looked at fire time."""

    trigger: NotificationTrigger
    call: CallSnapshot
    viewer_id: UUID
    minutes_until: int
    fired_at: datetime

    @property
    def title(self) -> str:
        return render_event_text(self)[0]

    @property
    def message(self) -> str:
        return render_event_text(self)[1]

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe representation for websocket pushes and API responses."""
        title, message = render_event_text(self)
        return {
            "call_id": str(self.call.id),
            "kind": self.trigger.kind.value,
            "offset_minutes": self.trigger.offset_minutes,
            "minutes_until": self.minutes_until,
            "title": title,
            "message": message,
            "fired_at": self.fired_at.isoformat(),
            "call": {
                "id": str(self.call.id),
                "owner_id": str(self.call.owner_id),
                "contact_name": self.call.contact_name,
                "company": self.call.company,
                "phone_number": self.call.phone_number,
                "call_type": self.call.call_type,
                "scheduled_time": self.call.scheduled_time.isoformat(),
                "priority": self.call.priority,
                "preparation_notes": self.call.preparation_notes,
            },
        }


def render_event_text(event: NotificationEvent) -> tuple[str, str]:
    """Return (title, message) for a fired reminder."""
    minutes = max(event.minutes_until, 0)
    if event.trigger.kind == TriggerKind.OFFSET and event.trigger.offset_minutes == 0:
        minutes = 0
    if minutes == 0:
        title = "Call starting now"
    else:
        title = f"Call in {minutes} minute{'s' if minutes != 1 else ''}"
    if event.trigger.kind == TriggerKind.SNOOZE:
        title = f"Snoozed reminder: {title[0].lower()}{title[1:]}"

    call = event.call
    lines = [call.contact_name if not call.company else f"{call.contact_name} - {call.company}"]
    lines.append(call.scheduled_time.strftime("%b %d, %Y %H:%M UTC"))
    if call.phone_number:
        lines.append(f"Phone: {call.phone_number}")
    if call.preparation_notes:
        lines.append(f"Prep: {call.preparation_notes}")
    return title, "\n".join(lines)


# =============================================================================
# Sinks
# =============================================================================

class NotificationSink(Protocol):
    def deliver(self, event: NotificationEvent) -> None: ...


class LoggingSink:
    """Writes reminders to the application log (headless worker)."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def deliver(self, event: NotificationEvent) -> None:
        logger.log(
            self.level,
            "Call reminder: %s",
            event.title,
            extra=build_log_context(
                viewer_id=event.viewer_id,
                call_id=event.call.id,
                offset_minutes=event.trigger.offset_minutes,
                trigger=event.trigger.kind.value,
                channel="log",
            ),
        )


class InAppSink:
    """
    Bounded per-viewer inbox of recent reminders.

    Memory only; a restart empties it. The scheduler's displayed set is the
    source of truth for what is still on screen.
    """

    def __init__(self, limit: int = 50):
        self.limit = limit
        self._events: dict[UUID, deque[NotificationEvent]] = {}
        self._lock = threading.Lock()

    def deliver(self, event: NotificationEvent) -> None:
        with self._lock:
            inbox = self._events.get(event.viewer_id)
            if inbox is None:
                inbox = self._events[event.viewer_id] = deque(maxlen=self.limit)
            inbox.append(event)

    def recent(self, viewer_id: UUID, limit: int | None = None) -> list[NotificationEvent]:
        """Newest first."""
        with self._lock:
            events = list(self._events.get(viewer_id, ()))
        events.reverse()
        return events[:limit] if limit else events

    def clear(self, viewer_id: UUID) -> None:
        with self._lock:
            self._events.pop(viewer_id, None)


class WebSocketSink:
    """
    Pushes reminders to the viewer's open websocket connections.

    deliver() may run on a worker thread; the send is scheduled onto the
    event loop that owns the connections and not awaited.
    """

    MESSAGE_TYPE = "call_reminder"

    def __init__(self, manager, loop: asyncio.AbstractEventLoop):
        self.manager = manager
        self.loop = loop
        self._pending: set[asyncio.Future] = set()

    def deliver(self, event: NotificationEvent) -> None:
        if self.loop.is_closed():
            logger.warning("Websocket reminder dropped, loop closed")
            return
        coro = self.manager.send_to_user(
            event.viewer_id, {"type": self.MESSAGE_TYPE, "data": event.to_payload()}
        )
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        self._pending.add(future)
        future.add_done_callback(self._done)

    def _done(self, future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Websocket reminder push failed: %s", type(exc).__name__)


class CompositeSink:
    """Fans one event out to several sinks; one failing sink does not block the rest."""

    def __init__(self, sinks: Iterable[NotificationSink]):
        self.sinks = list(sinks)

    def deliver(self, event: NotificationEvent) -> None:
        for sink in self.sinks:
            try:
                sink.deliver(event)
            except Exception:
                logger.exception(
                    "Notification sink %s failed",
                    type(sink).__name__,
                    extra=build_log_context(viewer_id=event.viewer_id, call_id=event.call.id),
                )


def build_sink(
    channels: Iterable[str],
    *,
    inbox: InAppSink | None = None,
    manager=None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> NotificationSink:
    """
    Assemble the sink for the configured channels.

    Unknown channel names raise ValueError so a typo in config fails loudly.
    Channels whose backing object was not provided are skipped.
    """
    sinks: list[NotificationSink] = []
    for name in channels:
        channel = NotificationChannel(name)
        if channel == NotificationChannel.IN_APP and inbox is not None:
            sinks.append(inbox)
        elif channel == NotificationChannel.WEBSOCKET and manager is not None and loop is not None:
            sinks.append(WebSocketSink(manager, loop))
        elif channel == NotificationChannel.LOG:
            sinks.append(LoggingSink())
    if not sinks:
        sinks.append(LoggingSink())
    if len(sinks) == 1:
        return sinks[0]
    return CompositeSink(sinks)
