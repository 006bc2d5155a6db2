"""
Call reminder scheduler.

One NotificationScheduler watches the visible calls of one viewer and fires
reminders at fixed offsets before each call starts (15, 10, 5, 1 and 0
minutes by default). All trigger state lives on the scheduler instance and
is only touched under its lock:

- fired ledger: (call, offset) pairs that already fired. Checked and set in
  the same critical section, so an offset fires at most once per call until
  the call is rescheduled.
- displayed: the latest reminder per call still on the viewer's screen.
  Dismiss removes it without touching the ledger.
- snoozes: one pending one-shot re-fire per call.

User actions arrive as typed commands through submit(). They are queued and
applied at the start of the next tick, which submit() also requests early
when the async loop is running.

Missed ticks (sleep, slow fetch): each offset owns the window of minutes
between it and the next smaller offset. A tick fires the offset whose window
contains the current minutes-until value, if it has not fired yet, so at
most one reminder per call fires per tick and stale offsets are skipped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Union
from uuid import UUID

import anyio

from callwatch.core.config import settings
from callwatch.core.structured_logging import build_log_context
from callwatch.db.enums import CallStatus, TriggerKind
from callwatch.services.call_service import CallSnapshot
from callwatch.services.notification_sink import (
    NotificationEvent,
    NotificationSink,
    NotificationTrigger,
)
from callwatch.utils.datetime_utils import ensure_utc, utcnow, whole_minutes_until

logger = logging.getLogger(__name__)


DEFAULT_OFFSETS = (15, 10, 5, 1, 0)
START_OFFSET = 0  # "Starting now"


class TransientFetchError(Exception):
    """The visible call set could not be fetched this tick; retried next tick."""

    pass


class SchedulerConfigError(ValueError):
    """Offsets or poll interval cannot guarantee every offset gets a tick."""

    pass


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class SchedulerConfig:
    offsets: tuple[int, ...] = DEFAULT_OFFSETS
    poll_interval_seconds: float = 60
    snooze_minutes: int = 5

    def __post_init__(self):
        offsets = tuple(self.offsets)
        if not offsets:
            raise SchedulerConfigError("At least one reminder offset is required")
        if any(o < 0 for o in offsets):
            raise SchedulerConfigError("Reminder offsets must be >= 0")
        if len(set(offsets)) != len(offsets):
            raise SchedulerConfigError("Reminder offsets must be unique")
        if self.poll_interval_seconds <= 0:
            raise SchedulerConfigError("Poll interval must be positive")
        if self.snooze_minutes < 1:
            raise SchedulerConfigError("Snooze must be at least one minute")

        ordered = tuple(sorted(offsets, reverse=True))
        gaps = [a - b for a, b in zip(ordered, ordered[1:])]
        # Minutes are whole, so even a single offset needs a tick every minute
        smallest_gap = min(gaps + [1])
        if self.poll_interval_seconds > smallest_gap * 60:
            raise SchedulerConfigError(
                f"Poll interval {self.poll_interval_seconds}s exceeds the smallest "
                f"offset gap ({smallest_gap} min)"
            )
        object.__setattr__(self, "offsets", ordered)

    @classmethod
    def from_settings(cls) -> "SchedulerConfig":
        return cls(
            offsets=tuple(settings.notification_offsets),
            poll_interval_seconds=settings.NOTIFICATION_POLL_INTERVAL_SECONDS,
            snooze_minutes=settings.NOTIFICATION_SNOOZE_MINUTES,
        )

    def window_owner(self, minutes_until: int) -> int | None:
        """Offset responsible for this minutes-until value, if any."""
        if minutes_until < 0:
            return None
        for offset in reversed(self.offsets):
            if minutes_until <= offset:
                return offset
        return None


# =============================================================================
# Commands
# =============================================================================

@dataclass(frozen=True)
class Dismiss:
    call_id: UUID


@dataclass(frozen=True)
class DismissAll:
    pass


@dataclass(frozen=True)
class Snooze:
    call_id: UUID
    minutes: int | None = None  # None = config default


@dataclass(frozen=True)
class CallStarted:
    call_id: UUID


@dataclass(frozen=True)
class CallRescheduled:
    call_id: UUID
    scheduled_time: datetime


@dataclass(frozen=True)
class CallRetired:
    """Call completed, failed, cancelled or deleted."""

    call_id: UUID


SchedulerCommand = Union[Dismiss, DismissAll, Snooze, CallStarted, CallRescheduled, CallRetired]


# =============================================================================
# State
# =============================================================================

@dataclass
class _CallState:
    scheduled_time: datetime | None = None
    fired: set[int] = field(default_factory=set)
    started: bool = False
    snooze_due: datetime | None = None


@dataclass(frozen=True)
class PendingReminder:
    call: CallSnapshot
    offset_minutes: int
    due_at: datetime


CallProvider = Callable[[], list[CallSnapshot]]


class NotificationScheduler:
    """Reminder engine for one viewer. See module docstring."""

    def __init__(
        self,
        viewer_id: UUID,
        provider: CallProvider,
        sink: NotificationSink,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.viewer_id = viewer_id
        self.provider = provider
        self.sink = sink
        self.config = config or SchedulerConfig()
        self.clock = clock

        self._lock = threading.Lock()
        self._commands: queue.SimpleQueue[SchedulerCommand] = queue.SimpleQueue()
        self._states: dict[UUID, _CallState] = {}
        self._displayed: dict[UUID, NotificationEvent] = {}
        self._retired: set[UUID] = set()
        self._calls: list[CallSnapshot] = []
        self._closed = False

        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake: asyncio.Event | None = None

    def _log_context(self, call_id: UUID | None = None, **fields) -> dict:
        return build_log_context(viewer_id=self.viewer_id, call_id=call_id, **fields)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def submit(self, command: SchedulerCommand) -> bool:
        """Queue a command for the next tick. Returns False once stopped."""
        if self._closed:
            return False
        self._commands.put(command)
        loop, wake = self._loop, self._wake
        if loop is not None and wake is not None and not loop.is_closed():
            loop.call_soon_threadsafe(wake.set)
        return True

    def dismiss(self, call_id: UUID) -> bool:
        return self.submit(Dismiss(call_id))

    def dismiss_all(self) -> bool:
        return self.submit(DismissAll())

    def snooze(self, call_id: UUID, minutes: int | None = None) -> bool:
        if minutes is not None and minutes < 1:
            raise ValueError("Snooze must be at least one minute")
        return self.submit(Snooze(call_id, minutes))

    def _drain_commands(self, now: datetime) -> None:
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return
            self._apply(command, now)

    def _apply(self, command: SchedulerCommand, now: datetime) -> None:
        if isinstance(command, Dismiss):
            self._displayed.pop(command.call_id, None)

        elif isinstance(command, DismissAll):
            self._displayed.clear()

        elif isinstance(command, Snooze):
            minutes = command.minutes or self.config.snooze_minutes
            self._displayed.pop(command.call_id, None)
            state = self._states.setdefault(command.call_id, _CallState())
            if state.started:
                return
            state.snooze_due = now + timedelta(minutes=minutes)
            logger.debug(
                "Reminder snoozed for %d min", minutes, extra=self._log_context(command.call_id)
            )

        elif isinstance(command, CallStarted):
            self._displayed.pop(command.call_id, None)
            state = self._states.setdefault(command.call_id, _CallState())
            state.started = True
            state.snooze_due = None
            state.fired.update(o for o in self.config.offsets if o != START_OFFSET)

        elif isinstance(command, CallRescheduled):
            self._displayed.pop(command.call_id, None)
            self._retired.discard(command.call_id)
            self._states[command.call_id] = _CallState(
                scheduled_time=ensure_utc(command.scheduled_time)
            )

        elif isinstance(command, CallRetired):
            self._forget(command.call_id)
            self._retired.add(command.call_id)

        else:
            raise TypeError(f"Unknown scheduler command: {command!r}")

    def _forget(self, call_id: UUID) -> None:
        self._states.pop(call_id, None)
        self._displayed.pop(call_id, None)

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self, now: datetime | None = None) -> list[NotificationEvent]:
        """Run one evaluation pass synchronously. Returns the fired events."""
        now = ensure_utc(now) if now else self.clock()
        with self._lock:
            self._drain_commands(now)
        calls = self._fetch()
        if calls is None:
            return []
        return self._evaluate_and_deliver(calls, now)

    async def tick_async(self, now: datetime | None = None) -> list[NotificationEvent]:
        """Same as tick(), with the fetch pushed to a worker thread."""
        now = ensure_utc(now) if now else self.clock()
        with self._lock:
            self._drain_commands(now)
        calls = await anyio.to_thread.run_sync(self._fetch)
        if calls is None:
            return []
        return self._evaluate_and_deliver(calls, now)

    def _fetch(self) -> list[CallSnapshot] | None:
        try:
            return list(self.provider())
        except TransientFetchError as exc:
            # No garbage collection on a failed fetch; a blip must not look like a revoke
            logger.warning("Visible call fetch failed, retrying next tick: %s", exc,
                           extra=self._log_context())
            return None

    def _evaluate_and_deliver(
        self, calls: list[CallSnapshot], now: datetime
    ) -> list[NotificationEvent]:
        with self._lock:
            if self._closed:
                return []
            events = self._evaluate(calls, now)
        for event in events:
            try:
                self.sink.deliver(event)
            except Exception:
                logger.exception(
                    "Reminder delivery failed", extra=self._log_context(event.call.id)
                )
        return events

    def _evaluate(self, calls: list[CallSnapshot], now: datetime) -> list[NotificationEvent]:
        events: list[NotificationEvent] = []
        visible: set[UUID] = set()

        for call in calls:
            visible.add(call.id)
            if call.id in self._retired:
                continue

            status = CallStatus(call.status)
            if status == CallStatus.SCHEDULED:
                events.extend(self._evaluate_scheduled(call, now))
            elif status == CallStatus.IN_PROGRESS:
                event = self._evaluate_started(call, now)
                if event:
                    events.append(event)
            else:
                # Rescheduled mid-transition or terminal
                self._forget(call.id)

        for call_id in [c for c in self._states if c not in visible]:
            self._states.pop(call_id)
        for call_id in [c for c in self._displayed if c not in visible]:
            # Call deleted or viewer lost access
            self._displayed.pop(call_id)
        self._retired &= visible
        self._calls = list(calls)
        return events

    def _evaluate_scheduled(self, call: CallSnapshot, now: datetime) -> list[NotificationEvent]:
        events = []
        state = self._states.get(call.id)
        if state is None:
            state = self._states[call.id] = _CallState(scheduled_time=call.scheduled_time)
        elif state.scheduled_time is None:
            state.scheduled_time = call.scheduled_time
        elif state.scheduled_time != call.scheduled_time and not state.started:
            logger.info("Call moved, resetting reminders", extra=self._log_context(call.id))
            self._displayed.pop(call.id, None)
            state = self._states[call.id] = _CallState(scheduled_time=call.scheduled_time)

        minutes_until = whole_minutes_until(call.scheduled_time, now)
        offset = self.config.window_owner(minutes_until)
        if offset is not None and offset not in state.fired:
            state.fired.add(offset)
            events.append(self._fire(call, TriggerKind.OFFSET, offset, minutes_until, now))

        if state.snooze_due is not None and state.snooze_due <= now:
            state.snooze_due = None
            events.append(
                self._fire(call, TriggerKind.SNOOZE, max(minutes_until, 0), minutes_until, now)
            )
        return events

    def _evaluate_started(self, call: CallSnapshot, now: datetime) -> NotificationEvent | None:
        state = self._states.get(call.id)
        if state is None:
            # Already running when first seen; nothing left to remind about
            return None
        if not state.started:
            state.started = True
            state.snooze_due = None
            self._displayed.pop(call.id, None)
        if START_OFFSET not in self.config.offsets or START_OFFSET in state.fired:
            return None
        state.fired.add(START_OFFSET)
        minutes_until = whole_minutes_until(call.scheduled_time, now)
        return self._fire(call, TriggerKind.OFFSET, START_OFFSET, minutes_until, now)

    def _fire(
        self,
        call: CallSnapshot,
        kind: TriggerKind,
        offset: int,
        minutes_until: int,
        now: datetime,
    ) -> NotificationEvent:
        event = NotificationEvent(
            trigger=NotificationTrigger(call_id=call.id, kind=kind, offset_minutes=offset),
            call=call,
            viewer_id=self.viewer_id,
            minutes_until=minutes_until,
            fired_at=now,
        )
        self._displayed[call.id] = event
        logger.info(
            "Reminder fired kind=%s offset=%d", kind.value, offset,
            extra=self._log_context(call.id, offset_minutes=offset, trigger=kind.value),
        )
        return event

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def active_notifications(self) -> list[NotificationEvent]:
        """Displayed reminders, newest first."""
        with self._lock:
            events = list(self._displayed.values())
        return sorted(events, key=lambda e: e.fired_at, reverse=True)

    def fired_keys(self) -> set[tuple[UUID, int]]:
        """(call_id, offset) pairs in the dedup ledger."""
        with self._lock:
            return {(cid, o) for cid, s in self._states.items() for o in s.fired}

    def next_pending(self, now: datetime | None = None) -> PendingReminder | None:
        """
        Next offset reminder expected to fire, scanning calls soonest first.

        Based on the call list from the last successful tick.
        """
        now = ensure_utc(now) if now else self.clock()
        with self._lock:
            calls = list(self._calls)
            fired = {cid: set(s.fired) for cid, s in self._states.items()}
            retired = set(self._retired)

        for call in calls:
            if call.id in retired or not call.is_scheduled:
                continue
            minutes_until = whole_minutes_until(call.scheduled_time, now)
            if minutes_until < 0:
                continue
            owner = self.config.window_owner(minutes_until)
            done = fired.get(call.id, set())
            for offset in self.config.offsets:
                if offset in done:
                    continue
                if offset < minutes_until or offset == owner:
                    return PendingReminder(
                        call=call,
                        offset_minutes=offset,
                        due_at=call.scheduled_time - timedelta(minutes=offset),
                    )
        return None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the polling loop on the running event loop. Ticks immediately."""
        if self._closed:
            raise RuntimeError("Scheduler has been stopped")
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(), name=f"call-reminders-{self.viewer_id}"
        )

    async def _run(self) -> None:
        """
        Tick on a fixed cadence: scheduled ticks are due every poll interval
        from the first one, however long fetch and delivery take. Wake-ups
        from submit() add extra ticks without moving the cadence.
        """
        logger.info("Reminder scheduler started", extra=self._log_context())
        loop = asyncio.get_running_loop()
        interval = self.config.poll_interval_seconds
        next_due = loop.time()
        while True:
            now = loop.time()
            if now >= next_due:
                # An overrun re-anchors on now instead of firing a burst of catch-up ticks
                next_due = max(next_due + interval, now)
            try:
                await self.tick_async()
            except Exception:
                logger.exception("Reminder tick failed", extra=self._log_context())
            delay = next_due - loop.time()
            if delay > 0:
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._wake.wait(), timeout=delay)
            self._wake.clear()

    async def stop(self) -> None:
        """Cancel the loop and release all per-viewer state. Idempotent."""
        self._closed = True
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        with self._lock:
            self._states.clear()
            self._displayed.clear()
            self._retired.clear()
            self._calls = []
            self._drain_discard()
        self._loop = None
        self._wake = None
        logger.info("Reminder scheduler stopped", extra=self._log_context())

    def _drain_discard(self) -> None:
        while True:
            try:
                self._commands.get_nowait()
            except queue.Empty:
                return
