"""
Per-viewer scheduler registry.

At most one NotificationScheduler runs per viewer. Starting a new one for a
viewer stops the previous one first, so a stale session never keeps
delivering reminders. Schedulers share nothing with each other.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable
from uuid import UUID

from callwatch.services.notification_scheduler import (
    CallProvider,
    NotificationScheduler,
    SchedulerCommand,
    SchedulerConfig,
)
from callwatch.services.notification_sink import NotificationSink
from callwatch.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class SchedulerRegistry:
    def __init__(self):
        self._schedulers: dict[UUID, NotificationScheduler] = {}
        # Guards the dict; broadcast() is called from request threads
        self._lock = threading.Lock()
        self._lifecycle_lock: asyncio.Lock | None = None

    def _serial(self) -> asyncio.Lock:
        if self._lifecycle_lock is None:
            self._lifecycle_lock = asyncio.Lock()
        return self._lifecycle_lock

    async def start_for(
        self,
        viewer_id: UUID,
        provider: CallProvider,
        sink: NotificationSink,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> NotificationScheduler:
        """Start (or replace) the scheduler for viewer_id."""
        async with self._serial():
            with self._lock:
                previous = self._schedulers.pop(viewer_id, None)
            if previous is not None:
                await previous.stop()
                logger.info("Replaced reminder scheduler for viewer=%s", viewer_id)

            scheduler = NotificationScheduler(viewer_id, provider, sink, config, clock)
            await scheduler.start()
            with self._lock:
                self._schedulers[viewer_id] = scheduler
            return scheduler

    async def stop_for(self, viewer_id: UUID) -> bool:
        async with self._serial():
            with self._lock:
                scheduler = self._schedulers.pop(viewer_id, None)
            if scheduler is None:
                return False
            await scheduler.stop()
            return True

    async def shutdown(self) -> None:
        async with self._serial():
            with self._lock:
                schedulers = list(self._schedulers.values())
                self._schedulers.clear()
            for scheduler in schedulers:
                await scheduler.stop()
        # Bound to the loop it was created on; the next user may be a new loop
        self._lifecycle_lock = None
        if schedulers:
            logger.info("Stopped %d reminder scheduler(s)", len(schedulers))

    def get(self, viewer_id: UUID) -> NotificationScheduler | None:
        with self._lock:
            return self._schedulers.get(viewer_id)

    def running_viewers(self) -> list[UUID]:
        with self._lock:
            return list(self._schedulers)

    def broadcast(self, command: SchedulerCommand) -> int:
        """
        Send a lifecycle command to every running scheduler.

        Schedulers that cannot see the call ignore it on their next tick.
        Safe to call from any thread.
        """
        with self._lock:
            schedulers = list(self._schedulers.values())
        delivered = sum(1 for s in schedulers if s.submit(command))
        logger.debug("Broadcast %s to %d scheduler(s)", type(command).__name__, delivered)
        return delivered
