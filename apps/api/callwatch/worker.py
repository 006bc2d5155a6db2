"""
Headless reminder worker.

Usage:
    python -m callwatch.worker

Runs one reminder scheduler per active caller and writes fired reminders
to the log. The caller list is refreshed periodically: new callers get a
scheduler, deactivated ones have theirs stopped.
"""

import asyncio
import logging
import os

import anyio

from callwatch.core.config import settings
from callwatch.core.structured_logging import build_log_context
from callwatch.db.enums import Role
from callwatch.db.models import User
from callwatch.db.session import SessionLocal
from callwatch.services.notification_scheduler import SchedulerConfig
from callwatch.services.notification_sink import build_sink
from callwatch.services.scheduler_registry import SchedulerRegistry
from callwatch.services.visible_call_service import build_call_provider

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# How often the set of callers is re-read
ROSTER_INTERVAL_SECONDS = int(os.getenv("WORKER_ROSTER_INTERVAL", "300"))
WORKER_ROLES = (Role.CALLER.value,)


def load_viewer_ids(session_factory=SessionLocal) -> set:
    db = session_factory()
    try:
        rows = (
            db.query(User.id)
            .filter(User.is_active.is_(True), User.role.in_(WORKER_ROLES))
            .all()
        )
        return {row.id for row in rows}
    finally:
        db.close()


async def sync_schedulers(
    registry: SchedulerRegistry,
    viewer_ids: set,
    config: SchedulerConfig,
    session_factory=SessionLocal,
) -> None:
    """Start schedulers for new viewers and stop the ones no longer listed."""
    running = set(registry.running_viewers())
    for viewer_id in viewer_ids - running:
        await registry.start_for(
            viewer_id,
            build_call_provider(viewer_id, session_factory),
            build_sink(["log"]),
            config,
        )
    for viewer_id in running - viewer_ids:
        await registry.stop_for(viewer_id)
    if viewer_ids != running:
        logger.info("Reminder worker watching %d viewer(s)", len(viewer_ids))


async def worker_loop() -> None:
    config = SchedulerConfig.from_settings()
    registry = SchedulerRegistry()
    logger.info(
        "Reminder worker started offsets=%s interval=%ss env=%s",
        list(config.offsets),
        config.poll_interval_seconds,
        settings.ENV,
    )
    try:
        while True:
            try:
                viewer_ids = await anyio.to_thread.run_sync(load_viewer_ids)
                await sync_schedulers(registry, viewer_ids, config)
            except Exception:
                logger.exception(
                    "Roster refresh failed",
                    extra=build_log_context(component="worker"),
                )
            await asyncio.sleep(ROSTER_INTERVAL_SECONDS)
    finally:
        await registry.shutdown()


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
