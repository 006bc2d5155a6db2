"""Tests for the per-viewer scheduler registry."""

import asyncio
from datetime import timedelta
from uuid import uuid4

from callwatch.services.notification_scheduler import CallRetired
from callwatch.services.scheduler_registry import SchedulerRegistry


async def test_start_for_replaces_previous_scheduler(provider, sink, clock):
    registry = SchedulerRegistry()
    viewer_id = uuid4()

    first = await registry.start_for(viewer_id, provider, sink, clock=clock)
    second = await registry.start_for(viewer_id, provider, sink, clock=clock)

    assert first is not second
    assert not first.is_running
    assert second.is_running
    assert registry.get(viewer_id) is second
    assert registry.running_viewers() == [viewer_id]

    await registry.shutdown()


async def test_stop_for(provider, sink, clock):
    registry = SchedulerRegistry()
    viewer_id = uuid4()
    scheduler = await registry.start_for(viewer_id, provider, sink, clock=clock)

    assert await registry.stop_for(viewer_id) is True
    assert await registry.stop_for(viewer_id) is False
    assert not scheduler.is_running
    assert registry.get(viewer_id) is None


async def test_broadcast_reaches_every_scheduler(provider, sink, clock, make_snapshot):
    registry = SchedulerRegistry()
    call = make_snapshot(clock.now + timedelta(minutes=15))
    provider.calls = [call]
    schedulers = [
        await registry.start_for(uuid4(), provider, sink, clock=clock) for _ in range(2)
    ]
    for _ in range(100):
        if all(s.active_notifications() for s in schedulers):
            break
        await asyncio.sleep(0.01)

    delivered = registry.broadcast(CallRetired(call.id))

    assert delivered == 2
    for _ in range(100):
        if not any(s.active_notifications() for s in schedulers):
            break
        await asyncio.sleep(0.01)
    assert all(s.active_notifications() == [] for s in schedulers)

    await registry.shutdown()


async def test_shutdown_stops_everything(provider, sink, clock):
    registry = SchedulerRegistry()
    schedulers = [
        await registry.start_for(uuid4(), provider, sink, clock=clock) for _ in range(3)
    ]

    await registry.shutdown()

    assert registry.running_viewers() == []
    assert not any(s.is_running for s in schedulers)
    assert registry.broadcast(CallRetired(uuid4())) == 0
