from __future__ import annotations

import asyncio
import time

from warden.moderation.scheduler import ExpiryScheduler
from warden.testing.fakes import FakeClock


class Recorder:
    def __init__(self, fail: bool = False) -> None:
        self.fired: list[int] = []
        self.fail = fail

    async def __call__(self, record_id: int) -> None:
        self.fired.append(record_id)
        if self.fail:
            raise RuntimeError("callback exploded")


async def test_entry_fires_once_when_due() -> None:
    clock = FakeClock()
    rec = Recorder()
    scheduler = ExpiryScheduler(rec, clock=clock)
    scheduler.schedule(1, clock.now + 60)

    assert await scheduler.run_due() == 0
    assert rec.fired == []

    clock.advance(60)
    assert await scheduler.run_due() == 1
    assert await scheduler.run_due() == 0
    assert rec.fired == [1]
    assert scheduler.pending() == {}


async def test_cancel_prevents_firing() -> None:
    clock = FakeClock()
    rec = Recorder()
    scheduler = ExpiryScheduler(rec, clock=clock)
    scheduler.schedule(1, clock.now + 10)

    assert scheduler.cancel(1) is True
    assert scheduler.cancel(1) is False
    clock.advance(60)

    assert await scheduler.run_due() == 0
    assert rec.fired == []


async def test_cancel_after_firing_returns_false() -> None:
    clock = FakeClock()
    scheduler = ExpiryScheduler(Recorder(), clock=clock)
    scheduler.schedule(1, clock.now)

    await scheduler.run_due()

    assert scheduler.cancel(1) is False


async def test_reschedule_replaces_existing_entry() -> None:
    clock = FakeClock()
    rec = Recorder()
    scheduler = ExpiryScheduler(rec, clock=clock)
    scheduler.schedule(1, clock.now + 10)
    scheduler.schedule(1, clock.now + 100)

    clock.advance(50)
    assert await scheduler.run_due() == 0

    clock.advance(50)
    assert await scheduler.run_due() == 1
    assert rec.fired == [1]


async def test_due_entries_fire_in_one_pass() -> None:
    clock = FakeClock()
    rec = Recorder()
    scheduler = ExpiryScheduler(rec, clock=clock)
    scheduler.schedule(2, clock.now + 20)
    scheduler.schedule(1, clock.now + 10)
    scheduler.schedule(3, clock.now + 30)

    clock.advance(25)
    assert await scheduler.run_due() == 2

    assert sorted(rec.fired) == [1, 2]
    assert scheduler.pending() == {3: clock.now + 5}


async def test_rehydrate_fires_overdue_entries_immediately() -> None:
    clock = FakeClock()
    rec = Recorder()
    scheduler = ExpiryScheduler(rec, clock=clock)

    count = scheduler.rehydrate([(1, clock.now - 3600), (2, clock.now + 3600)])

    assert count == 2
    assert await scheduler.run_due() == 1
    assert rec.fired == [1]
    assert list(scheduler.pending()) == [2]


async def test_failing_callback_is_not_retried() -> None:
    clock = FakeClock()
    rec = Recorder(fail=True)
    scheduler = ExpiryScheduler(rec, clock=clock)
    scheduler.schedule(1, clock.now)

    assert await scheduler.run_due() == 1
    assert await scheduler.run_due() == 0
    assert rec.fired == [1]


async def test_background_runner_fires_and_stops() -> None:
    done = asyncio.Event()

    async def on_expire(record_id: int) -> None:
        done.set()

    scheduler = ExpiryScheduler(on_expire, max_sleep_seconds=1.0)
    scheduler.start()
    try:
        scheduler.schedule(7, time.time() + 0.05)
        await asyncio.wait_for(done.wait(), timeout=5)
    finally:
        await scheduler.stop()

    assert scheduler.pending() == {}
