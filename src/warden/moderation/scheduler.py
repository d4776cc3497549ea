from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

log = logging.getLogger("warden.scheduler")

ExpireCallback = Callable[[int], Awaitable[None]]
Clock = Callable[[], float]


class EntryState(Enum):
    SCHEDULED = "scheduled"
    FIRED = "fired"
    CANCELLED = "cancelled"


@dataclass
class _Entry:
    record_id: int
    fire_at: float
    state: EntryState = EntryState.SCHEDULED


class ExpiryScheduler:
    """Sleep list of pending expirations, one entry per record.

    Nothing is persisted here: after a restart the entries are rebuilt from
    the store's active records (issued_at + duration). Entries whose time has
    already passed fire on the next ``run_due``.
    """

    def __init__(self, on_expire: ExpireCallback, *, clock: Clock = time.time, max_sleep_seconds: float = 300.0) -> None:
        self._on_expire = on_expire
        self._clock = clock
        self._max_sleep = max(0.05, float(max_sleep_seconds))
        self._entries: dict[int, _Entry] = {}
        self._heap: list[tuple[float, int, _Entry]] = []
        self._seq = itertools.count()
        self._wakeup = asyncio.Event()
        self._stop = asyncio.Event()
        self._runner: Optional[asyncio.Task[None]] = None

    def schedule(self, record_id: int, fire_at: float) -> None:
        previous = self._entries.get(record_id)
        if previous is not None:
            previous.state = EntryState.CANCELLED
        entry = _Entry(record_id=record_id, fire_at=float(fire_at))
        self._entries[record_id] = entry
        heapq.heappush(self._heap, (entry.fire_at, next(self._seq), entry))
        log.debug("Scheduled expiry of record %d at %.0f", record_id, entry.fire_at)
        self._wakeup.set()

    def cancel(self, record_id: int) -> bool:
        """Drop a pending entry. Returns False if it already fired or never existed."""
        entry = self._entries.pop(record_id, None)
        if entry is None:
            return False
        entry.state = EntryState.CANCELLED
        log.debug("Cancelled expiry of record %d", record_id)
        self._wakeup.set()
        return True

    def rehydrate(self, entries: Iterable[tuple[int, float]]) -> int:
        count = 0
        for record_id, fire_at in entries:
            self.schedule(record_id, fire_at)
            count += 1
        log.info("Rehydrated %d pending expirations", count)
        return count

    def pending(self) -> dict[int, float]:
        return {rid: e.fire_at for rid, e in self._entries.items()}

    def _pop_due(self) -> list[_Entry]:
        now = self._clock()
        due: list[_Entry] = []
        while self._heap and self._heap[0][0] <= now:
            _, _, entry = heapq.heappop(self._heap)
            if entry.state is not EntryState.SCHEDULED or self._entries.get(entry.record_id) is not entry:
                continue
            # Leaves the table before the callback runs, so a concurrent
            # cancel or a second run_due cannot fire it again.
            entry.state = EntryState.FIRED
            del self._entries[entry.record_id]
            due.append(entry)
        return due

    async def _fire(self, entry: _Entry) -> None:
        try:
            await self._on_expire(entry.record_id)
        except Exception:
            log.exception("Expiry callback failed for record %d", entry.record_id)

    async def run_due(self) -> int:
        """Fire every entry whose time has come. Returns how many fired."""
        due = self._pop_due()
        if due:
            await asyncio.gather(*(self._fire(e) for e in due))
        return len(due)

    def _next_delay(self) -> float:
        while self._heap and self._heap[0][2].state is not EntryState.SCHEDULED:
            heapq.heappop(self._heap)
        if not self._heap:
            return self._max_sleep
        return min(self._max_sleep, max(0.0, self._heap[0][0] - self._clock()))

    def start(self) -> None:
        if self._runner and not self._runner.done():
            return
        self._stop.clear()
        self._runner = asyncio.create_task(self._run(), name="warden-expiry-scheduler")
        log.info("ExpiryScheduler started (pending=%d max_sleep=%.0fs)", len(self._entries), self._max_sleep)

    async def stop(self) -> None:
        self._stop.set()
        self._wakeup.set()
        if self._runner:
            await self._runner
            self._runner = None
        log.info("ExpiryScheduler stopped")

    async def _run(self) -> None:
        while not self._stop.is_set():
            self._wakeup.clear()
            try:
                await self.run_due()
            except Exception:
                log.exception("Expiry scheduler iteration failed")
            if self._stop.is_set():
                break
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._next_delay())
            except asyncio.TimeoutError:
                pass
