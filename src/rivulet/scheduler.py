"""Schedulers — the event-delivery mechanism every Source runs on.

rivulet never spawns threads or timers of its own. Cold producers and
time-based operators hand their work to a scheduler, which decides when it
runs. All callbacks for one subscription run on that scheduler, one at a
time, in FIFO order for equal due times.

Call set_scheduler() once at startup to pick the default:
    rivulet.set_scheduler(AsyncioScheduler(loop))

Without it, the first Source that needs scheduling gets an AsyncioScheduler
bound to whichever loop is running at that moment.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, Protocol

logger = logging.getLogger("rivulet.scheduler")

Action = Callable[[], None]


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """What rivulet needs from an event loop."""

    def now(self) -> float: ...

    def schedule(self, action: Action) -> Handle: ...

    def schedule_relative(self, delay: float, action: Action) -> Handle: ...


class _ScheduledAction:
    """A pending action in a VirtualTimeScheduler queue."""

    __slots__ = ("due", "seq", "action", "cancelled")

    def __init__(self, due: float, seq: int, action: Action) -> None:
        self.due = due
        self.seq = seq
        self.action = action
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: _ScheduledAction) -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class VirtualTimeScheduler:
    """Deterministic scheduler driven by hand.

    Time only moves when run(), advance_by() or advance_to() is called,
    which makes a one-day timer as cheap to test as a one-millisecond one.

    Usage:
        scheduler = VirtualTimeScheduler()
        timer("late", 86_400, scheduler=scheduler).subscribe(print, print)
        scheduler.run()  # prints "late"; scheduler.now() == 86400.0
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[_ScheduledAction] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def schedule(self, action: Action) -> _ScheduledAction:
        return self.schedule_relative(0.0, action)

    def schedule_relative(self, delay: float, action: Action) -> _ScheduledAction:
        item = _ScheduledAction(self._now + max(delay, 0.0), next(self._seq), action)
        heapq.heappush(self._queue, item)
        return item

    @property
    def pending(self) -> int:
        """Number of actions waiting to run. Useful for testing."""
        return sum(1 for item in self._queue if not item.cancelled)

    def run(self) -> None:
        """Run until nothing is left to do. Never returns for endless periodic work."""
        while self._queue:
            self._step()

    def advance_to(self, when: float) -> None:
        """Run every action due at or before `when`, then set the clock to it."""
        logger.debug("Advancing virtual time %.3f -> %.3f", self._now, when)
        while self._queue and self._queue[0].due <= when:
            self._step()
        self._now = max(self._now, when)

    def advance_by(self, seconds: float) -> None:
        self.advance_to(self._now + seconds)

    def _step(self) -> None:
        item = heapq.heappop(self._queue)
        if item.cancelled:
            return
        self._now = max(self._now, item.due)
        item.action()


class AsyncioScheduler:
    """Runs actions on an asyncio event loop.

    The loop is resolved lazily so the scheduler can be created before the
    loop starts; pass `loop` explicitly to pin it.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.time()

    def schedule(self, action: Action) -> asyncio.Handle:
        return self.loop.call_soon(action)

    def schedule_relative(self, delay: float, action: Action) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay, 0.0), action)


# ─── Default scheduler ───────────────────────────────────────────────────────
_scheduler: Scheduler | None = None


def set_scheduler(scheduler: Scheduler | None) -> None:
    """Set the process-wide default scheduler. None restores lazy asyncio."""
    global _scheduler
    _scheduler = scheduler


def get_scheduler() -> Scheduler:
    """Return the default scheduler, creating an AsyncioScheduler on first use."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncioScheduler()
    return _scheduler
