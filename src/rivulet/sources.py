"""Creation functions — cold Sources built from values, iterables and time.

Every event of a cold source is delivered as its own scheduled step, never
synchronously inside subscribe(). Each subscription is a fresh run.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

from rivulet.scheduler import Handle, Scheduler, get_scheduler
from rivulet.source import Sink, Source

T = TypeVar("T")


def _check_seconds(seconds: float, *, allow_zero: bool = True) -> None:
    if seconds < 0 or (not allow_zero and seconds == 0):
        raise ValueError(f"Invalid duration: {seconds!r}")


class _Pump:
    """Runs `step` once per scheduled action until it returns False.

    Pausing stops the pump after the in-flight step; resuming restarts it.
    """

    __slots__ = ("_scheduler", "_step", "_delay", "_handle", "_paused", "_stopped")

    def __init__(self, scheduler: Scheduler, step: Callable[[], bool], delay: float = 0.0) -> None:
        self._scheduler = scheduler
        self._step = step
        self._delay = delay
        self._handle: Handle | None = None
        self._paused = False
        self._stopped = False

    def start(self) -> _Pump:
        if self._delay:
            self._handle = self._scheduler.schedule_relative(self._delay, self._run)
        else:
            self._handle = self._scheduler.schedule(self._run)
        return self

    def _run(self) -> None:
        self._handle = None
        if self._stopped or self._paused:
            return
        if self._step():
            self.start()
        else:
            self._stopped = True

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        if self._handle is None and not self._stopped:
            self.start()

    def cancel(self) -> None:
        self._stopped = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


def from_iterable(items: Iterable[T], *, scheduler: Scheduler | None = None) -> Source[T]:
    """Emit each item of `items` in order, then complete.

    The iterable is iterated when a listener subscribes and stops when the
    subscription is cancelled. An exception raised while iterating ends
    the stream with that error.
    """

    def _produce(sink: Sink[T]) -> _Pump:
        iterator = iter(items)

        def _step() -> bool:
            try:
                value = next(iterator)
            except StopIteration:
                sink.done()
                return False
            except Exception as exc:
                sink.error(exc)
                return False
            sink.data(value)
            return not sink.closed

        return _Pump(scheduler or get_scheduler(), _step).start()

    return Source(_produce)


def just(value: T, *, scheduler: Scheduler | None = None) -> Source[T]:
    """A Source with a single value."""
    return from_iterable((value,), scheduler=scheduler)


def empty(*, scheduler: Scheduler | None = None) -> Source:
    """Completes without emitting anything."""
    return from_iterable((), scheduler=scheduler)


def throw(error: BaseException, *, scheduler: Scheduler | None = None) -> Source:
    """Fails with `error` without emitting anything."""

    def _produce(sink: Sink) -> _Pump:
        def _step() -> bool:
            sink.error(error)
            return False

        return _Pump(scheduler or get_scheduler(), _step).start()

    return Source(_produce)


def never() -> Source:
    """Never emits and never terminates. Useful in tests and as a placeholder."""
    return Source(lambda sink: None)


def range_(start: int, end: int, *, scheduler: Scheduler | None = None) -> Source[int]:
    """Integers from `start` to `end` inclusive, counting down if start > end."""
    step = 1 if start <= end else -1
    return from_iterable(range(start, end + step, step), scheduler=scheduler)


def timer(value: T, seconds: float, *, scheduler: Scheduler | None = None) -> Source[T]:
    """Emit `value` once after `seconds`, then complete."""
    _check_seconds(seconds)

    def _produce(sink: Sink[T]) -> Handle:
        def _fire() -> None:
            sink.data(value)
            sink.done()

        return (scheduler or get_scheduler()).schedule_relative(seconds, _fire)

    return Source(_produce)


def periodic(
    seconds: float,
    computation: Callable[[int], T] | None = None,
    *,
    scheduler: Scheduler | None = None,
) -> Source[T]:
    """Emit every `seconds`, forever.

    Values are computation(0), computation(1), ...; without a computation
    every value is None.
    """
    _check_seconds(seconds, allow_zero=False)

    def _produce(sink: Sink[T]) -> _Pump:
        count = [0]

        def _tick() -> bool:
            index = count[0]
            count[0] += 1
            if computation is None:
                sink.data(None)
                return not sink.closed
            try:
                value = computation(index)
            except Exception as exc:
                sink.error(exc)
                return False
            sink.data(value)
            return not sink.closed

        return _Pump(scheduler or get_scheduler(), _tick, delay=seconds).start()

    return Source(_produce)


def defer(factory: Callable[[], Source[T]]) -> Source[T]:
    """Call `factory` anew for every subscription and forward its Source."""

    def _produce(sink: Sink[T]):
        return factory().subscribe(sink.data, sink.error, sink.done)

    return Source(_produce)
