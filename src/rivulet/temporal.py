"""Temporal operators — suppress, batch or sample values over time.

Time never appears as a sleep or a thread: every window, tick and timeout
is itself a Source (usually timer() or periodic()), so "time passing" is
just another event arriving. Operators taking a `window_factory` call it
with the value that opened the window and treat the window's first event,
data or done, as the window firing.

All operators here are pipeable:
    clicks.pipe(debounce_time(0.3), buffer_count(2))
"""

from __future__ import annotations

from collections import deque
from functools import partial
from typing import Any, Callable, Generic, NamedTuple, TypeVar

from rivulet.errors import SourceTimeoutError
from rivulet.scheduler import Scheduler, get_scheduler
from rivulet.source import CompositeSubscription, Sink, Source
from rivulet.sources import periodic, timer
from rivulet.subject import Subject

T = TypeVar("T")

_UNSET = object()

Operator = Callable[[Source[T]], Source[Any]]
WindowFactory = Callable[[T], Source[Any]]


class TimeInterval(NamedTuple, Generic[T]):
    value: T
    interval: float  # seconds since the previous event


class Timestamped(NamedTuple, Generic[T]):
    value: T
    timestamp: float


# ─── Debounce & throttle ─────────────────────────────────────────────────────


def debounce(window_factory: WindowFactory[T]) -> Callable[[Source[T]], Source[T]]:
    """Emit a value only once its window fires without a newer value arriving.

    Each value cancels the pending window and opens window_factory(value).
    On completion a pending value is flushed before Done.
    """

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            pending = [_UNSET]

            def _fire(_: Any = None) -> None:
                upstream.remove("window")
                value, pending[0] = pending[0], _UNSET
                if value is not _UNSET:
                    sink.data(value)

            def _on_data(value: T) -> None:
                upstream.remove("window")
                pending[0] = value
                try:
                    window = window_factory(value)
                except Exception as exc:
                    sink.error(exc)
                    return
                upstream.set("window", window.subscribe(_fire, sink.error, _fire))

            def _on_done() -> None:
                upstream.remove("window")
                if pending[0] is not _UNSET:
                    sink.data(pending[0])
                sink.done()

            upstream.set("source", source.subscribe(_on_data, sink.error, _on_done))
            return upstream

        return Source(_produce)

    return _operator


def debounce_time(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[T]]:
    """debounce() with a fixed quiet period."""
    return debounce(lambda _: timer(None, seconds, scheduler=scheduler))


def throttle(
    window_factory: WindowFactory[T], *, trailing: bool = False
) -> Callable[[Source[T]], Source[T]]:
    """Emit a value, then swallow everything until its window fires.

    With `trailing`, the most recent swallowed value is emitted when the
    window fires and opens a window of its own; one still pending when the
    source completes is emitted before Done.
    """

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            window_open = [False]
            pending = [_UNSET]

            def _open(value: T) -> None:
                try:
                    window = window_factory(value)
                except Exception as exc:
                    sink.error(exc)
                    return
                window_open[0] = True
                upstream.set("window", window.subscribe(_on_window, sink.error, _on_window))

            def _on_window(_: Any = None) -> None:
                upstream.remove("window")
                if not window_open[0]:
                    return
                window_open[0] = False
                value, pending[0] = pending[0], _UNSET
                if value is not _UNSET:
                    sink.data(value)
                    _open(value)

            def _on_data(value: T) -> None:
                if not window_open[0]:
                    sink.data(value)
                    _open(value)
                elif trailing:
                    pending[0] = value

            def _on_done() -> None:
                upstream.remove("window")
                if pending[0] is not _UNSET:
                    sink.data(pending[0])
                sink.done()

            upstream.set("source", source.subscribe(_on_data, sink.error, _on_done))
            return upstream

        return Source(_produce)

    return _operator


def throttle_time(
    seconds: float, *, trailing: bool = False, scheduler: Scheduler | None = None
) -> Callable[[Source[T]], Source[T]]:
    """throttle() with a fixed window length."""
    return throttle(lambda _: timer(True, seconds, scheduler=scheduler), trailing=trailing)


# ─── Buffer & window ─────────────────────────────────────────────────────────


class _ListBatch:
    """A batch collected into a list, emitted when flushed."""

    __slots__ = ("items",)

    def __init__(self, _sink: Sink[Any]) -> None:
        self.items: list[Any] = []

    def add(self, value: Any) -> None:
        self.items.append(value)

    def flush(self, sink: Sink[Any]) -> None:
        sink.data(self.items)

    def fail(self, error: BaseException) -> None:
        pass

    def __len__(self) -> int:
        return len(self.items)


class _WindowBatch:
    """A batch exposed as a live Subject, emitted when it opens."""

    __slots__ = ("subject", "size")

    def __init__(self, sink: Sink[Any]) -> None:
        self.subject: Subject[Any] = Subject()
        self.size = 0
        sink.data(self.subject)

    def add(self, value: Any) -> None:
        self.size += 1
        self.subject.add(value)

    def flush(self, sink: Sink[Any]) -> None:
        self.subject.close()

    def fail(self, error: BaseException) -> None:
        self.subject.add_error(error)

    def __len__(self) -> int:
        return self.size


# Batch factory: called with the output sink when a batch opens. _WindowBatch
# emits its Subject there; _ListBatch only uses the sink on flush.
BatchType = Callable[[Sink[Any]], Any]


def _trigger_batches(source: Source[T], trigger: Source[Any], batch_type: BatchType) -> Source[Any]:
    def _produce(sink: Sink[Any]) -> CompositeSubscription:
        upstream = CompositeSubscription()
        batch: list[Any] = [None]

        def _flush(_: Any = None) -> None:
            current, batch[0] = batch[0], None
            if current is not None:
                current.flush(sink)

        def _on_data(value: T) -> None:
            if batch[0] is None:
                batch[0] = batch_type(sink)
            batch[0].add(value)

        def _on_error(error: BaseException) -> None:
            current, batch[0] = batch[0], None
            if current is not None:
                current.fail(error)
            sink.error(error)

        def _on_done() -> None:
            _flush()
            sink.done()

        upstream.set("source", source.subscribe(_on_data, _on_error, _on_done))
        if not sink.closed:
            upstream.set("trigger", trigger.subscribe(_flush, _on_error, partial(upstream.discard, "trigger")))
        return upstream

    return Source(_produce)


def _test_batches(source: Source[T], predicate: Callable[[T], bool], batch_type: BatchType) -> Source[Any]:
    def _produce(sink: Sink[Any]):
        batch: list[Any] = [None]

        def _on_data(value: T) -> None:
            if batch[0] is None:
                batch[0] = batch_type(sink)
            batch[0].add(value)
            try:
                close = predicate(value)
            except Exception as exc:
                _on_error(exc)
                return
            if close:
                current, batch[0] = batch[0], None
                current.flush(sink)

        def _on_error(error: BaseException) -> None:
            current, batch[0] = batch[0], None
            if current is not None:
                current.fail(error)
            sink.error(error)

        def _on_done() -> None:
            current, batch[0] = batch[0], None
            if current is not None:
                current.flush(sink)
            sink.done()

        return source.subscribe(_on_data, _on_error, _on_done)

    return Source(_produce)


def _count_batches(source: Source[T], count: int, start_every: int | None, batch_type: BatchType) -> Source[Any]:
    if start_every is None:
        start_every = count
    if count < 1 or start_every < 1:
        raise ValueError(f"Invalid batch sizes: count={count!r}, start_every={start_every!r}")

    def _produce(sink: Sink[Any]):
        batches: deque[Any] = deque()
        seen = [0]

        def _on_data(value: T) -> None:
            if seen[0] % start_every == 0:
                batches.append(batch_type(sink))
            seen[0] += 1
            for batch in batches:
                batch.add(value)
            while batches and len(batches[0]) >= count:
                batches.popleft().flush(sink)

        def _on_error(error: BaseException) -> None:
            while batches:
                batches.popleft().fail(error)
            sink.error(error)

        def _on_done() -> None:
            while batches:
                batches.popleft().flush(sink)
            sink.done()

        return source.subscribe(_on_data, _on_error, _on_done)

    return Source(_produce)


def buffer(trigger: Source[Any]) -> Callable[[Source[T]], Source[list[T]]]:
    """Collect values into lists, emitting the list each time `trigger` fires.

    Triggers with nothing collected emit nothing; the last non-empty list
    is emitted when the source completes.
    """
    return lambda source: _trigger_batches(source, trigger, _ListBatch)


def buffer_time(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[list[T]]]:
    return buffer(periodic(seconds, scheduler=scheduler))


def buffer_test(predicate: Callable[[T], bool]) -> Callable[[Source[T]], Source[list[T]]]:
    """Emit the collected list every time a value passes `predicate`.

    The passing value is the last item of its list.
    """
    return lambda source: _test_batches(source, predicate, _ListBatch)


def buffer_count(count: int, start_every: int | None = None) -> Callable[[Source[T]], Source[list[T]]]:
    """Emit lists of `count` values, starting a new list every `start_every` values.

    start_every defaults to count (back-to-back lists); smaller values make
    overlapping lists, larger ones skip values. Partial lists are flushed
    on completion in the order they were started.
        range_(1, 5).pipe(buffer_count(3, 2))  # [1, 2, 3], [3, 4, 5], [5]
    """
    return lambda source: _count_batches(source, count, start_every, _ListBatch)


def window(trigger: Source[Any]) -> Callable[[Source[T]], Source[Subject[T]]]:
    """Like buffer(), but each batch is a live Source emitted when it opens."""
    return lambda source: _trigger_batches(source, trigger, _WindowBatch)


def window_time(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[Subject[T]]]:
    return window(periodic(seconds, scheduler=scheduler))


def window_test(predicate: Callable[[T], bool]) -> Callable[[Source[T]], Source[Subject[T]]]:
    return lambda source: _test_batches(source, predicate, _WindowBatch)


def window_count(count: int, start_every: int | None = None) -> Callable[[Source[T]], Source[Subject[T]]]:
    return lambda source: _count_batches(source, count, start_every, _WindowBatch)


# ─── Sampling ────────────────────────────────────────────────────────────────


def sample(trigger: Source[Any]) -> Callable[[Source[T]], Source[T]]:
    """Emit the most recent value each time `trigger` fires.

    A trigger with no new value since the previous one emits nothing. If
    the source completes with a value not yet sampled, Done waits for the
    next trigger so that value is still delivered.
    """

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            latest = [_UNSET]
            source_done = [False]

            def _on_data(value: T) -> None:
                latest[0] = value

            def _on_trigger(_: Any) -> None:
                value, latest[0] = latest[0], _UNSET
                if value is not _UNSET:
                    sink.data(value)
                if source_done[0]:
                    sink.done()

            def _on_done() -> None:
                upstream.discard("source")
                if latest[0] is _UNSET:
                    sink.done()
                else:
                    source_done[0] = True

            def _on_trigger_done() -> None:
                upstream.discard("trigger")
                if source_done[0]:
                    sink.done()

            upstream.set("source", source.subscribe(_on_data, sink.error, _on_done))
            if not sink.closed:
                upstream.set("trigger", trigger.subscribe(_on_trigger, sink.error, _on_trigger_done))
            return upstream

        return Source(_produce)

    return _operator


def sample_time(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[T]]:
    return sample(periodic(seconds, scheduler=scheduler))


# ─── Time bookkeeping ────────────────────────────────────────────────────────


def interval(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[T]]:
    """Space values out: each is emitted `seconds` after the previous emission.

    The first value is emitted `seconds` after it arrives.
    """
    if seconds < 0:
        raise ValueError(f"Invalid duration: {seconds!r}")

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            sched = scheduler or get_scheduler()
            upstream = CompositeSubscription()
            queue: deque[T] = deque()
            busy = [False]
            source_done = [False]

            def _emit_next() -> None:
                upstream.discard("timer")
                sink.data(queue.popleft())
                _schedule()

            def _schedule() -> None:
                if queue:
                    busy[0] = True
                    upstream.set("timer", sched.schedule_relative(seconds, _emit_next))
                else:
                    busy[0] = False
                    if source_done[0]:
                        sink.done()

            def _on_data(value: T) -> None:
                queue.append(value)
                if not busy[0]:
                    _schedule()

            def _on_done() -> None:
                source_done[0] = True
                upstream.discard("source")
                if not busy[0]:
                    sink.done()

            upstream.set("source", source.subscribe(_on_data, sink.error, _on_done))
            return upstream

        return Source(_produce)

    return _operator


def delay(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[T]]:
    """Shift every value and the completion `seconds` later. Errors are not delayed."""
    if seconds < 0:
        raise ValueError(f"Invalid duration: {seconds!r}")

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            sched = scheduler or get_scheduler()
            upstream = CompositeSubscription()

            def _later(deliver: Callable[[], None]) -> None:
                key: list[Any] = [None]

                def _run() -> None:
                    upstream.discard(key[0])
                    deliver()

                key[0] = upstream.add(sched.schedule_relative(seconds, _run))

            upstream.set(
                "source",
                source.subscribe(
                    lambda value: _later(partial(sink.data, value)),
                    sink.error,
                    lambda: _later(sink.done),
                ),
            )
            return upstream

        return Source(_produce)

    return _operator


def time_interval(*, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[TimeInterval[T]]]:
    """Wrap each value with the seconds elapsed since the previous one."""

    def _operator(source: Source[T]) -> Source[TimeInterval[T]]:
        def _produce(sink: Sink[TimeInterval[T]]):
            sched = scheduler or get_scheduler()
            last = [sched.now()]

            def _on_data(value: T) -> None:
                now = sched.now()
                elapsed, last[0] = now - last[0], now
                sink.data(TimeInterval(value, elapsed))

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def timestamp(*, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[Timestamped[T]]]:
    """Wrap each value with the scheduler's clock reading when it arrived."""

    def _operator(source: Source[T]) -> Source[Timestamped[T]]:
        def _produce(sink: Sink[Timestamped[T]]):
            sched = scheduler or get_scheduler()
            return source.subscribe(
                lambda value: sink.data(Timestamped(value, sched.now())), sink.error, sink.done
            )

        return Source(_produce)

    return _operator


def timeout(seconds: float, *, scheduler: Scheduler | None = None) -> Callable[[Source[T]], Source[T]]:
    """Fail with SourceTimeoutError if `seconds` pass without an event."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()

            def _expire(_: Any) -> None:
                sink.error(SourceTimeoutError(seconds))

            def _arm() -> None:
                deadline = timer(None, seconds, scheduler=scheduler)
                upstream.set("timer", deadline.subscribe(_expire, sink.error))

            def _on_data(value: T) -> None:
                sink.data(value)
                _arm()

            _arm()
            upstream.set("source", source.subscribe(_on_data, sink.error, sink.done))
            return upstream

        return Source(_produce)

    return _operator


# ─── Trigger gates ───────────────────────────────────────────────────────────


def take_until(trigger: Source[Any]) -> Callable[[Source[T]], Source[T]]:
    """Forward values until `trigger` emits, then complete."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            upstream.set(
                "trigger",
                trigger.subscribe(lambda _: sink.done(), sink.error, partial(upstream.discard, "trigger")),
            )
            if not sink.closed:
                upstream.set("source", source.subscribe(sink.data, sink.error, sink.done))
            return upstream

        return Source(_produce)

    return _operator


def skip_until(trigger: Source[Any]) -> Callable[[Source[T]], Source[T]]:
    """Drop values until `trigger` emits, then forward the rest."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            gate_open = [False]

            def _open(_: Any) -> None:
                gate_open[0] = True
                upstream.remove("trigger")

            def _on_data(value: T) -> None:
                if gate_open[0]:
                    sink.data(value)

            upstream.set("trigger", trigger.subscribe(_open, sink.error, partial(upstream.discard, "trigger")))
            if not sink.closed:
                upstream.set("source", source.subscribe(_on_data, sink.error, sink.done))
            return upstream

        return Source(_produce)

    return _operator
