"""Join combinators — one output sequence from several input sources.

Each combinator subscribes to its inputs when it is itself subscribed to
(concat lazily, one at a time) and owns those subscriptions in a
CompositeSubscription: an error from any input cancels the rest, and
cancelling the output cancels every input in the same step.

Combiners receive one positional argument per input. Without a combiner
the values are emitted as a list:
    combine_latest(just(1), from_iterable([0, 1, 2]), combiner=lambda a, b: a + b)
    # 1, 2, 3
"""

from __future__ import annotations

import logging
from collections import deque
from functools import partial
from typing import Any, Callable, TypeVar

from rivulet.source import CompositeSubscription, Sink, Source, Trampoline

logger = logging.getLogger("rivulet.joins")

T = TypeVar("T")
R = TypeVar("R")

_UNSET = object()

Combiner = Callable[..., R]


def _combine(combiner: Combiner | None, values: list[Any]) -> Any:
    if combiner is None:
        return list(values)
    return combiner(*values)


def combine_latest(*sources: Source[Any], combiner: Combiner | None = None) -> Source[Any]:
    """Emit the combination of the latest values whenever any input emits.

    Nothing is emitted until every input has produced a value. An input
    that completes without ever emitting completes the whole combinator;
    otherwise it completes once every input has.
    """

    def _produce(sink: Sink[Any]) -> CompositeSubscription | None:
        count = len(sources)
        if count == 0:
            sink.done()
            return None
        latest = [_UNSET] * count
        missing = [count]
        remaining = [count]
        upstream = CompositeSubscription()

        def _on_data(index: int, value: Any) -> None:
            if latest[index] is _UNSET:
                missing[0] -= 1
            latest[index] = value
            if missing[0]:
                return
            try:
                result = _combine(combiner, latest)
            except Exception as exc:
                sink.error(exc)
                return
            sink.data(result)

        def _on_done(index: int) -> None:
            upstream.discard(index)
            remaining[0] -= 1
            if latest[index] is _UNSET or remaining[0] == 0:
                sink.done()

        for index, source in enumerate(sources):
            if sink.closed:
                break
            upstream.set(
                index,
                source.subscribe(partial(_on_data, index), sink.error, partial(_on_done, index)),
            )
        return upstream

    return Source(_produce)


def zip(*sources: Source[Any], combiner: Combiner | None = None) -> Source[Any]:
    """Pair up the n-th value of every input.

    Completes as soon as one input has completed and has nothing left
    buffered; values other inputs buffered past that point are dropped.
    """

    def _produce(sink: Sink[Any]) -> CompositeSubscription | None:
        count = len(sources)
        if count == 0:
            sink.done()
            return None
        queues: list[deque[Any]] = [deque() for _ in range(count)]
        finished = [False] * count
        upstream = CompositeSubscription()

        def _exhausted() -> bool:
            return any(finished[i] and not queues[i] for i in range(count))

        def _on_data(index: int, value: Any) -> None:
            queues[index].append(value)
            if not all(queues):
                return
            values = [queue.popleft() for queue in queues]
            try:
                result = _combine(combiner, values)
            except Exception as exc:
                sink.error(exc)
                return
            sink.data(result)
            if _exhausted():
                sink.done()

        def _on_done(index: int) -> None:
            upstream.discard(index)
            finished[index] = True
            if not queues[index]:
                sink.done()

        for index, source in enumerate(sources):
            if sink.closed:
                break
            upstream.set(
                index,
                source.subscribe(partial(_on_data, index), sink.error, partial(_on_done, index)),
            )
        return upstream

    return Source(_produce)


def fork_join(*sources: Source[Any], combiner: Combiner | None = None) -> Source[Any]:
    """Emit once, combining each input's last value, after all have completed.

    An input that completes without a value ends the whole operation
    without output.
    """

    def _produce(sink: Sink[Any]) -> CompositeSubscription | None:
        count = len(sources)
        if count == 0:
            sink.done()
            return None
        last = [_UNSET] * count
        remaining = [count]
        upstream = CompositeSubscription()

        def _on_data(index: int, value: Any) -> None:
            last[index] = value

        def _on_done(index: int) -> None:
            upstream.discard(index)
            if last[index] is _UNSET:
                sink.done()
                return
            remaining[0] -= 1
            if remaining[0]:
                return
            try:
                result = _combine(combiner, last)
            except Exception as exc:
                sink.error(exc)
                return
            sink.data(result)
            sink.done()

        for index, source in enumerate(sources):
            if sink.closed:
                break
            upstream.set(
                index,
                source.subscribe(partial(_on_data, index), sink.error, partial(_on_done, index)),
            )
        return upstream

    return Source(_produce)


def merge(*sources: Source[T]) -> Source[T]:
    """Interleave all inputs in arrival order; complete when all have."""

    def _produce(sink: Sink[T]) -> CompositeSubscription | None:
        remaining = [len(sources)]
        if not sources:
            sink.done()
            return None
        upstream = CompositeSubscription()

        def _on_done(index: int) -> None:
            upstream.discard(index)
            remaining[0] -= 1
            if remaining[0] == 0:
                sink.done()

        for index, source in enumerate(sources):
            if sink.closed:
                break
            upstream.set(index, source.subscribe(sink.data, sink.error, partial(_on_done, index)))
        return upstream

    return Source(_produce)


def concat(*sources: Source[T]) -> Source[T]:
    """Forward each input in turn, subscribing to the next when one completes."""

    def _produce(sink: Sink[T]) -> CompositeSubscription:
        upstream = CompositeSubscription()
        position = [0]

        def _subscribe_next() -> None:
            if sink.closed:
                return
            index = position[0]
            if index >= len(sources):
                sink.done()
                return
            position[0] += 1
            upstream.set("current", sources[index].subscribe(sink.data, sink.error, _next))

        _next = Trampoline(_subscribe_next)
        _next()
        return upstream

    return Source(_produce)


_DONE = object()


def concat_eager(*sources: Source[T]) -> Source[T]:
    """Like concat(), but subscribes to every input immediately.

    Events from inputs that are not yet current are buffered and released
    when their turn comes, so the output is exactly what concat() gives.
    """

    def _produce(sink: Sink[T]) -> CompositeSubscription | None:
        count = len(sources)
        if count == 0:
            sink.done()
            return None
        buffers: list[deque[Any]] = [deque() for _ in range(count)]
        current = [0]
        upstream = CompositeSubscription()

        def _advance() -> None:
            while True:
                current[0] += 1
                index = current[0]
                if index >= count:
                    sink.done()
                    return
                buffer = buffers[index]
                reached_done = False
                while buffer:
                    item = buffer.popleft()
                    if item is _DONE:
                        reached_done = True
                        break
                    item()
                    if sink.closed:
                        return
                if not reached_done:
                    return

        def _on_data(index: int, value: T) -> None:
            if index == current[0]:
                sink.data(value)
            else:
                buffers[index].append(partial(sink.data, value))

        def _on_error(index: int, error: BaseException) -> None:
            if index == current[0]:
                sink.error(error)
            else:
                buffers[index].append(partial(sink.error, error))

        def _on_done(index: int) -> None:
            upstream.discard(index)
            if index == current[0]:
                _advance()
            else:
                buffers[index].append(_DONE)

        for index, source in enumerate(sources):
            if sink.closed:
                break
            upstream.set(
                index,
                source.subscribe(
                    partial(_on_data, index), partial(_on_error, index), partial(_on_done, index)
                ),
            )
        return upstream

    return Source(_produce)


def race(*sources: Source[T]) -> Source[T]:
    """Mirror whichever input produces an event first; cancel the others."""

    def _produce(sink: Sink[T]) -> CompositeSubscription | None:
        count = len(sources)
        if count == 0:
            sink.done()
            return None
        winner: list[int | None] = [None]
        upstream = CompositeSubscription()

        def _claim(index: int) -> bool:
            if winner[0] is None:
                winner[0] = index
                logger.debug("race won by input %d of %d", index, count)
                for other in range(count):
                    if other != index:
                        upstream.remove(other)
            return winner[0] == index

        def _on_data(index: int, value: T) -> None:
            if _claim(index):
                sink.data(value)

        def _on_error(index: int, error: BaseException) -> None:
            if _claim(index):
                sink.error(error)

        def _on_done(index: int) -> None:
            if _claim(index):
                sink.done()

        for index, source in enumerate(sources):
            if winner[0] is not None or sink.closed:
                break
            upstream.set(
                index,
                source.subscribe(
                    partial(_on_data, index), partial(_on_error, index), partial(_on_done, index)
                ),
            )
        return upstream

    return Source(_produce)


def _switch(outer: Source[Any], mapper: Callable[[Any], Source[T]]) -> Source[T]:
    def _produce(sink: Sink[T]) -> CompositeSubscription:
        upstream = CompositeSubscription()
        outer_done = [False]
        inner_active = [False]

        def _on_inner_done() -> None:
            inner_active[0] = False
            upstream.discard("inner")
            if outer_done[0]:
                sink.done()

        def _on_outer(value: Any) -> None:
            try:
                inner = mapper(value)
            except Exception as exc:
                sink.error(exc)
                return
            upstream.remove("inner")
            inner_active[0] = True
            upstream.set("inner", inner.subscribe(sink.data, sink.error, _on_inner_done))

        def _on_outer_done() -> None:
            outer_done[0] = True
            upstream.discard("outer")
            if not inner_active[0]:
                sink.done()

        upstream.set("outer", outer.subscribe(_on_outer, sink.error, _on_outer_done))
        return upstream

    return Source(_produce)


def switch_latest(sources: Source[Source[T]]) -> Source[T]:
    """Forward only the most recently emitted inner Source.

    A new inner Source cancels the previous one. Completes when the outer
    Source and the current inner Source have both completed.
    """
    return _switch(sources, lambda inner: inner)


def switch_map(mapper: Callable[[Any], Source[T]]) -> Callable[[Source[Any]], Source[T]]:
    """Map each value to a Source and switch to it, dropping the previous one."""
    return lambda source: _switch(source, mapper)


def flat_map(mapper: Callable[[Any], Source[T]]) -> Callable[[Source[Any]], Source[T]]:
    """Map each value to a Source and merge all of them."""

    def _operator(source: Source[Any]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            active = [0]
            outer_done = [False]

            def _on_outer(value: Any) -> None:
                try:
                    inner = mapper(value)
                except Exception as exc:
                    sink.error(exc)
                    return
                active[0] += 1
                key: list[Any] = [None]

                def _on_inner_done() -> None:
                    active[0] -= 1
                    if key[0] is not None:
                        upstream.discard(key[0])
                    if outer_done[0] and active[0] == 0:
                        sink.done()

                key[0] = upstream.add(inner.subscribe(sink.data, sink.error, _on_inner_done))

            def _on_outer_done() -> None:
                outer_done[0] = True
                upstream.discard("outer")
                if active[0] == 0:
                    sink.done()

            upstream.set("outer", source.subscribe(_on_outer, sink.error, _on_outer_done))
            return upstream

        return Source(_produce)

    return _operator


def concat_map(mapper: Callable[[Any], Source[T]]) -> Callable[[Source[Any]], Source[T]]:
    """Map each value to a Source and forward them one after another.

    Outer values that arrive while an inner Source is running are queued.
    """

    def _operator(source: Source[Any]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            pending: deque[Any] = deque()
            active = [False]
            outer_done = [False]

            def _drain_step() -> None:
                if active[0] or sink.closed:
                    return
                if not pending:
                    if outer_done[0]:
                        sink.done()
                    return
                try:
                    inner = mapper(pending.popleft())
                except Exception as exc:
                    sink.error(exc)
                    return
                active[0] = True
                upstream.set("inner", inner.subscribe(sink.data, sink.error, _on_inner_done))

            _drain = Trampoline(_drain_step)

            def _on_inner_done() -> None:
                active[0] = False
                upstream.discard("inner")
                _drain()

            def _on_outer(value: Any) -> None:
                pending.append(value)
                _drain()

            def _on_outer_done() -> None:
                outer_done[0] = True
                upstream.discard("outer")
                _drain()

            upstream.set("outer", source.subscribe(_on_outer, sink.error, _on_outer_done))
            return upstream

        return Source(_produce)

    return _operator


def with_latest_from(
    *others: Source[Any], combiner: Combiner | None = None
) -> Callable[[Source[Any]], Source[Any]]:
    """On every value of the source, combine it with the latest of `others`.

    Emits only once every other input has a value; the others never
    trigger output themselves. Completes when the source completes.
    """

    def _operator(source: Source[Any]) -> Source[Any]:
        def _produce(sink: Sink[Any]) -> CompositeSubscription:
            count = len(others)
            latest = [_UNSET] * count
            missing = [count]
            upstream = CompositeSubscription()

            def _on_other(index: int, value: Any) -> None:
                if latest[index] is _UNSET:
                    missing[0] -= 1
                latest[index] = value

            def _on_data(value: Any) -> None:
                if missing[0]:
                    return
                try:
                    result = _combine(combiner, [value, *latest])
                except Exception as exc:
                    sink.error(exc)
                    return
                sink.data(result)

            for index, other in enumerate(others):
                if sink.closed:
                    break
                key = ("other", index)
                upstream.set(
                    key,
                    other.subscribe(partial(_on_other, index), sink.error, partial(upstream.discard, key)),
                )
            if not sink.closed:
                upstream.set("source", source.subscribe(_on_data, sink.error, sink.done))
            return upstream

        return Source(_produce)

    return _operator


def sequence_equal(
    first: Source[Any],
    second: Source[Any],
    equals: Callable[[Any, Any], bool] | None = None,
) -> Source[bool]:
    """Emit a single bool: do both inputs produce the same sequence?

    Values are compared position by position as they arrive; the first
    mismatch emits False at once and cancels both inputs.
    """

    def _produce(sink: Sink[bool]) -> CompositeSubscription:
        queues: tuple[deque[Any], deque[Any]] = (deque(), deque())
        finished = [False, False]
        upstream = CompositeSubscription()

        def _result(same: bool) -> None:
            sink.data(same)
            sink.done()

        def _on_data(side: int, value: Any) -> None:
            other = 1 - side
            if queues[other]:
                earlier = queues[other].popleft()
                a, b = (earlier, value) if other == 0 else (value, earlier)
                try:
                    same = equals(a, b) if equals is not None else a == b
                except Exception as exc:
                    sink.error(exc)
                    return
                if not same:
                    _result(False)
            elif finished[other]:
                _result(False)
            else:
                queues[side].append(value)

        def _on_done(side: int) -> None:
            upstream.discard(side)
            finished[side] = True
            other = 1 - side
            if queues[other]:
                _result(False)
            elif finished[other]:
                _result(not queues[side])

        for side, source in enumerate((first, second)):
            if sink.closed:
                break
            upstream.set(
                side,
                source.subscribe(partial(_on_data, side), sink.error, partial(_on_done, side)),
            )
        return upstream

    return Source(_produce)
