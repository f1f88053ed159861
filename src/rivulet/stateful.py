"""Stateful single-source operators.

Each keeps an accumulator, a lookup table or an inner subscription that
lives exactly as long as one subscription: subscribing twice runs two
independent copies of the state.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, TypeVar

from rivulet.source import CompositeSubscription, Sink, Source
from rivulet.sources import just
from rivulet.subject import GroupedSource

T = TypeVar("T")
S = TypeVar("S")
K = TypeVar("K", bound=Hashable)

_UNSET = object()


class _Key:
    """Hash/equality wrapper for user-supplied equals and hash_code."""

    __slots__ = ("value", "_equals", "_hash")

    def __init__(
        self,
        value: Any,
        equals: Callable[[Any, Any], bool] | None,
        hash_code: Callable[[Any], int] | None,
    ) -> None:
        self.value = value
        self._equals = equals
        if hash_code is not None:
            self._hash = hash_code(value)
        elif equals is None:
            self._hash = hash(value)
        else:
            self._hash = 0  # custom equality without a hash: compare against everything

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _Key):
            return NotImplemented
        if self._equals is not None:
            return self._equals(self.value, other.value)
        return self.value == other.value


def distinct_unique(
    equals: Callable[[T, T], bool] | None = None,
    hash_code: Callable[[T], int] | None = None,
) -> Callable[[Source[T]], Source[T]]:
    """Drop every value equal to one seen before, anywhere in the history."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]):
            seen: set[Any] = set()

            def _on_data(value: T) -> None:
                try:
                    key = value if equals is None and hash_code is None else _Key(value, equals, hash_code)
                    if key in seen:
                        return
                    seen.add(key)
                except Exception as exc:
                    sink.error(exc)
                    return
                sink.data(value)

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def distinct(equals: Callable[[T, T], bool] | None = None) -> Callable[[Source[T]], Source[T]]:
    """Drop values equal to the one directly before them."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]):
            previous = [_UNSET]

            def _on_data(value: T) -> None:
                last, previous[0] = previous[0], value
                if last is not _UNSET:
                    try:
                        same = equals(last, value) if equals is not None else last == value
                    except Exception as exc:
                        sink.error(exc)
                        return
                    if same:
                        return
                sink.data(value)

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def group_by(key_fn: Callable[[T], K]) -> Callable[[Source[T]], Source[GroupedSource[T]]]:
    """Split values into one hot GroupedSource per key.

    A group is emitted the first time its key appears, just before its
    first value is pushed into it, so a listener that subscribes to the
    group on arrival sees every one of its values. All groups complete
    with the source; a source error fails every open group and the output.
    """

    def _operator(source: Source[T]) -> Source[GroupedSource[T]]:
        def _produce(sink: Sink[GroupedSource[T]]):
            groups: dict[Hashable, GroupedSource[T]] = {}

            def _on_data(value: T) -> None:
                try:
                    key = key_fn(value)
                    group = groups.get(key)
                except Exception as exc:
                    _on_error(exc)
                    return
                if group is None:
                    group = groups[key] = GroupedSource(key)
                    sink.data(group)
                group.add(value)

            def _on_error(error: BaseException) -> None:
                open_groups = list(groups.values())
                groups.clear()
                for group in open_groups:
                    group.add_error(error)
                sink.error(error)

            def _on_done() -> None:
                open_groups = list(groups.values())
                groups.clear()
                for group in open_groups:
                    group.close()
                sink.done()

            return source.subscribe(_on_data, _on_error, _on_done)

        return Source(_produce)

    return _operator


def pairwise() -> Callable[[Source[T]], Source[tuple[T, T]]]:
    """Emit (previous, current) for every value after the first."""

    def _operator(source: Source[T]) -> Source[tuple[T, T]]:
        def _produce(sink: Sink[tuple[T, T]]):
            previous = [_UNSET]

            def _on_data(value: T) -> None:
                last, previous[0] = previous[0], value
                if last is not _UNSET:
                    sink.data((last, value))

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def scan(
    accumulator: Callable[[S, T, int], S], seed: S | None = None
) -> Callable[[Source[T]], Source[S]]:
    """Emit each intermediate accumulator(acc, value, index) result.

        from_iterable([1, 2, 3]).pipe(scan(lambda acc, v, i: acc + v, 0))  # 1, 3, 6
    """

    def _operator(source: Source[T]) -> Source[S]:
        def _produce(sink: Sink[S]):
            acc: list[Any] = [seed]
            index = [0]

            def _on_data(value: T) -> None:
                try:
                    acc[0] = accumulator(acc[0], value, index[0])
                except Exception as exc:
                    sink.error(exc)
                    return
                index[0] += 1
                sink.data(acc[0])

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def exhaust_map(mapper: Callable[[T], Source[S]]) -> Callable[[Source[T]], Source[S]]:
    """Map a value to a Source and forward it; ignore values while it runs."""

    def _operator(source: Source[T]) -> Source[S]:
        def _produce(sink: Sink[S]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            active = [False]
            outer_done = [False]

            def _on_inner_done() -> None:
                active[0] = False
                upstream.discard("inner")
                if outer_done[0]:
                    sink.done()

            def _on_data(value: T) -> None:
                if active[0]:
                    return
                try:
                    inner = mapper(value)
                except Exception as exc:
                    sink.error(exc)
                    return
                active[0] = True
                upstream.set("inner", inner.subscribe(sink.data, sink.error, _on_inner_done))

            def _on_done() -> None:
                outer_done[0] = True
                upstream.discard("source")
                if not active[0]:
                    sink.done()

            upstream.set("source", source.subscribe(_on_data, sink.error, _on_done))
            return upstream

        return Source(_produce)

    return _operator


# ─── Error recovery ──────────────────────────────────────────────────────────


def on_error_resume(recovery_fn: Callable[[BaseException], Source[T]]) -> Callable[[Source[T]], Source[T]]:
    """On error, continue with the Source recovery_fn(error) instead of failing."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()

            def _on_error(error: BaseException) -> None:
                try:
                    recovery = recovery_fn(error)
                except Exception as exc:
                    sink.error(exc)
                    return
                upstream.set("source", recovery.subscribe(sink.data, sink.error, sink.done))

            upstream.set("source", source.subscribe(sink.data, _on_error, sink.done))
            return upstream

        return Source(_produce)

    return _operator


def on_error_resume_next(recovery: Source[T]) -> Callable[[Source[T]], Source[T]]:
    return on_error_resume(lambda _: recovery)


def on_error_return(value: T) -> Callable[[Source[T]], Source[T]]:
    """On error, emit `value` and complete."""
    return on_error_resume(lambda _: just(value))


def on_error_return_with(fn: Callable[[BaseException], T]) -> Callable[[Source[T]], Source[T]]:
    """On error, emit fn(error) and complete."""
    return on_error_resume(lambda error: just(fn(error)))


# ─── Empty handling ──────────────────────────────────────────────────────────


def switch_if_empty(fallback: Source[T]) -> Callable[[Source[T]], Source[T]]:
    """If the source completes without a value, continue with `fallback`."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]) -> CompositeSubscription:
            upstream = CompositeSubscription()
            seen = [False]

            def _on_data(value: T) -> None:
                seen[0] = True
                sink.data(value)

            def _on_done() -> None:
                if seen[0]:
                    sink.done()
                else:
                    upstream.set("source", fallback.subscribe(sink.data, sink.error, sink.done))

            upstream.set("source", source.subscribe(_on_data, sink.error, _on_done))
            return upstream

        return Source(_produce)

    return _operator


def default_if_empty(value: T) -> Callable[[Source[T]], Source[T]]:
    """If the source completes without a value, emit `value` first."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]):
            seen = [False]

            def _on_data(item: T) -> None:
                seen[0] = True
                sink.data(item)

            def _on_done() -> None:
                if not seen[0]:
                    sink.data(value)
                sink.done()

            return source.subscribe(_on_data, sink.error, _on_done)

        return Source(_produce)

    return _operator
