"""Plumbing operators: one value in, at most one value out."""

from __future__ import annotations

from typing import Callable, TypeVar

from rivulet.source import Sink, Source

T = TypeVar("T")
U = TypeVar("U")


def map(fn: Callable[[T], U]) -> Callable[[Source[T]], Source[U]]:
    """Transform values through fn."""

    def _operator(source: Source[T]) -> Source[U]:
        def _produce(sink: Sink[U]):
            def _on_data(value: T) -> None:
                try:
                    result = fn(value)
                except Exception as exc:
                    sink.error(exc)
                    return
                sink.data(result)

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def filter(fn: Callable[[T], bool]) -> Callable[[Source[T]], Source[T]]:
    """Only pass values where fn returns True."""

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]):
            def _on_data(value: T) -> None:
                try:
                    keep = fn(value)
                except Exception as exc:
                    sink.error(exc)
                    return
                if keep:
                    sink.data(value)

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator


def take(count: int) -> Callable[[Source[T]], Source[T]]:
    """Forward the first `count` values, then complete and cancel upstream."""
    if count < 0:
        raise ValueError(f"Invalid count: {count!r}")

    def _operator(source: Source[T]) -> Source[T]:
        def _produce(sink: Sink[T]):
            if count == 0:
                sink.done()
                return None
            taken = [0]

            def _on_data(value: T) -> None:
                taken[0] += 1
                sink.data(value)
                if taken[0] >= count:
                    sink.done()

            return source.subscribe(_on_data, sink.error, sink.done)

        return Source(_produce)

    return _operator
