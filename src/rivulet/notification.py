"""Notifications — the three event kinds reified as plain values.

A Source pushes Data, Error and Done through three callbacks. Wrapping
them as Notification values lets operators queue, replay or compare events
uniformly, and lets users turn a stream of events into a stream of values
(materialize) and back (dematerialize).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any, Callable, Generic, TypeVar

from rivulet.source import Sink, Source

T = TypeVar("T")


class Kind(Enum):
    DATA = "data"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class Notification(Generic[T]):
    kind: Kind
    value: Any = None
    error: BaseException | None = None
    trace: TracebackType | None = None

    @classmethod
    def data(cls, value: T) -> Notification[T]:
        return cls(Kind.DATA, value=value)

    @classmethod
    def error_of(cls, error: BaseException, trace: TracebackType | None = None) -> Notification[T]:
        return cls(Kind.ERROR, error=error, trace=trace if trace is not None else error.__traceback__)

    @classmethod
    def done(cls) -> Notification[T]:
        return cls(Kind.DONE)

    @property
    def is_data(self) -> bool:
        return self.kind is Kind.DATA

    @property
    def is_error(self) -> bool:
        return self.kind is Kind.ERROR

    @property
    def is_done(self) -> bool:
        return self.kind is Kind.DONE

    def accept(
        self,
        on_data: Callable[[T], None],
        on_error: Callable[[BaseException], None],
        on_done: Callable[[], None],
    ) -> None:
        """Dispatch to the callback matching this notification's kind."""
        if self.kind is Kind.DATA:
            on_data(self.value)
        elif self.kind is Kind.ERROR:
            on_error(self.error)
        else:
            on_done()

    def to_sink(self, sink: Sink[T]) -> None:
        self.accept(sink.data, sink.error, sink.done)

    def __repr__(self) -> str:
        if self.kind is Kind.DATA:
            return f"Notification.data({self.value!r})"
        if self.kind is Kind.ERROR:
            return f"Notification.error({self.error!r})"
        return "Notification.done()"


def materialize() -> Callable[[Source[T]], Source[Notification[T]]]:
    """Emit every event as a Notification, then complete.

    An upstream Error becomes an Error notification followed by Done, so
    the materialized stream itself never fails.
    """

    def _operator(source: Source[T]) -> Source[Notification[T]]:
        def _produce(sink: Sink[Notification[T]]):
            def _on_error(error: BaseException) -> None:
                sink.data(Notification.error_of(error))
                sink.done()

            def _on_done() -> None:
                sink.data(Notification.done())
                sink.done()

            return source.subscribe(lambda v: sink.data(Notification.data(v)), _on_error, _on_done)

        return Source(_produce)

    return _operator


def dematerialize() -> Callable[[Source[Notification[T]]], Source[T]]:
    """Inverse of materialize(): replay each Notification as a real event."""

    def _operator(source: Source[Notification[T]]) -> Source[T]:
        def _produce(sink: Sink[T]):
            return source.subscribe(lambda n: n.to_sink(sink), sink.error, sink.done)

        return Source(_produce)

    return _operator
