"""Subjects — hot sources fed imperatively.

A Subject is a broadcast Source: every listener shares the one sequence of
events pushed with add()/add_error()/close(), and only sees what is pushed
after it subscribes. Listeners that arrive after the Subject closed get the
terminal event straight away.
"""

from __future__ import annotations

from typing import Callable, Hashable, TypeVar

from rivulet.errors import SubjectClosedError
from rivulet.source import Disposer, Sink, Source

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


class Subject(Source[T]):
    """Broadcast Source with an imperative push API."""

    __slots__ = ("_sinks", "_terminal")

    def __init__(self) -> None:
        self._sinks: list[Sink[T]] = []
        self._terminal: Callable[[Sink[T]], None] | None = None
        super().__init__(self._attach, broadcast=True)

    @property
    def is_closed(self) -> bool:
        return self._terminal is not None

    @property
    def has_listener(self) -> bool:
        return bool(self._sinks)

    def add(self, value: T) -> None:
        """Push a value to all current listeners."""
        if self._terminal is not None:
            raise SubjectClosedError("Cannot add a value to a closed Subject")
        for sink in list(self._sinks):
            sink.data(value)

    def add_error(self, error: BaseException) -> None:
        """Fail every current and future listener with `error`."""
        self._finish(lambda sink: sink.error(error))

    def close(self) -> None:
        """Complete every current and future listener. Idempotent."""
        if self._terminal is None:
            self._finish(lambda sink: sink.done())

    def _finish(self, terminal: Callable[[Sink[T]], None]) -> None:
        if self._terminal is not None:
            raise SubjectClosedError("Subject is already closed")
        self._terminal = terminal
        sinks, self._sinks = self._sinks, []
        for sink in sinks:
            terminal(sink)

    def _attach(self, sink: Sink[T]) -> Disposer | None:
        if self._terminal is not None:
            self._terminal(sink)
            return None
        self._sinks.append(sink)

        def _detach() -> None:
            try:
                self._sinks.remove(sink)
            except ValueError:
                pass  # already removed

        return _detach


class GroupedSource(Subject[T]):
    """The Subject for one group_by key."""

    __slots__ = ("key",)

    def __init__(self, key: Hashable) -> None:
        super().__init__()
        self.key = key

    def __repr__(self) -> str:
        return f"GroupedSource(key={self.key!r})"
