"""Error types raised or delivered by rivulet operators."""

from __future__ import annotations

from types import TracebackType
from typing import NamedTuple


class ErrorAndTrace(NamedTuple):
    """One captured failure: the error and the traceback it carried."""

    error: BaseException
    trace: TracebackType | None

    @classmethod
    def capture(cls, error: BaseException) -> ErrorAndTrace:
        return cls(error, error.__traceback__)


class RetryError(Exception):
    """Every attempt failed. `errors` holds all failures, oldest first."""

    def __init__(self, errors: list[ErrorAndTrace]) -> None:
        self.errors = list(errors)
        last = self.errors[-1].error if self.errors else None
        super().__init__(f"Received {len(self.errors)} error(s); last: {last!r}")


class SourceTimeoutError(TimeoutError):
    """No event arrived within the allowed time."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"No event within {seconds}s")


class SubjectClosedError(RuntimeError):
    """Tried to add an event to a Subject after it was closed."""
