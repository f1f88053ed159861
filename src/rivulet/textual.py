"""Textual integration for rivulet. Opt-in — requires textual.

TextualScheduler runs every Source on the app's message loop, which is the
single-threaded delivery mechanism rivulet expects. bind() subscribes a
widget-updating callback that is safe to fire at any point of the app's
lifecycle.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable

from textual.css.query import NoMatches

from rivulet.scheduler import Action
from rivulet.source import OnDone, OnError, Source, Subscription

logger = logging.getLogger("rivulet.textual")

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


class _CallHandle:
    """Cancellable wrapper for an action queued with app.call_later."""

    __slots__ = ("_action", "_cancelled")

    def __init__(self, action: Action) -> None:
        self._action = action
        self._cancelled = False

    def __call__(self) -> None:
        if not self._cancelled:
            self._action()

    def cancel(self) -> None:
        self._cancelled = True


class _TimerHandle:
    __slots__ = ("_timer",)

    def __init__(self, timer: Any) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.stop()


class TextualScheduler:
    """Schedule rivulet work on a Textual app's event loop."""

    def __init__(self, app: Any) -> None:
        self._app = app

    def now(self) -> float:
        return time.time()

    def schedule(self, action: Action) -> _CallHandle:
        handle = _CallHandle(action)
        self._app.call_later(handle)
        return handle

    def schedule_relative(self, delay: float, action: Action) -> _CallHandle | _TimerHandle:
        if delay <= 0:
            return self.schedule(action)
        return _TimerHandle(self._app.set_timer(delay, action))


@contextmanager
def pause(app):
    """Suspend bound data callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(
    app,
    source: Source[Any],
    on_data: Callable[[Any], None],
    on_error: OnError,
    on_done: OnDone | None = None,
) -> Subscription:
    """subscribe() that safely bridges to Textual widgets.

    Values arriving while the app is not running or paused are dropped.
    NoMatches from widget queries is swallowed, and calls from a foreign
    thread are marshaled with call_from_thread. Error and Done are never
    dropped.
    """
    _main = threading.get_ident()

    def _deliver(fn: Callable[..., None], *args: Any) -> None:
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, fn, *args)
        else:
            _safe(fn, *args)

    def _safe(fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except NoMatches:
            logger.debug("Widget query found no match; skipping update")

    def _guarded_data(value: Any) -> None:
        if is_safe(app):
            _deliver(on_data, value)

    return source.subscribe(
        _guarded_data,
        lambda error: _deliver(on_error, error),
        (lambda: _deliver(on_done)) if on_done is not None else None,
    )
