"""Shared fixtures: a virtual clock for every test and an event recorder."""

import pytest

import rivulet.scheduler as _sched_mod
from rivulet import VirtualTimeScheduler


@pytest.fixture(autouse=True)
def scheduler():
    """Install a fresh VirtualTimeScheduler as the default, then restore."""
    old = _sched_mod._scheduler
    sched = VirtualTimeScheduler()
    _sched_mod.set_scheduler(sched)
    try:
        yield sched
    finally:
        _sched_mod._scheduler = old


class Recorder:
    """Listener that remembers everything it was told."""

    def __init__(self):
        self.values = []
        self.errors = []
        self.done = False
        self.subscription = None

    def listen(self, source):
        self.subscription = source.subscribe(self.values.append, self.errors.append, self._on_done)
        return self

    def _on_done(self):
        self.done = True


@pytest.fixture
def record():
    """record(source) subscribes a new Recorder and returns it."""
    return lambda source: Recorder().listen(source)


@pytest.fixture
def feed(scheduler):
    """feed(subject, [(t, value), ...], close_at=None) schedules pushes on the virtual clock."""

    def _feed(subject, events, close_at=None):
        for at, value in events:
            scheduler.schedule_relative(at - scheduler.now(), lambda v=value: subject.add(v))
        if close_at is not None:
            scheduler.schedule_relative(close_at - scheduler.now(), subject.close)

    return _feed
