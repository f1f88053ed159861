"""Tests for the schedulers and the default-scheduler switch."""

import asyncio

import rivulet.scheduler as sched_mod
from rivulet import AsyncioScheduler, VirtualTimeScheduler, from_iterable, get_scheduler, set_scheduler, timer


class TestVirtualTimeScheduler:
    def test_runs_in_due_order(self):
        s = VirtualTimeScheduler()
        order = []
        s.schedule_relative(2, lambda: order.append("a"))
        s.schedule_relative(1, lambda: order.append("b"))
        s.schedule(lambda: order.append("c"))
        s.run()
        assert order == ["c", "b", "a"]
        assert s.now() == 2

    def test_fifo_for_equal_due_times(self):
        s = VirtualTimeScheduler()
        order = []
        for name in "xyz":
            s.schedule_relative(1, lambda n=name: order.append(n))
        s.run()
        assert order == ["x", "y", "z"]

    def test_cancelled_action_does_not_run(self):
        s = VirtualTimeScheduler()
        ran = []
        handle = s.schedule_relative(1, lambda: ran.append(1))
        handle.cancel()
        assert s.pending == 0
        s.run()
        assert ran == []
        assert s.now() == 0

    def test_advance_runs_only_due_actions(self):
        s = VirtualTimeScheduler()
        ran = []
        s.schedule_relative(1, lambda: ran.append(1))
        s.schedule_relative(3, lambda: ran.append(3))
        s.advance_by(2)
        assert ran == [1]
        assert s.now() == 2
        s.advance_to(3)
        assert ran == [1, 3]

    def test_advance_to_past_is_ignored(self):
        s = VirtualTimeScheduler(start=10.0)
        s.advance_to(5.0)
        assert s.now() == 10.0

    def test_actions_scheduled_while_running(self):
        s = VirtualTimeScheduler()
        ran = []

        def _first():
            ran.append("first")
            s.schedule_relative(1, lambda: ran.append("second"))

        s.schedule(_first)
        s.run()
        assert ran == ["first", "second"]
        assert s.now() == 1


class TestDefaultScheduler:
    def test_fixture_installs_virtual_scheduler(self, scheduler):
        assert get_scheduler() is scheduler

    def test_set_scheduler_none_restores_lazy_asyncio(self):
        set_scheduler(None)
        assert isinstance(get_scheduler(), AsyncioScheduler)

    def test_set_scheduler_replaces_default(self):
        custom = VirtualTimeScheduler()
        set_scheduler(custom)
        assert sched_mod.get_scheduler() is custom


class TestAsyncioScheduler:
    def test_delivers_on_running_loop(self):
        received = []
        done = []

        async def main():
            s = AsyncioScheduler()
            from_iterable([1, 2, 3], scheduler=s).subscribe(received.append, done.append, lambda: done.append(True))
            timer("t", 0.01, scheduler=s).subscribe(received.append, done.append)
            await asyncio.sleep(0.05)

        asyncio.run(main())
        assert received == [1, 2, 3, "t"]
        assert done == [True]

    def test_cancelled_timer_never_fires(self):
        received = []

        async def main():
            s = AsyncioScheduler()
            sub = timer("t", 0.01, scheduler=s).subscribe(received.append, lambda e: None)
            sub.cancel()
            await asyncio.sleep(0.03)

        asyncio.run(main())
        assert received == []
