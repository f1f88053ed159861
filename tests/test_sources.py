"""Tests for the creation functions."""

import pytest

from rivulet import (
    VirtualTimeScheduler,
    defer,
    empty,
    from_iterable,
    just,
    never,
    periodic,
    range_,
    take,
    throw,
    timer,
)


class TestFromIterable:
    def test_each_value_is_its_own_step(self, scheduler, record):
        rec = record(from_iterable(["a", "b"]))
        assert scheduler.pending == 1
        scheduler.run()
        assert rec.values == ["a", "b"]

    def test_iteration_error_ends_stream(self, scheduler, record):
        def _items():
            yield 1
            raise KeyError("bad")

        rec = record(from_iterable(_items()))
        scheduler.run()
        assert rec.values == [1]
        assert isinstance(rec.errors[0], KeyError)
        assert not rec.done

    def test_explicit_scheduler(self, record):
        private = VirtualTimeScheduler()
        rec = record(from_iterable([1], scheduler=private))
        private.run()
        assert rec.values == [1]


class TestSimpleSources:
    def test_just(self, scheduler, record):
        rec = record(just(42))
        scheduler.run()
        assert rec.values == [42]
        assert rec.done

    def test_empty(self, scheduler, record):
        rec = record(empty())
        assert not rec.done
        scheduler.run()
        assert rec.values == []
        assert rec.done

    def test_throw(self, scheduler, record):
        error = ValueError("boom")
        rec = record(throw(error))
        scheduler.run()
        assert rec.errors == [error]
        assert not rec.done

    def test_never(self, scheduler, record):
        rec = record(never())
        scheduler.run()
        assert rec.values == []
        assert not rec.done
        assert rec.errors == []


class TestRange:
    def test_inclusive_ascending(self, scheduler, record):
        rec = record(range_(1, 4))
        scheduler.run()
        assert rec.values == [1, 2, 3, 4]

    def test_descending(self, scheduler, record):
        rec = record(range_(3, 1))
        scheduler.run()
        assert rec.values == [3, 2, 1]

    def test_single_value(self, scheduler, record):
        rec = record(range_(5, 5))
        scheduler.run()
        assert rec.values == [5]


class TestTimer:
    def test_emits_after_delay(self, scheduler, record):
        rec = record(timer("late", 86_400))
        scheduler.advance_by(86_399)
        assert rec.values == []
        scheduler.advance_by(1)
        assert rec.values == ["late"]
        assert rec.done
        assert scheduler.now() == 86_400

    def test_cancel_stops_timer(self, scheduler, record):
        rec = record(timer(1, 5))
        rec.subscription.cancel()
        assert scheduler.pending == 0
        scheduler.run()
        assert rec.values == []

    def test_negative_duration_rejected(self):
        with pytest.raises(ValueError):
            timer(1, -1)


class TestPeriodic:
    def test_computation_receives_tick_index(self, scheduler, record):
        rec = record(periodic(1.0, lambda i: i * i).pipe(take(4)))
        scheduler.run()
        assert rec.values == [0, 1, 4, 9]
        assert rec.done
        assert scheduler.now() == 4.0

    def test_none_without_computation(self, scheduler, record):
        rec = record(periodic(0.5).pipe(take(2)))
        scheduler.run()
        assert rec.values == [None, None]

    def test_computation_error_ends_stream(self, scheduler, record):
        def _compute(i):
            if i == 1:
                raise ValueError("tick")
            return i

        rec = record(periodic(1.0, _compute))
        scheduler.run()
        assert rec.values == [0]
        assert len(rec.errors) == 1

    def test_zero_period_rejected(self):
        with pytest.raises(ValueError):
            periodic(0)

    def test_pause_and_resume(self, scheduler, record):
        rec = record(periodic(1.0, lambda i: i))
        scheduler.advance_to(2.0)
        rec.subscription.pause()
        scheduler.advance_to(5.0)
        assert rec.values == [0, 1]
        rec.subscription.resume()
        scheduler.advance_to(6.5)
        assert rec.values == [0, 1, 2]
        rec.subscription.cancel()


class TestDefer:
    def test_factory_called_per_subscription(self, scheduler, record):
        calls = []

        def _factory():
            calls.append(1)
            return just(len(calls))

        source = defer(_factory)
        a = record(source)
        b = record(source)
        scheduler.run()
        assert a.values == [1]
        assert b.values == [2]
