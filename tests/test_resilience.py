"""Tests for retry, retry_when and repeat."""

import logging

import pytest

from rivulet import (
    RetryError,
    Source,
    Subject,
    concat,
    empty,
    from_iterable,
    just,
    map,
    periodic,
    repeat,
    retry,
    retry_when,
    take,
    throw,
    timer,
)


def _flaky(failures, then):
    """Factory failing `failures` times before returning `then`."""
    calls = []

    def _factory():
        calls.append(1)
        if len(calls) <= failures:
            return throw(ValueError(f"attempt {len(calls)}"))
        return then

    return _factory, calls


class TestRetry:
    def test_gives_up_after_count_retries(self, scheduler, record):
        factory, calls = _flaky(10, just(1))
        rec = record(retry(factory, count=1))
        scheduler.run()
        assert len(calls) == 2
        assert len(rec.errors) == 1
        error = rec.errors[0]
        assert isinstance(error, RetryError)
        assert len(error.errors) == 2
        assert all(isinstance(e.error, ValueError) for e in error.errors)
        assert "attempt 2" in str(error)

    def test_succeeds_after_failures(self, scheduler, record):
        factory, calls = _flaky(2, from_iterable([1, 2]))
        rec = record(retry(factory))
        scheduler.run()
        assert len(calls) == 3
        assert rec.values == [1, 2]
        assert rec.done
        assert rec.errors == []

    def test_data_from_failed_attempts_is_forwarded(self, scheduler, record):
        rec = record(retry(lambda: concat(just(1), throw(ValueError("x"))), count=1))
        scheduler.run()
        assert rec.values == [1, 1]
        assert isinstance(rec.errors[0], RetryError)

    def test_count_zero_fails_on_first_error(self, scheduler, record):
        rec = record(retry(lambda: throw(KeyError("k")), count=0))
        scheduler.run()
        assert len(rec.errors[0].errors) == 1

    def test_each_subscription_has_own_history(self, scheduler, record):
        source = retry(lambda: throw(ValueError("x")), count=2)
        a = record(source)
        b = record(source)
        scheduler.run()
        assert len(a.errors[0].errors) == 3
        assert len(b.errors[0].errors) == 3

    def test_factory_error_fails_immediately(self, scheduler, record):
        def _factory():
            raise RuntimeError("no source")

        rec = record(retry(_factory, count=5))
        assert isinstance(rec.errors[0], RuntimeError)

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            retry(lambda: just(1), count=-1)

    def test_logs_retries(self, scheduler, record, caplog):
        factory, _ = _flaky(1, just(1))
        with caplog.at_level(logging.INFO, logger="rivulet.resilience"):
            record(retry(factory))
            scheduler.run()
        assert "Retrying" in caplog.text

    def test_cancel_stops_retrying(self, scheduler, record):
        factory, calls = _flaky(10, just(1))
        rec = record(retry(factory))
        rec.subscription.cancel()
        scheduler.run()
        assert len(calls) == 1
        assert rec.errors == []


class TestRetryWhen:
    def test_notifier_value_triggers_retry(self, scheduler, record):
        factory, calls = _flaky(1, just(7))
        rec = record(retry_when(factory, lambda error, trace: timer(True, 1.0)))
        scheduler.run()
        assert len(calls) == 2
        assert rec.values == [7]
        assert rec.done
        assert scheduler.now() == 1.0

    def test_notifier_receives_error_and_trace(self, scheduler, record):
        seen = []

        def _notifier(error, trace):
            seen.append((error, trace))
            return empty()

        record(retry_when(lambda: throw(ValueError("boom")), _notifier))
        scheduler.run()
        assert len(seen) == 1
        assert str(seen[0][0]) == "boom"

    def test_notifier_error_gives_up(self, scheduler, record):
        rec = record(
            retry_when(lambda: throw(ValueError("a")), lambda error, trace: throw(KeyError("n")))
        )
        scheduler.run()
        error = rec.errors[0]
        assert isinstance(error, RetryError)
        assert [type(e.error) for e in error.errors] == [ValueError, KeyError]

    def test_notifier_completing_completes(self, scheduler, record):
        rec = record(retry_when(lambda: throw(ValueError("a")), lambda error, trace: empty()))
        scheduler.run()
        assert rec.values == []
        assert rec.errors == []
        assert rec.done

    def test_notifier_factory_raising_gives_up(self, scheduler, record):
        def _notifier(error, trace):
            raise RuntimeError("policy")

        rec = record(retry_when(lambda: throw(ValueError("a")), _notifier))
        scheduler.run()
        error = rec.errors[0]
        assert isinstance(error, RetryError)
        assert isinstance(error.errors[-1].error, RuntimeError)

    def test_no_error_no_notifier(self, scheduler, record):
        calls = []

        def _notifier(error, trace):
            calls.append(error)
            return just(True)

        rec = record(retry_when(lambda: from_iterable([1]), _notifier))
        scheduler.run()
        assert rec.values == [1]
        assert calls == []

    def test_periodic_source_restarts(self, scheduler, record):
        def _fail_at_two(i):
            if i >= 2:
                raise ValueError("tick")
            return i

        rec = record(
            retry_when(
                lambda: periodic(1.0, lambda i: i).pipe(map(_fail_at_two)),
                lambda error, trace: timer(True, 1.0),
            ).pipe(take(4))
        )
        scheduler.run()
        assert rec.values == [0, 1, 0, 1]
        assert rec.done
        assert scheduler.now() == 6.0

    def test_logs_notifier_decisions(self, scheduler, record, caplog):
        factory, _ = _flaky(1, just(1))
        with caplog.at_level(logging.INFO, logger="rivulet.resilience"):
            record(retry_when(factory, lambda error, trace: just(True)))
            scheduler.run()
        assert "Notifier requested retry" in caplog.text


class TestRepeat:
    def test_runs_count_times(self, scheduler, record):
        rec = record(repeat(lambda i: just(i), 3))
        scheduler.run()
        assert rec.values == [0, 1, 2]
        assert rec.done

    def test_error_stops_repeating(self, scheduler, record):
        def _factory(i):
            return throw(ValueError("x")) if i == 1 else just(i)

        rec = record(repeat(_factory, 5))
        scheduler.run()
        assert rec.values == [0]
        assert len(rec.errors) == 1
        assert not rec.done

    def test_count_zero_completes_at_once(self, record):
        rec = record(repeat(lambda i: just(i), 0))
        assert rec.done
        assert rec.values == []

    def test_forever_until_cancelled(self, scheduler, record):
        rec = record(repeat(lambda i: timer(i, 1.0)).pipe(take(3)))
        scheduler.run()
        assert rec.values == [0, 1, 2]
        assert scheduler.now() == 3.0


def _failing_producer(sink):
    raise ValueError("fails on subscribe")


def _closed_subject():
    subject = Subject()
    subject.close()
    return subject


class TestSynchronousTermination:
    """Sources that end inside subscribe() must not grow the stack per attempt."""

    def test_retry_many_synchronous_failures(self, record):
        rec = record(retry(lambda: Source(_failing_producer), count=3000))
        assert len(rec.errors) == 1
        error = rec.errors[0]
        assert isinstance(error, RetryError)
        assert len(error.errors) == 3001

    def test_repeat_many_closed_subjects(self, record):
        closed = _closed_subject()
        calls = []

        def _factory(i):
            calls.append(i)
            return closed

        rec = record(repeat(_factory, 3000))
        assert rec.done
        assert len(calls) == 3000

    def test_retry_when_with_synchronous_notifier(self, record):
        calls = []
        closed = _closed_subject()

        def _factory():
            calls.append(1)
            if len(calls) <= 3000:
                return Source(_failing_producer)
            return closed

        rec = record(retry_when(_factory, lambda e, t: Source(lambda s: s.data(True))))
        assert rec.done
        assert rec.errors == []
        assert len(calls) == 3001
