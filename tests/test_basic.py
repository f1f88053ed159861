"""Tests for map, filter and take."""

import pytest

from rivulet import Subject, filter, from_iterable, map, periodic, take


class TestMap:
    def test_transforms_values(self, record):
        subject = Subject()
        rec = record(subject.pipe(map(lambda v: v * 2)))
        subject.add(3)
        subject.add(5)
        assert rec.values == [6, 10]

    def test_chained_maps(self, record):
        subject = Subject()
        rec = record(subject.pipe(map(lambda v: v + 1), map(lambda v: v * 10)))
        subject.add(2)
        assert rec.values == [30]

    def test_mapper_error_ends_stream(self, record):
        subject = Subject()
        rec = record(subject.pipe(map(lambda v: 1 / v)))
        subject.add(0)
        assert isinstance(rec.errors[0], ZeroDivisionError)
        assert not subject.has_listener


class TestFilter:
    def test_passes_matching_values(self, record):
        subject = Subject()
        rec = record(subject.pipe(filter(lambda v: v % 2 == 0)))
        for v in (1, 2, 3, 4):
            subject.add(v)
        assert rec.values == [2, 4]

    def test_filter_then_map(self, record):
        subject = Subject()
        rec = record(subject.pipe(filter(lambda v: v > 0), map(lambda v: v * 100)))
        subject.add(-1)
        subject.add(2)
        assert rec.values == [200]

    def test_predicate_error_ends_stream(self, record):
        subject = Subject()
        rec = record(subject.pipe(filter(lambda v: v.missing)))
        subject.add(1)
        assert isinstance(rec.errors[0], AttributeError)


class TestTake:
    def test_takes_first_values_then_completes(self, scheduler, record):
        rec = record(from_iterable([1, 2, 3, 4]).pipe(take(2)))
        scheduler.run()
        assert rec.values == [1, 2]
        assert rec.done

    def test_cancels_upstream(self, record):
        subject = Subject()
        rec = record(subject.pipe(take(1)))
        subject.add("x")
        assert rec.done
        assert not subject.has_listener

    def test_take_zero_completes_immediately(self, record):
        subject = Subject()
        rec = record(subject.pipe(take(0)))
        assert rec.done
        assert not subject.has_listener

    def test_stops_endless_source(self, scheduler, record):
        rec = record(periodic(1.0).pipe(take(3)))
        scheduler.run()
        assert len(rec.values) == 3

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            take(-1)
