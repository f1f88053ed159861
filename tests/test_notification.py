"""Tests for Notification and materialize/dematerialize."""

from rivulet import Kind, Notification, dematerialize, from_iterable, just, materialize, throw


class TestNotification:
    def test_kinds(self):
        assert Notification.data(1).is_data
        assert Notification.error_of(ValueError()).is_error
        assert Notification.done().is_done

    def test_equality(self):
        assert Notification.data(1) == Notification.data(1)
        assert Notification.data(1) != Notification.data(2)
        assert Notification.done() == Notification.done()

    def test_accept_dispatches_by_kind(self):
        seen = []
        Notification.data(5).accept(seen.append, seen.append, lambda: seen.append("done"))
        Notification.done().accept(seen.append, seen.append, lambda: seen.append("done"))
        assert seen == [5, "done"]

    def test_error_keeps_traceback(self):
        try:
            raise ValueError("boom")
        except ValueError as exc:
            note = Notification.error_of(exc)
        assert note.trace is not None
        assert note.kind is Kind.ERROR

    def test_repr(self):
        assert repr(Notification.data(1)) == "Notification.data(1)"
        assert repr(Notification.done()) == "Notification.done()"


class TestMaterialize:
    def test_values_and_done(self, scheduler, record):
        rec = record(from_iterable([1, 2]).pipe(materialize()))
        scheduler.run()
        assert rec.values == [Notification.data(1), Notification.data(2), Notification.done()]
        assert rec.done

    def test_error_becomes_value(self, scheduler, record):
        error = ValueError("boom")
        rec = record(throw(error).pipe(materialize()))
        scheduler.run()
        assert len(rec.values) == 2
        assert rec.values[0].is_error
        assert rec.values[0].error is error
        assert rec.values[1].is_done
        assert rec.errors == []
        assert rec.done

    def test_dematerialize_restores_events(self, scheduler, record):
        error = KeyError("k")
        notes = [Notification.data("a"), Notification.error_of(error), Notification.data("b")]
        rec = record(from_iterable(notes).pipe(dematerialize()))
        scheduler.run()
        assert rec.values == ["a"]
        assert rec.errors == [error]

    def test_round_trip(self, scheduler, record):
        rec = record(just(7).pipe(materialize(), dematerialize()))
        scheduler.run()
        assert rec.values == [7]
        assert rec.done
