"""Resilience operators — resubscribe to a fresh Source after it ends.

These take a factory rather than a Source, because a cold Source cannot
be resumed after it failed: each attempt calls the factory again and
subscribes to the new Source from scratch. Every subscription to the
resulting Source runs its own attempts with its own failure history.

Failures are kept in order as ErrorAndTrace pairs; when the operator gives
up it fails with one RetryError carrying all of them.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Callable, TypeVar

from rivulet.errors import ErrorAndTrace, RetryError
from rivulet.source import CompositeSubscription, Sink, Source, Trampoline

logger = logging.getLogger("rivulet.resilience")

T = TypeVar("T")


def retry(factory: Callable[[], Source[T]], count: int | None = None) -> Source[T]:
    """Resubscribe to factory() after every error, up to `count` times.

    Data from failed attempts is forwarded as it arrives. With count=None
    it retries forever; once the retries are used up it fails with a
    RetryError holding every captured failure (count + 1 of them).
    """
    if count is not None and count < 0:
        raise ValueError(f"Invalid retry count: {count!r}")

    def _produce(sink: Sink[T]) -> CompositeSubscription:
        upstream = CompositeSubscription()
        errors: list[ErrorAndTrace] = []

        def _subscribe_attempt() -> None:
            if sink.closed:
                return
            try:
                source = factory()
            except Exception as exc:
                sink.error(exc)
                return
            upstream.set("source", source.subscribe(sink.data, _on_error, sink.done))

        _attempt = Trampoline(_subscribe_attempt)

        def _on_error(error: BaseException) -> None:
            upstream.discard("source")
            errors.append(ErrorAndTrace.capture(error))
            if count is not None and len(errors) > count:
                sink.error(RetryError(errors))
                return
            logger.info("Retrying after %r (attempt %d)", error, len(errors) + 1)
            _attempt()

        _attempt()
        return upstream

    return Source(_produce)


def retry_when(
    factory: Callable[[], Source[T]],
    notifier_factory: Callable[[BaseException, TracebackType | None], Source[Any]],
) -> Source[T]:
    """Let a notifier Source decide whether and when to retry.

    After each error, notifier_factory(error, trace) is subscribed to:
    - its first value, whatever it is, triggers the retry;
    - an error fails the operator with a RetryError holding every captured
      failure, the notifier's own error last;
    - completing without a value completes the operator normally.
    """

    def _produce(sink: Sink[T]) -> CompositeSubscription:
        upstream = CompositeSubscription()
        errors: list[ErrorAndTrace] = []
        waiting = [False]

        def _subscribe_attempt() -> None:
            if sink.closed:
                return
            try:
                source = factory()
            except Exception as exc:
                sink.error(exc)
                return
            upstream.set("source", source.subscribe(sink.data, _on_error, sink.done))

        _attempt = Trampoline(_subscribe_attempt)

        def _give_up(error: BaseException) -> None:
            errors.append(ErrorAndTrace.capture(error))
            sink.error(RetryError(errors))

        def _on_signal(_: Any) -> None:
            if not waiting[0]:
                return
            waiting[0] = False
            upstream.remove("notifier")
            logger.info("Notifier requested retry (attempt %d)", len(errors) + 1)
            _attempt()

        def _on_notifier_error(error: BaseException) -> None:
            if waiting[0]:
                waiting[0] = False
                _give_up(error)

        def _on_notifier_done() -> None:
            if waiting[0]:
                waiting[0] = False
                logger.info("Notifier completed without retrying; completing")
                sink.done()

        def _on_error(error: BaseException) -> None:
            upstream.discard("source")
            errors.append(ErrorAndTrace.capture(error))
            try:
                notifier = notifier_factory(error, error.__traceback__)
            except Exception as exc:
                _give_up(exc)
                return
            waiting[0] = True
            subscription = notifier.subscribe(_on_signal, _on_notifier_error, _on_notifier_done)
            if waiting[0]:
                upstream.set("notifier", subscription)
            else:
                subscription.cancel()

        _attempt()
        return upstream

    return Source(_produce)


def repeat(factory: Callable[[int], Source[T]], count: int | None = None) -> Source[T]:
    """Run factory(0), factory(1), ... back to back, `count` runs in total.

    The next run starts when the previous one completes; an error ends
    everything at once. count=None repeats forever.
    """
    if count is not None and count < 0:
        raise ValueError(f"Invalid repeat count: {count!r}")

    def _produce(sink: Sink[T]) -> CompositeSubscription:
        upstream = CompositeSubscription()
        index = [0]

        def _subscribe_next() -> None:
            if sink.closed:
                return
            run = index[0]
            if count is not None and run >= count:
                sink.done()
                return
            index[0] += 1
            if run:
                logger.info("Repeating (run %d)", run + 1)
            try:
                source = factory(run)
            except Exception as exc:
                sink.error(exc)
                return
            upstream.set("source", source.subscribe(sink.data, sink.error, _next))

        _next = Trampoline(_subscribe_next)
        _next()
        return upstream

    return Source(_produce)
