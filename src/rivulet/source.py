"""Push-based sources and the subscriptions that connect them to listeners.

A Source wraps a producer function. Each subscribe() call runs the
producer with a fresh Sink, so every subscription gets its own run with
its own state. The producer returns whatever must be torn down when the
subscription ends: an upstream Subscription, a CompositeSubscription, a
plain disposer function, or None.

Operators are plain functions Source -> Source; pipe() applies them left
to right:
    source.pipe(debounce_time(0.3), pairwise())
"""

from __future__ import annotations

import itertools
from collections import deque
from enum import Enum
from functools import partial
from typing import Any, Callable, Generic, Hashable, TypeVar, Union

T = TypeVar("T")

Disposer = Callable[[], None]
OnData = Callable[[T], None]
OnError = Callable[[BaseException], None]
OnDone = Callable[[], None]
Teardown = Union["Subscription", "CompositeSubscription", Disposer, None]


def _noop() -> None:
    pass


def dispose(teardown: Any) -> None:
    """Release a teardown of any supported shape."""
    if teardown is None:
        return
    cancel = getattr(teardown, "cancel", None)
    if cancel is not None:
        cancel()
    else:
        teardown()


def _forward(teardown: Any, method: str) -> None:
    fn = getattr(teardown, method, None)
    if fn is not None:
        fn()


class SubscriptionState(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


_ACTIVE = SubscriptionState.ACTIVE
_PAUSED = SubscriptionState.PAUSED


class Subscription:
    """The live relationship between one listener and one Source.

    While paused, events are queued here and released in order on
    resume(). A single upstream (another Subscription or a cold producer)
    is paused too, so it stops producing. An operator that owns several
    upstreams keeps running, and what it emits queues here in arrival order.
    """

    __slots__ = ("_state", "_teardown", "_queued", "_ending")

    def __init__(self) -> None:
        self._state = _ACTIVE
        self._teardown: Teardown = None
        self._queued: deque[Callable[[], None]] = deque()
        self._ending = False  # terminal event accepted, maybe still queued

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_paused(self) -> bool:
        return self._state is _PAUSED

    @property
    def is_closed(self) -> bool:
        return self._state is SubscriptionState.CANCELLED or self._state is SubscriptionState.COMPLETED

    def cancel(self) -> None:
        """Stop receiving events and cancel everything upstream. Idempotent."""
        if self.is_closed:
            return
        self._state = SubscriptionState.CANCELLED
        self._queued.clear()
        self._release()

    def pause(self) -> None:
        if self._state is _ACTIVE:
            self._state = _PAUSED
            _forward(self._teardown, "pause")

    def resume(self) -> None:
        if self._state is not _PAUSED:
            return
        self._state = _ACTIVE
        while self._queued and self._state is _ACTIVE:
            self._queued.popleft()()
        if self._state is _ACTIVE:
            _forward(self._teardown, "resume")

    def _attach(self, teardown: Teardown) -> None:
        if self.is_closed:
            dispose(teardown)
            return
        self._teardown = teardown
        if self._state is _PAUSED:
            _forward(teardown, "pause")

    def _complete(self) -> None:
        self._state = SubscriptionState.COMPLETED
        self._release()

    def _release(self) -> None:
        teardown, self._teardown = self._teardown, None
        dispose(teardown)

    def __repr__(self) -> str:
        return f"Subscription({self._state.value})"


class Sink(Generic[T]):
    """Producer-facing end of a subscription.

    Guarantees at most one terminal event, nothing after it, and nothing
    at all once the subscription is cancelled.
    """

    __slots__ = ("_subscription", "_on_data", "_on_error", "_on_done")

    def __init__(
        self,
        subscription: Subscription,
        on_data: OnData[T],
        on_error: OnError,
        on_done: OnDone,
    ) -> None:
        self._subscription = subscription
        self._on_data = on_data
        self._on_error = on_error
        self._on_done = on_done

    @property
    def closed(self) -> bool:
        sub = self._subscription
        return sub._ending or sub.is_closed

    def data(self, value: T) -> None:
        sub = self._subscription
        if sub._ending:
            return
        if sub._state is _ACTIVE:
            self._on_data(value)
        elif sub._state is _PAUSED:
            sub._queued.append(partial(self._on_data, value))

    def error(self, error: BaseException) -> None:
        self._terminate(partial(self._on_error, error))

    def done(self) -> None:
        self._terminate(self._on_done)

    def _terminate(self, callback: Callable[[], None]) -> None:
        sub = self._subscription
        if sub._ending or sub.is_closed:
            return
        sub._ending = True
        deliver = partial(self._deliver_terminal, callback)
        if sub._state is _PAUSED:
            sub._queued.append(deliver)
        else:
            deliver()

    def _deliver_terminal(self, callback: Callable[[], None]) -> None:
        self._subscription._complete()
        callback()


class CompositeSubscription:
    """Keyed registry of the upstream subscriptions one operator run owns.

    Cancelling the registry cancels every member. Members may be
    Subscriptions, scheduler handles or disposer functions. The registry
    is never paused: see Subscription.
    """

    __slots__ = ("_members", "_auto_keys", "_cancelled")

    def __init__(self) -> None:
        self._members: dict[Hashable, Any] = {}
        self._auto_keys = itertools.count()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add(self, member: Any) -> Hashable | None:
        """Register under a fresh key. Returns the key (None if not registered)."""
        key = ("auto", next(self._auto_keys))
        return key if self.set(key, member) else None

    def set(self, key: Hashable, member: Any) -> bool:
        """Put member in slot `key`, cancelling whatever held the slot before.

        Closed subscriptions are ignored; after cancel() every new member
        is cancelled immediately.
        """
        if isinstance(member, Subscription) and member.is_closed:
            return False
        if self._cancelled:
            dispose(member)
            return False
        previous = self._members.pop(key, None)
        if previous is not None and previous is not member:
            dispose(previous)
        self._members[key] = member
        return True

    def get(self, key: Hashable) -> Any:
        return self._members.get(key)

    def remove(self, key: Hashable) -> None:
        """Cancel and forget the member in slot `key`, if any."""
        dispose(self._members.pop(key, None))

    def discard(self, key: Hashable) -> None:
        """Forget the member in slot `key` without cancelling it."""
        self._members.pop(key, None)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        members = list(self._members.values())
        self._members.clear()
        for member in members:
            dispose(member)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)


class Trampoline:
    """Calls `step` on request; requests made while it runs loop instead of nesting.

    Resubscribing operators (concat, retry, repeat) request their next
    step from the previous subscription's terminal callback. A source that
    terminates inside subscribe() would otherwise add a stack frame per
    step.
    """

    __slots__ = ("_step", "_running", "_pending")

    def __init__(self, step: Callable[[], None]) -> None:
        self._step = step
        self._running = False
        self._pending = False

    def __call__(self) -> None:
        self._pending = True
        if self._running:
            return
        self._running = True
        try:
            while self._pending:
                self._pending = False
                self._step()
        finally:
            self._running = False


class Source(Generic[T]):
    """A push-based asynchronous sequence: Data*, then one Error or Done."""

    __slots__ = ("_producer", "_broadcast")

    def __init__(self, producer: Callable[[Sink[T]], Teardown], *, broadcast: bool = False) -> None:
        self._producer = producer
        self._broadcast = broadcast

    @property
    def is_broadcast(self) -> bool:
        return self._broadcast

    def subscribe(
        self,
        on_data: OnData[T],
        on_error: OnError,
        on_done: OnDone | None = None,
    ) -> Subscription:
        """Start a run of this Source. The error callback is mandatory."""
        subscription = Subscription()
        sink = Sink(subscription, on_data, on_error, on_done or _noop)
        try:
            teardown = self._producer(sink)
        except Exception as exc:
            sink.error(exc)
            return subscription
        subscription._attach(teardown)
        return subscription

    def pipe(self, *operators: Callable[[Source[Any]], Source[Any]]) -> Source[Any]:
        """Apply operators left to right."""
        source: Source[Any] = self
        for operator in operators:
            source = operator(source)
        return source

    def __repr__(self) -> str:
        kind = "broadcast" if self._broadcast else "cold"
        return f"{type(self).__name__}({kind})"
