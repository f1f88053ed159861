"""rivulet: push-based reactive streams with joins, timing and retries."""

from importlib.metadata import version as _version

__version__ = _version("rivulet")

from rivulet.scheduler import (
    AsyncioScheduler,
    Scheduler,
    VirtualTimeScheduler,
    get_scheduler,
    set_scheduler,
)
from rivulet.errors import ErrorAndTrace, RetryError, SourceTimeoutError, SubjectClosedError
from rivulet.source import CompositeSubscription, Sink, Source, Subscription, SubscriptionState
from rivulet.subject import GroupedSource, Subject
from rivulet.notification import Kind, Notification, dematerialize, materialize
from rivulet.sources import defer, empty, from_iterable, just, never, periodic, range_, throw, timer
from rivulet.joins import (
    combine_latest,
    concat,
    concat_eager,
    concat_map,
    flat_map,
    fork_join,
    merge,
    race,
    sequence_equal,
    switch_latest,
    switch_map,
    with_latest_from,
    zip,
)
from rivulet.temporal import (
    TimeInterval,
    Timestamped,
    buffer,
    buffer_count,
    buffer_test,
    buffer_time,
    debounce,
    debounce_time,
    delay,
    interval,
    sample,
    sample_time,
    skip_until,
    take_until,
    throttle,
    throttle_time,
    time_interval,
    timeout,
    timestamp,
    window,
    window_count,
    window_test,
    window_time,
)
from rivulet.resilience import repeat, retry, retry_when
from rivulet.stateful import (
    default_if_empty,
    distinct,
    distinct_unique,
    exhaust_map,
    group_by,
    on_error_resume,
    on_error_resume_next,
    on_error_return,
    on_error_return_with,
    pairwise,
    scan,
    switch_if_empty,
)
from rivulet.basic import filter, map, take
# textual NOT auto-imported — opt-in only

__all__ = [
    "Source",
    "Subscription",
    "SubscriptionState",
    "Sink",
    "CompositeSubscription",
    "Subject",
    "GroupedSource",
    "Notification",
    "Kind",
    "materialize",
    "dematerialize",
    "Scheduler",
    "VirtualTimeScheduler",
    "AsyncioScheduler",
    "set_scheduler",
    "get_scheduler",
    "ErrorAndTrace",
    "RetryError",
    "SourceTimeoutError",
    "SubjectClosedError",
    "just",
    "from_iterable",
    "empty",
    "never",
    "throw",
    "range_",
    "timer",
    "periodic",
    "defer",
    "combine_latest",
    "zip",
    "fork_join",
    "merge",
    "concat",
    "concat_eager",
    "race",
    "switch_latest",
    "switch_map",
    "flat_map",
    "concat_map",
    "with_latest_from",
    "sequence_equal",
    "debounce",
    "debounce_time",
    "throttle",
    "throttle_time",
    "buffer",
    "buffer_time",
    "buffer_test",
    "buffer_count",
    "window",
    "window_time",
    "window_test",
    "window_count",
    "sample",
    "sample_time",
    "interval",
    "delay",
    "time_interval",
    "timestamp",
    "timeout",
    "take_until",
    "skip_until",
    "TimeInterval",
    "Timestamped",
    "retry",
    "retry_when",
    "repeat",
    "distinct_unique",
    "distinct",
    "group_by",
    "pairwise",
    "scan",
    "exhaust_map",
    "on_error_resume",
    "on_error_resume_next",
    "on_error_return",
    "on_error_return_with",
    "switch_if_empty",
    "default_if_empty",
    "map",
    "filter",
    "take",
]
