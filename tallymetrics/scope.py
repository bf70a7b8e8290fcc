"""Scopes: prefixed, tagged namespaces that create metrics and report them.

Durations, including the report interval, are integer nanoseconds.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .reporter import (
    CAPABILITIES_NONE,
    NULL_STATS_REPORTER,
    BaseStatsReporter,
    CachedStatsReporter,
    Capabilities,
    StatsReporter,
)
from .sanitize import SanitizeOptions, Sanitizer
from .snapshot import (
    CounterSnapshot,
    GaugeSnapshot,
    HistogramSnapshot,
    Snapshot,
    TimerSnapshot,
    key_for_prefixed_string_maps,
    merge_right_tags,
)
from .stats import (
    MILLISECOND,
    SECOND,
    BucketCache,
    Counter,
    DurationBuckets,
    Gauge,
    Histogram,
    HistogramType,
    Timer,
)

DEFAULT_SEPARATOR = "."

DEFAULT_SCOPE_BUCKETS = DurationBuckets(
    [
        0,
        10 * MILLISECOND,
        25 * MILLISECOND,
        50 * MILLISECOND,
        75 * MILLISECOND,
        100 * MILLISECOND,
        200 * MILLISECOND,
        300 * MILLISECOND,
        400 * MILLISECOND,
        500 * MILLISECOND,
        600 * MILLISECOND,
        800 * MILLISECOND,
        1 * SECOND,
        2 * SECOND,
        5 * SECOND,
    ]
)


@dataclass
class ScopeOptions:
    """Options for building a root scope.

    Give either ``reporter`` or ``cached_reporter``; with neither, metrics are
    only kept in memory.
    """

    tags: Optional[Mapping[str, str]] = None
    prefix: str = ""
    reporter: Optional[StatsReporter] = None
    cached_reporter: Optional[CachedStatsReporter] = None
    separator: str = ""
    default_buckets: Any = None
    sanitize_options: Optional[SanitizeOptions] = None


def _copy_and_sanitize(
    sanitizer: Sanitizer, tags: Optional[Mapping[str, str]]
) -> dict[str, str]:
    return {sanitizer.key(k): sanitizer.value(v) for k, v in (tags or {}).items()}


class Scope:
    """A namespace that hands out metrics sharing a name prefix and a set of tags.

    Metrics are created once per name and reused. A root scope owns a
    registry of all its sub-scopes and reports them together.
    """

    def __init__(
        self,
        *,
        prefix: str,
        separator: str,
        tags: Optional[Mapping[str, str]],
        reporter: Optional[StatsReporter],
        cached_reporter: Optional[CachedStatsReporter],
        base_reporter: Optional[BaseStatsReporter],
        default_buckets: Any,
        sanitizer: Sanitizer,
        bucket_cache: BucketCache,
        registry: Optional[ScopeRegistry] = None,
        root: bool = False,
    ) -> None:
        self.prefix = prefix
        self.separator = separator
        self.tags = tags if tags is not None else {}
        self._reporter = reporter
        self._cached_reporter = cached_reporter
        self._base_reporter = base_reporter
        self._default_buckets = default_buckets
        self._sanitizer = sanitizer
        self._bucket_cache = bucket_cache
        self._root = root

        self._lock = threading.Lock()
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._timers: dict[str, Timer] = {}
        self._histograms: dict[str, Histogram] = {}

        self._close_lock = threading.Lock()
        self._closed = False
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.registry = registry if registry is not None else ScopeRegistry(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> Scope:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # Metric creation

    def counter(self, name: str) -> Counter:
        """Return the counter with this name, creating it on first use."""
        name = self._sanitizer.name(name)
        with self._lock:
            existing = self._counters.get(name)
            if existing is not None:
                return existing
            cached = None
            if self._cached_reporter is not None:
                cached = self._cached_reporter.allocate_counter(
                    self.fully_qualified_name(name), self.tags
                )
            counter = self._counters[name] = Counter(cached)
            return counter

    def gauge(self, name: str) -> Gauge:
        """Return the gauge with this name, creating it on first use."""
        name = self._sanitizer.name(name)
        with self._lock:
            existing = self._gauges.get(name)
            if existing is not None:
                return existing
            cached = None
            if self._cached_reporter is not None:
                cached = self._cached_reporter.allocate_gauge(
                    self.fully_qualified_name(name), self.tags
                )
            gauge = self._gauges[name] = Gauge(cached)
            return gauge

    def timer(self, name: str) -> Timer:
        """Return the timer with this name, creating it on first use."""
        name = self._sanitizer.name(name)
        with self._lock:
            existing = self._timers.get(name)
            if existing is not None:
                return existing
            fqn = self.fully_qualified_name(name)
            cached = None
            if self._cached_reporter is not None:
                cached = self._cached_reporter.allocate_timer(fqn, self.tags)
            timer = self._timers[name] = Timer(fqn, self.tags, self._reporter, cached)
            return timer

    def histogram(self, name: str, buckets: Any = None) -> Histogram:
        """Return the histogram with this name, creating it on first use.

        Without ``buckets`` the scope's default buckets are used. Duration
        buckets make a duration histogram, value buckets a value histogram.
        """
        name = self._sanitizer.name(name)
        with self._lock:
            existing = self._histograms.get(name)
            if existing is not None:
                return existing
            if buckets is None:
                buckets = self._default_buckets
            htype = (
                HistogramType.DURATION
                if isinstance(buckets, DurationBuckets)
                else HistogramType.VALUE
            )
            fqn = self.fully_qualified_name(name)
            cached = None
            if self._cached_reporter is not None:
                cached = self._cached_reporter.allocate_histogram(fqn, self.tags, buckets)
            histogram = Histogram(
                htype,
                fqn,
                self.tags,
                self._reporter,
                self._bucket_cache.get(htype, buckets),
                cached,
            )
            self._histograms[name] = histogram
            return histogram

    # Child scopes

    def tagged(self, tags: Optional[Mapping[str, str]]) -> Scope:
        """Return a child scope with these tags added to the current ones."""
        return self.registry.subscope(
            self, self.prefix, _copy_and_sanitize(self._sanitizer, tags)
        )

    def sub_scope(self, prefix: str) -> Scope:
        """Return a child scope with a further name prefix."""
        prefix = self._sanitizer.name(prefix)
        return self.registry.subscope(self, self.fully_qualified_name(prefix), None)

    def _child(self, prefix: str, tags: Optional[Mapping[str, str]]) -> Scope:
        return Scope(
            prefix=prefix,
            separator=self.separator,
            tags=tags,
            reporter=self._reporter,
            cached_reporter=self._cached_reporter,
            base_reporter=self._base_reporter,
            default_buckets=self._default_buckets,
            sanitizer=self._sanitizer,
            bucket_cache=self._bucket_cache,
            registry=self.registry,
        )

    def capabilities(self) -> Capabilities:
        if self._base_reporter is None:
            return CAPABILITIES_NONE
        return self._base_reporter.capabilities()

    def snapshot(self) -> Snapshot:
        """Copy the unreported values of every scope in this scope's registry."""
        snap = Snapshot()
        self.registry.for_each_scope(lambda s: s._snapshot_into(snap))
        return snap

    def _snapshot_into(self, snap: Snapshot) -> None:
        tags = dict(self.tags)
        with self._lock:
            counters = list(self._counters.items())
            gauges = list(self._gauges.items())
            timers = list(self._timers.items())
            histograms = list(self._histograms.items())
        for key, c in counters:
            name = self.fully_qualified_name(key)
            snap.counters[key_for_prefixed_string_maps(name, tags)] = CounterSnapshot(
                name, tags, c.snapshot()
            )
        for key, g in gauges:
            name = self.fully_qualified_name(key)
            snap.gauges[key_for_prefixed_string_maps(name, tags)] = GaugeSnapshot(
                name, tags, g.snapshot()
            )
        for key, t in timers:
            name = self.fully_qualified_name(key)
            snap.timers[key_for_prefixed_string_maps(name, tags)] = TimerSnapshot(
                name, tags, t.snapshot()
            )
        for key, h in histograms:
            name = self.fully_qualified_name(key)
            snap.histograms[key_for_prefixed_string_maps(name, tags)] = HistogramSnapshot(
                name, tags, h.snapshot_values(), h.snapshot_durations()
            )

    # Reporting

    def report(self, reporter: StatsReporter) -> None:
        """Send this scope's aggregated counters, gauges and histograms to ``reporter``."""
        with self._lock:
            counters = list(self._counters.items())
            gauges = list(self._gauges.items())
            histograms = list(self._histograms.items())
        for name, counter in counters:
            counter.report(self.fully_qualified_name(name), self.tags, reporter)
        for name, gauge in gauges:
            gauge.report(self.fully_qualified_name(name), self.tags, reporter)
        for name, histogram in histograms:
            histogram.report(self.fully_qualified_name(name), self.tags, reporter)

    def cached_report(self) -> None:
        """Send aggregated values through the pre-allocated reporter handles."""
        with self._lock:
            counters = list(self._counters.values())
            gauges = list(self._gauges.values())
            histograms = list(self._histograms.values())
        for counter in counters:
            counter.cached_report()
        for gauge in gauges:
            gauge.cached_report()
        for histogram in histograms:
            histogram.cached_report()

    def report_loop_run(self) -> None:
        """Report the registry once, unless this scope is closed."""
        if self._closed:
            return
        self.report_registry()

    def report_registry(self) -> None:
        """Report every scope in the registry and flush the reporter."""
        if self._reporter is not None:
            self.registry.report(self._reporter)
            self._reporter.flush()
        elif self._cached_reporter is not None:
            self.registry.cached_report()
            self._cached_reporter.flush()

    def _start_report_loop(self, interval: int) -> None:
        seconds = interval / SECOND

        def loop() -> None:
            while not self._done.wait(seconds):
                self.report_loop_run()

        self._thread = threading.Thread(target=loop, name="scope-report-loop", daemon=True)
        self._thread.start()

    def fully_qualified_name(self, name: str) -> str:
        if not self.prefix:
            return name
        return self.prefix + self.separator + name

    def close(self) -> None:
        """Close the scope; a root scope reports a last time and closes its reporter.

        Closing twice does nothing.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._done.set()
        if self._root:
            self.report_registry()
            closer = getattr(self._base_reporter, "close", None)
            if callable(closer):
                closer()

    def _clear_metrics(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._timers.clear()
            self._histograms.clear()


class ScopeRegistry:
    """All scopes derived from one root scope, keyed by prefix and tags."""

    def __init__(self, root: Scope) -> None:
        self.root = root
        self._lock = threading.Lock()
        self._subscopes: dict[str, Scope] = {
            key_for_prefixed_string_maps(root.prefix, root.tags): root
        }

    def _items(self) -> list[tuple[str, Scope]]:
        with self._lock:
            return list(self._subscopes.items())

    def _remove(self, key: str) -> None:
        with self._lock:
            self._subscopes.pop(key, None)

    def report(self, reporter: StatsReporter) -> None:
        """Report every scope; closed scopes are reported once more and dropped."""
        try:
            for key, scope in self._items():
                scope.report(reporter)
                if scope.closed:
                    self._remove(key)
                    scope._clear_metrics()
        finally:
            self._purge_if_root_closed()

    def cached_report(self) -> None:
        """Report every scope through cached handles; closed scopes are dropped."""
        try:
            for key, scope in self._items():
                scope.cached_report()
                if scope.closed:
                    self._remove(key)
                    scope._clear_metrics()
        finally:
            self._purge_if_root_closed()

    def for_each_scope(self, fn: Callable[[Scope], None]) -> None:
        for _, scope in self._items():
            fn(scope)

    def subscope(
        self, parent: Scope, prefix: str, tags: Optional[Mapping[str, str]]
    ) -> Scope:
        """Return the scope for this prefix and merged tags, creating it if needed.

        Once the root or the parent is closed, the no-op scope is returned.
        """
        if self.root.closed or parent.closed:
            return NOOP_SCOPE
        key = key_for_prefixed_string_maps(prefix, parent.tags, tags)
        with self._lock:
            existing = self._subscopes.get(key)
            if existing is not None:
                return existing
            scope = parent._child(prefix, merge_right_tags(parent.tags, tags))
            self._subscopes[key] = scope
            return scope

    def _purge_if_root_closed(self) -> None:
        if not self.root.closed:
            return
        with self._lock:
            scopes = list(self._subscopes.values())
            self._subscopes.clear()
        for scope in scopes:
            scope.close()
            scope._clear_metrics()


def new_root_scope(options: Optional[ScopeOptions] = None, interval: int = 0) -> Scope:
    """Build a root scope; a positive ``interval`` (nanoseconds) reports periodically.

    The returned scope is also its own closer: call ``close()`` or use it
    as a context manager.
    """
    options = options or ScopeOptions()
    if options.sanitize_options is not None:
        sanitizer = Sanitizer.from_options(options.sanitize_options)
    else:
        sanitizer = Sanitizer.no_op()
    separator = options.separator or DEFAULT_SEPARATOR
    base_reporter: Optional[BaseStatsReporter] = (
        options.reporter if options.reporter is not None else options.cached_reporter
    )
    default_buckets = options.default_buckets or DEFAULT_SCOPE_BUCKETS

    scope = Scope(
        prefix=sanitizer.name(options.prefix),
        separator=sanitizer.name(separator),
        tags=_copy_and_sanitize(sanitizer, options.tags),
        reporter=options.reporter,
        cached_reporter=options.cached_reporter,
        base_reporter=base_reporter,
        default_buckets=default_buckets,
        sanitizer=sanitizer,
        bucket_cache=BucketCache(),
        root=True,
    )
    if interval > 0:
        scope._start_report_loop(interval)
    return scope


def new_test_scope(prefix: str, tags: Optional[Mapping[str, str]] = None) -> Scope:
    """A root scope without a reporter, meant to be inspected with ``snapshot()``."""
    return new_root_scope(ScopeOptions(prefix=prefix, tags=tags), 0)


NOOP_SCOPE = new_root_scope(ScopeOptions(reporter=NULL_STATS_REPORTER), 0)