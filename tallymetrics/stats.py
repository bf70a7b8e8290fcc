"""Counters, gauges, timers, histograms and the buckets histograms use.

Durations are integer nanoseconds.
"""

from __future__ import annotations

import bisect
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Protocol

from .reporter import (
    CAPABILITIES_REPORTING_TAGGING,
    CachedCount,
    CachedGauge,
    CachedHistogram,
    CachedHistogramBucket,
    CachedTimer,
    Capabilities,
    StatsReporter,
)

NANOSECOND = 1
MICROSECOND = 1_000
MILLISECOND = 1_000_000
SECOND = 1_000_000_000

MAX_DURATION = 2**63 - 1
MIN_DURATION = -(2**63)
MAX_FLOAT = sys.float_info.max


def _now() -> int:
    return time.monotonic_ns()


class _Buckets(tuple):
    """An immutable, typed sequence of bucket bounds."""

    def __new__(cls, bounds: Iterable = ()):
        return super().__new__(cls, (cls._coerce(b) for b in bounds))

    @staticmethod
    def _coerce(bound):
        return bound

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and tuple.__eq__(self, other)

    def __ne__(self, other: object) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return hash((type(self).__name__, tuple(self)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self)!r})"


class ValueBuckets(_Buckets):
    """Histogram buckets given as float values."""

    @staticmethod
    def _coerce(bound):
        return float(bound)

    def as_values(self) -> list[float]:
        return list(self)

    def as_durations(self) -> list[int]:
        return [int(v * SECOND) for v in self]


class DurationBuckets(_Buckets):
    """Histogram buckets given as durations in nanoseconds."""

    @staticmethod
    def _coerce(bound):
        return int(bound)

    def as_values(self) -> list[float]:
        return [d / SECOND for d in self]

    def as_durations(self) -> list[int]:
        return list(self)


class HistogramType(Enum):
    VALUE = "value"
    DURATION = "duration"


class StopwatchRecorder(Protocol):
    def record_stopwatch(self, start: int) -> None: ...


@dataclass(frozen=True)
class Stopwatch:
    """Records the time elapsed since ``start`` to its recorder on stop."""

    start_time: int
    recorder: StopwatchRecorder

    def stop(self) -> None:
        self.recorder.record_stopwatch(self.start_time)

    def __enter__(self) -> Stopwatch:
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


class Counter:
    """A counter that reports the delta accumulated since its last report."""

    def __init__(self, cached_count: Optional[CachedCount] = None) -> None:
        self._lock = threading.Lock()
        self._prev = 0
        self._curr = 0
        self._cached_count = cached_count

    def inc(self, delta: int = 1) -> None:
        with self._lock:
            self._curr += delta

    def value(self) -> int:
        """Return the delta since the last call and mark it as reported."""
        with self._lock:
            delta = self._curr - self._prev
            self._prev = self._curr
            return delta

    def report(self, name: str, tags: Mapping[str, str], reporter: StatsReporter) -> None:
        delta = self.value()
        if delta:
            reporter.report_counter(name, tags, delta)

    def cached_report(self) -> None:
        delta = self.value()
        if delta:
            self._cached_count.report_count(delta)

    def snapshot(self) -> int:
        with self._lock:
            return self._curr - self._prev


class Gauge:
    """A gauge that reports its last value if it was updated since the last report."""

    def __init__(self, cached_gauge: Optional[CachedGauge] = None) -> None:
        self._lock = threading.Lock()
        self._updated = False
        self._curr = 0.0
        self._cached_gauge = cached_gauge

    def update(self, value: float) -> None:
        with self._lock:
            self._curr = float(value)
            self._updated = True

    def value(self) -> float:
        with self._lock:
            return self._curr

    def _take_update(self) -> bool:
        with self._lock:
            updated, self._updated = self._updated, False
            return updated

    def report(self, name: str, tags: Mapping[str, str], reporter: StatsReporter) -> None:
        if self._take_update():
            reporter.report_gauge(name, tags, self.value())

    def cached_report(self) -> None:
        if self._take_update():
            self._cached_gauge.report_gauge(self.value())

    def snapshot(self) -> float:
        return self.value()


class _TimerNoReporterSink(StatsReporter):
    """Keeps timer values in memory when no reporter is configured."""

    def __init__(self, timer: Timer) -> None:
        self._timer = timer
        self.flushes = 0

    def report_counter(self, name, tags, value):
        pass

    def report_gauge(self, name, tags, value):
        pass

    def report_timer(self, name, tags, interval):
        self._timer._append_unreported(interval)

    def report_histogram_value_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ):
        pass

    def report_histogram_duration_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ):
        pass

    def capabilities(self) -> Capabilities:
        return CAPABILITIES_REPORTING_TAGGING

    def flush(self) -> None:
        """Count the flush; recorded values stay in memory for snapshots."""
        self.flushes += 1


class Timer:
    """A timer that reports every recorded interval immediately."""

    def __init__(
        self,
        name: str,
        tags: Mapping[str, str],
        reporter: Optional[StatsReporter] = None,
        cached_timer: Optional[CachedTimer] = None,
    ) -> None:
        self.name = name
        self.tags = tags
        self._cached_timer = cached_timer
        self._lock = threading.Lock()
        self._unreported: list[int] = []
        self._reporter = reporter if reporter is not None else _TimerNoReporterSink(self)

    def _append_unreported(self, interval: int) -> None:
        with self._lock:
            self._unreported.append(interval)

    def record(self, interval: int) -> None:
        if self._cached_timer is not None:
            self._cached_timer.report_timer(interval)
        else:
            self._reporter.report_timer(self.name, self.tags, interval)

    def start(self) -> Stopwatch:
        return Stopwatch(_now(), self)

    def record_stopwatch(self, start: int) -> None:
        self.record(_now() - start)

    def snapshot(self) -> list[int]:
        with self._lock:
            return list(self._unreported)


def _require_buckets(buckets: Any) -> None:
    if not isinstance(buckets, (ValueBuckets, DurationBuckets)):
        raise TypeError(f"unexpected bucket type: {type(buckets).__name__}")


@dataclass(frozen=True)
class BucketStorage:
    """The bucket specification and the upper bounds derived from it."""

    buckets: Any
    value_upper_bounds: tuple[float, ...]
    duration_upper_bounds: tuple[int, ...]

    @classmethod
    def build(cls, htype: HistogramType, buckets: Any) -> BucketStorage:
        """Derive upper bounds; a final unbounded bucket is always added."""
        _require_buckets(buckets)
        values = tuple(sorted(buckets.as_values())) + (MAX_FLOAT,)
        durations = tuple(sorted(buckets.as_durations())) + (MAX_DURATION,)
        return cls(buckets, values, durations)

    def value_lower_bound(self, index: int) -> float:
        return -MAX_FLOAT if index <= 0 else self.value_upper_bounds[index - 1]

    def duration_lower_bound(self, index: int) -> int:
        return MIN_DURATION if index <= 0 else self.duration_upper_bounds[index - 1]


class BucketCache:
    """Shares bucket storage between histograms using the same buckets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cache: dict[tuple, BucketStorage] = {}

    def get(self, htype: HistogramType, buckets: Any) -> BucketStorage:
        _require_buckets(buckets)
        key = (type(buckets), tuple(buckets))
        with self._lock:
            storage = self._cache.get(key)
            if storage is None:
                storage = BucketStorage.build(htype, buckets)
                self._cache[key] = storage
            return storage


class Histogram:
    """A histogram counting samples per bucket."""

    def __init__(
        self,
        htype: HistogramType,
        name: str,
        tags: Mapping[str, str],
        reporter: Optional[StatsReporter],
        storage: BucketStorage,
        cached_histogram: Optional[CachedHistogram] = None,
    ) -> None:
        self.htype = htype
        self.name = name
        self.tags = tags
        self._reporter = reporter
        self._storage = storage
        self.specification = storage.buckets
        self._samples = [Counter() for _ in storage.value_upper_bounds]
        self._cached_buckets: list[Optional[CachedHistogramBucket]] = [None] * len(
            self._samples
        )
        if cached_histogram is not None:
            for i in range(len(self._samples)):
                if htype is HistogramType.DURATION:
                    self._cached_buckets[i] = cached_histogram.duration_bucket(
                        storage.duration_lower_bound(i), storage.duration_upper_bounds[i]
                    )
                else:
                    self._cached_buckets[i] = cached_histogram.value_bucket(
                        storage.value_lower_bound(i), storage.value_upper_bounds[i]
                    )

    def report(self, name: str, tags: Mapping[str, str], reporter: StatsReporter) -> None:
        storage = self._storage
        for i, counter in enumerate(self._samples):
            samples = counter.value()
            if not samples:
                continue
            if self.htype is HistogramType.VALUE:
                reporter.report_histogram_value_samples(
                    name,
                    tags,
                    self.specification,
                    storage.value_lower_bound(i),
                    storage.value_upper_bounds[i],
                    samples,
                )
            else:
                reporter.report_histogram_duration_samples(
                    name,
                    tags,
                    self.specification,
                    storage.duration_lower_bound(i),
                    storage.duration_upper_bounds[i],
                    samples,
                )

    def cached_report(self) -> None:
        for counter, bucket in zip(self._samples, self._cached_buckets):
            samples = counter.value()
            if samples:
                bucket.report_samples(samples)

    def record_value(self, value: float) -> None:
        """Count a value in the first bucket whose upper bound is at least ``value``."""
        if self.htype is not HistogramType.VALUE:
            return
        idx = bisect.bisect_left(self._storage.value_upper_bounds, value)
        self._samples[min(idx, len(self._samples) - 1)].inc(1)

    def record_duration(self, value: int) -> None:
        """Count a duration in the first bucket whose upper bound is at least ``value``."""
        if self.htype is not HistogramType.DURATION:
            return
        idx = bisect.bisect_left(self._storage.duration_upper_bounds, value)
        self._samples[min(idx, len(self._samples) - 1)].inc(1)

    def start(self) -> Stopwatch:
        return Stopwatch(_now(), self)

    def record_stopwatch(self, start: int) -> None:
        self.record_duration(_now() - start)

    def snapshot_values(self) -> Optional[dict[float, int]]:
        if self.htype is not HistogramType.VALUE:
            return None
        return {
            upper: counter.snapshot()
            for upper, counter in zip(self._storage.value_upper_bounds, self._samples)
        }

    def snapshot_durations(self) -> Optional[dict[int, int]]:
        if self.htype is not HistogramType.DURATION:
            return None
        return {
            upper: counter.snapshot()
            for upper, counter in zip(self._storage.duration_upper_bounds, self._samples)
        }