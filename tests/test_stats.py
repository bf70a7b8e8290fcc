from unittest import mock

import pytest

from tallymetrics.reporter import (
    CAPABILITIES_REPORTING_NO_TAGGING,
    CachedCount,
    CachedGauge,
    CachedHistogram,
    CachedHistogramBucket,
    StatsReporter,
)
from tallymetrics.stats import (
    MAX_DURATION,
    MAX_FLOAT,
    MILLISECOND,
    MIN_DURATION,
    SECOND,
    BucketCache,
    BucketStorage,
    Counter,
    DurationBuckets,
    Gauge,
    Histogram,
    HistogramType,
    Stopwatch,
    Timer,
    ValueBuckets,
)


class RecordingReporter(StatsReporter):
    def __init__(self):
        self.last = None
        self.calls = 0
        self.value_samples = {}
        self.duration_samples = {}
        self.lower_bounds = {}
        self.buckets = None

    def report_counter(self, name, tags, value):
        self.last = value
        self.calls += 1

    def report_gauge(self, name, tags, value):
        self.last = value
        self.calls += 1

    def report_timer(self, name, tags, interval):
        self.last = interval
        self.calls += 1

    def report_histogram_value_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ):
        self.value_samples[upper_bound] = samples
        self.lower_bounds[upper_bound] = lower_bound
        self.buckets = buckets

    def report_histogram_duration_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ):
        self.duration_samples[upper_bound] = samples
        self.lower_bounds[upper_bound] = lower_bound
        self.buckets = buckets

    def capabilities(self):
        return CAPABILITIES_REPORTING_NO_TAGGING

    def flush(self):
        pass


class Sink(CachedCount, CachedGauge, CachedHistogramBucket):
    def __init__(self):
        self.values = []

    def report_count(self, value):
        self.values.append(value)

    def report_gauge(self, value):
        self.values.append(value)

    def report_samples(self, value):
        self.values.append(value)


class RecordingCachedHistogram(CachedHistogram):
    def __init__(self):
        self.buckets = {}

    def value_bucket(self, lower_bound, upper_bound):
        sink = Sink()
        self.buckets[(lower_bound, upper_bound)] = sink
        return sink

    def duration_bucket(self, lower_bound, upper_bound):
        sink = Sink()
        self.buckets[(lower_bound, upper_bound)] = sink
        return sink


def linear_values(start, width, count):
    return ValueBuckets(start + width * i for i in range(count))


def linear_durations(start, width, count):
    return DurationBuckets(start + width * i for i in range(count))


def test_counter_reports_deltas():
    counter = Counter()
    r = RecordingReporter()
    for _ in range(3):
        counter.inc(1)
        counter.report("", {}, r)
        assert r.last == 1
    assert r.calls == 3


def test_counter_skips_zero_delta_and_snapshot():
    counter = Counter()
    r = RecordingReporter()
    counter.inc(5)
    assert counter.snapshot() == 5
    counter.report("", {}, r)
    assert r.last == 5
    assert counter.snapshot() == 0
    counter.report("", {}, r)
    assert r.calls == 1


def test_counter_cached_report():
    sink = Sink()
    counter = Counter(sink)
    counter.inc(2)
    counter.inc(3)
    counter.cached_report()
    counter.cached_report()
    assert sink.values == [5]


def test_gauge_reports_last_value():
    gauge = Gauge()
    r = RecordingReporter()
    gauge.update(42)
    gauge.report("", {}, r)
    assert r.last == 42.0
    gauge.update(1234)
    gauge.update(5678)
    gauge.report("", {}, r)
    assert r.last == 5678.0


def test_gauge_reports_only_when_updated():
    sink = Sink()
    gauge = Gauge(sink)
    gauge.update(7.5)
    gauge.cached_report()
    gauge.cached_report()
    assert sink.values == [7.5]
    assert gauge.snapshot() == 7.5


def test_timer_records_to_reporter():
    r = RecordingReporter()
    timer = Timer("t1", {}, r)
    timer.record(42 * MILLISECOND)
    assert r.last == 42 * MILLISECOND
    timer.record(128 * MILLISECOND)
    assert r.last == 128 * MILLISECOND


def test_timer_without_reporter_keeps_values():
    timer = Timer("t1", {})
    timer.record(1 * SECOND)
    timer.record(2 * SECOND)
    assert timer.snapshot() == [1 * SECOND, 2 * SECOND]


def test_timer_stopwatch_measures_elapsed():
    r = RecordingReporter()
    timer = Timer("t1", {}, r)
    with mock.patch("time.monotonic_ns", side_effect=[100, 350]):
        timer.start().stop()
    assert r.last == 250


def test_stopwatch_context_manager():
    timer = Timer("t1", {})
    with mock.patch("time.monotonic_ns", side_effect=[1000, 1600]):
        with timer.start() as sw:
            assert isinstance(sw, Stopwatch)
    assert timer.snapshot() == [600]


def test_histogram_value_samples():
    r = RecordingReporter()
    buckets = linear_values(0, 10, 10)
    storage = BucketStorage.build(HistogramType.VALUE, buckets)
    h = Histogram(HistogramType.VALUE, "h1", {}, r, storage)
    for v in (0.5, 3.0, 9.99):
        h.record_value(v)
    for v in (51.0, 55.5, 59.0, 52.0, 58.0):
        h.record_value(v)
    h.report(h.name, h.tags, r)
    assert r.value_samples[10.0] == 3
    assert r.value_samples[60.0] == 5
    assert r.buckets == buckets


def test_histogram_duration_samples():
    r = RecordingReporter()
    buckets = linear_durations(0, 10 * MILLISECOND, 10)
    storage = BucketStorage.build(HistogramType.DURATION, buckets)
    h = Histogram(HistogramType.DURATION, "h1", {}, r, storage)
    for ms in (1, 5, 9):
        h.record_duration(ms * MILLISECOND)
    for ms in (51, 53, 55, 57, 59):
        h.record_duration(ms * MILLISECOND)
    h.report(h.name, h.tags, r)
    assert r.duration_samples[10 * MILLISECOND] == 3
    assert r.duration_samples[60 * MILLISECOND] == 5
    assert r.buckets == buckets


def test_histogram_lower_bounds():
    r = RecordingReporter()
    storage = BucketStorage.build(HistogramType.VALUE, ValueBuckets([0, 2, 4]))
    h = Histogram(HistogramType.VALUE, "h", {}, r, storage)
    h.record_value(-5)
    h.record_value(3)
    h.record_value(100)
    h.report("h", {}, r)
    assert r.lower_bounds[0.0] == -MAX_FLOAT
    assert r.lower_bounds[4.0] == 2.0
    assert r.lower_bounds[MAX_FLOAT] == 4.0
    assert r.value_samples == {0.0: 1, 4.0: 1, MAX_FLOAT: 1}


def test_histogram_snapshot_values():
    storage = BucketStorage.build(HistogramType.VALUE, ValueBuckets([0, 2, 4]))
    h = Histogram(HistogramType.VALUE, "fizz", {}, None, storage)
    h.record_value(1)
    h.record_value(5)
    h.record_duration(SECOND)
    assert h.snapshot_values() == {0.0: 0, 2.0: 1, 4.0: 0, MAX_FLOAT: 1}
    assert h.snapshot_durations() is None


def test_histogram_snapshot_durations():
    buckets = DurationBuckets([2 * SECOND, 4 * SECOND])
    storage = BucketStorage.build(HistogramType.DURATION, buckets)
    h = Histogram(HistogramType.DURATION, "buzz", {}, None, storage)
    h.record_duration(SECOND)
    h.record_value(1.0)
    assert h.snapshot_values() is None
    assert h.snapshot_durations() == {2 * SECOND: 1, 4 * SECOND: 0, MAX_DURATION: 0}


def test_histogram_cached_report_uses_bucket_bounds():
    cached = RecordingCachedHistogram()
    buckets = DurationBuckets([0, 10 * MILLISECOND])
    storage = BucketStorage.build(HistogramType.DURATION, buckets)
    h = Histogram(HistogramType.DURATION, "qux", {}, None, storage, cached)
    assert set(cached.buckets) == {
        (MIN_DURATION, 0),
        (0, 10 * MILLISECOND),
        (10 * MILLISECOND, MAX_DURATION),
    }
    h.record_duration(5 * MILLISECOND)
    h.record_duration(7 * MILLISECOND)
    h.cached_report()
    assert cached.buckets[(0, 10 * MILLISECOND)].values == [2]
    assert cached.buckets[(MIN_DURATION, 0)].values == []


def test_histogram_stopwatch():
    storage = BucketStorage.build(HistogramType.DURATION, DurationBuckets([100, 1000]))
    h = Histogram(HistogramType.DURATION, "h", {}, None, storage)
    with mock.patch("time.monotonic_ns", side_effect=[0, 500]):
        h.start().stop()
    assert h.snapshot_durations() == {100: 0, 1000: 1, MAX_DURATION: 0}


def test_bucket_conversions():
    assert DurationBuckets([50 * MILLISECOND, SECOND]).as_values() == [0.05, 1.0]
    assert ValueBuckets([0.5, 2]).as_durations() == [SECOND // 2, 2 * SECOND]
    assert ValueBuckets([1, 2]) != DurationBuckets([1, 2])


def test_bucket_storage_sorts_and_adds_unbounded_bucket():
    storage = BucketStorage.build(HistogramType.VALUE, ValueBuckets([4, 0, 2]))
    assert storage.value_upper_bounds == (0.0, 2.0, 4.0, MAX_FLOAT)
    assert storage.duration_upper_bounds[-1] == MAX_DURATION


def test_bucket_cache_shares_storage():
    cache = BucketCache()
    first = cache.get(HistogramType.VALUE, ValueBuckets([1, 2, 3]))
    second = cache.get(HistogramType.VALUE, ValueBuckets([1, 2, 3]))
    other = cache.get(HistogramType.DURATION, DurationBuckets([1, 2, 3]))
    assert first is second
    assert other is not first
    assert other.buckets == DurationBuckets([1, 2, 3])


def test_bucket_cache_rejects_unknown_bucket_type():
    with pytest.raises(TypeError):
        BucketCache().get(HistogramType.VALUE, [1.0, 2.0])