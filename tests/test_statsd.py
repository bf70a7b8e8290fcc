import pytest

from tallymetrics.stats import (
    MAX_DURATION,
    MAX_FLOAT,
    MILLISECOND,
    MIN_DURATION,
    SECOND,
    ValueBuckets,
)
from tallymetrics.statsd import StatsdReporter, format_duration


class RecordingStatter:
    def __init__(self):
        self.calls = []

    def inc(self, name, value, rate):
        self.calls.append(("inc", name, value, rate))

    def gauge(self, name, value, rate):
        self.calls.append(("gauge", name, value, rate))

    def timing_duration(self, name, interval, rate):
        self.calls.append(("timing", name, interval, rate))


@pytest.fixture
def statter():
    return RecordingStatter()


def test_capabilities():
    r = StatsdReporter(None)
    assert r.capabilities().reporting is True
    assert r.capabilities().tagging is False


def test_zero_options_use_defaults(statter):
    r = StatsdReporter(statter, sample_rate=0.0, histogram_bucket_name_precision=0)
    assert r.sample_rate == 1.0
    assert r.precision == 6


def test_counter_gauge_timer(statter):
    r = StatsdReporter(statter, sample_rate=0.5)
    r.report_counter("c", {"a": "b"}, 3)
    r.report_gauge("g", {}, 42.9)
    r.report_timer("t", {}, 175 * MILLISECOND)
    assert statter.calls == [
        ("inc", "c", 3, 0.5),
        ("gauge", "g", 42, 0.5),
        ("timing", "t", 175 * MILLISECOND, 0.5),
    ]


def test_value_histogram_bucket_name(statter):
    r = StatsdReporter(statter)
    r.report_histogram_value_samples("h", {}, ValueBuckets([0, 10]), 0.0, 10.0, 4)
    assert statter.calls == [("inc", "h.0.000000-10.000000", 4, 1.0)]


def test_value_histogram_infinite_bounds(statter):
    r = StatsdReporter(statter, histogram_bucket_name_precision=2)
    r.report_histogram_value_samples("h", {}, None, -MAX_FLOAT, 1.5, 1)
    r.report_histogram_value_samples("h", {}, None, 1.5, MAX_FLOAT, 2)
    assert [c[1] for c in statter.calls] == ["h.-infinity-1.50", "h.1.50-infinity"]


def test_duration_histogram_bucket_name(statter):
    r = StatsdReporter(statter)
    r.report_histogram_duration_samples(
        "d", {}, None, MIN_DURATION, 10 * MILLISECOND, 1
    )
    r.report_histogram_duration_samples("d", {}, None, SECOND, MAX_DURATION, 2)
    assert statter.calls == [
        ("inc", "d.-infinity-10ms", 1, 1.0),
        ("inc", "d.1s-infinity", 2, 1.0),
    ]


@pytest.mark.parametrize(
    "duration, text",
    [
        (0, "0s"),
        (1, "1ns"),
        (1500, "1.5µs"),
        (10 * MILLISECOND, "10ms"),
        (1500 * MILLISECOND, "1.5s"),
        (90 * SECOND, "1m30s"),
        (3600 * SECOND, "1h0m0s"),
        (-2 * SECOND, "-2s"),
    ],
)
def test_format_duration(duration, text):
    assert format_duration(duration) == text