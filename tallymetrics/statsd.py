"""A reporter that forwards metrics to a statsd client."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from .reporter import CAPABILITIES_REPORTING_NO_TAGGING, Capabilities, StatsReporter
from .stats import (
    MAX_DURATION,
    MAX_FLOAT,
    MICROSECOND,
    MILLISECOND,
    MIN_DURATION,
    SECOND,
)

DEFAULT_HISTOGRAM_BUCKET_NAME_PRECISION = 6

_MINUTE = 60 * SECOND


class Statter(Protocol):
    """The statsd client operations the reporter uses."""

    def inc(self, name: str, value: int, rate: float) -> Any: ...

    def gauge(self, name: str, value: int, rate: float) -> Any: ...

    def timing_duration(self, name: str, interval: int, rate: float) -> Any: ...


def _fixed(value: int, digits: int) -> str:
    """Write ``value / 10**digits`` with trailing fractional zeros removed."""
    whole, frac = divmod(value, 10**digits)
    if not frac:
        return str(whole)
    return f"{whole}." + f"{frac:0{digits}d}".rstrip("0")


def format_duration(duration: int) -> str:
    """Format a nanosecond duration like ``1h2m3.5s``, ``1.5ms`` or ``0s``."""
    if duration == 0:
        return "0s"
    sign = "-" if duration < 0 else ""
    u = abs(duration)
    if u < MICROSECOND:
        return f"{sign}{u}ns"
    if u < MILLISECOND:
        return f"{sign}{_fixed(u, 3)}µs"
    if u < SECOND:
        return f"{sign}{_fixed(u, 6)}ms"
    minutes, rem = divmod(u, _MINUTE)
    text = f"{_fixed(rem, 9)}s"
    if minutes:
        hours, minutes = divmod(minutes, 60)
        text = f"{minutes}m{text}"
        if hours:
            text = f"{hours}h{text}"
    return sign + text


class StatsdReporter(StatsReporter):
    """Reports counters, gauges, timers and histogram buckets to a statsd client.

    Histogram samples are sent as counters named ``<name>.<lower>-<upper>``.
    Tags are not supported by statsd and are dropped.
    """

    def __init__(
        self,
        statter: Statter,
        sample_rate: float = 1.0,
        histogram_bucket_name_precision: int = DEFAULT_HISTOGRAM_BUCKET_NAME_PRECISION,
    ) -> None:
        self.statter = statter
        self.sample_rate = sample_rate or 1.0
        self.precision = (
            histogram_bucket_name_precision or DEFAULT_HISTOGRAM_BUCKET_NAME_PRECISION
        )

    def report_counter(self, name: str, tags: Mapping[str, str], value: int) -> None:
        self.statter.inc(name, value, self.sample_rate)

    def report_gauge(self, name: str, tags: Mapping[str, str], value: float) -> None:
        self.statter.gauge(name, int(value), self.sample_rate)

    def report_timer(self, name: str, tags: Mapping[str, str], interval: int) -> None:
        self.statter.timing_duration(name, interval, self.sample_rate)

    def report_histogram_value_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ) -> None:
        bucket = f"{self._value_bound(lower_bound)}-{self._value_bound(upper_bound)}"
        self.statter.inc(f"{name}.{bucket}", samples, self.sample_rate)

    def report_histogram_duration_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ) -> None:
        bucket = f"{self._duration_bound(lower_bound)}-{self._duration_bound(upper_bound)}"
        self.statter.inc(f"{name}.{bucket}", samples, self.sample_rate)

    def _value_bound(self, bound: float) -> str:
        if bound == MAX_FLOAT:
            return "infinity"
        if bound == -MAX_FLOAT:
            return "-infinity"
        return f"{bound:.{self.precision}f}"

    @staticmethod
    def _duration_bound(bound: int) -> str:
        if bound == MAX_DURATION:
            return "infinity"
        if bound == MIN_DURATION:
            return "-infinity"
        return format_duration(bound)

    def capabilities(self) -> Capabilities:
        return CAPABILITIES_REPORTING_NO_TAGGING

    def flush(self) -> None:
        """Flush the client's buffer when it keeps one; plain clients send at once."""
        client_flush = getattr(self.statter, "flush", None)
        if callable(client_flush):
            client_flush()