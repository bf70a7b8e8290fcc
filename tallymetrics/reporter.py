"""Reporter interfaces that scopes report metrics to.

Durations are integer nanoseconds throughout the package.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Capabilities:
    """What a reporter is able to do."""

    reporting: bool
    tagging: bool


CAPABILITIES_NONE = Capabilities(reporting=False, tagging=False)
CAPABILITIES_REPORTING_NO_TAGGING = Capabilities(reporting=True, tagging=False)
CAPABILITIES_REPORTING_TAGGING = Capabilities(reporting=True, tagging=True)


class BaseStatsReporter(ABC):
    """Methods shared by every reporter."""

    @abstractmethod
    def capabilities(self) -> Capabilities:
        """Describe the reporter's capabilities."""

    @abstractmethod
    def flush(self) -> None:
        """Flush all reported values."""


class StatsReporter(BaseStatsReporter):
    """A backend that scopes report metric values to."""

    @abstractmethod
    def report_counter(self, name: str, tags: Mapping[str, str], value: int) -> None:
        """Report a counter delta."""

    @abstractmethod
    def report_gauge(self, name: str, tags: Mapping[str, str], value: float) -> None:
        """Report a gauge value."""

    @abstractmethod
    def report_timer(self, name: str, tags: Mapping[str, str], interval: int) -> None:
        """Report a timer interval in nanoseconds."""

    @abstractmethod
    def report_histogram_value_samples(
        self,
        name: str,
        tags: Mapping[str, str],
        buckets: Any,
        lower_bound: float,
        upper_bound: float,
        samples: int,
    ) -> None:
        """Report samples for one value bucket."""

    @abstractmethod
    def report_histogram_duration_samples(
        self,
        name: str,
        tags: Mapping[str, str],
        buckets: Any,
        lower_bound: int,
        upper_bound: int,
        samples: int,
    ) -> None:
        """Report samples for one duration bucket."""


class CachedCount(ABC):
    @abstractmethod
    def report_count(self, value: int) -> None:
        """Report a counter delta."""


class CachedGauge(ABC):
    @abstractmethod
    def report_gauge(self, value: float) -> None:
        """Report a gauge value."""


class CachedTimer(ABC):
    @abstractmethod
    def report_timer(self, interval: int) -> None:
        """Report a timer interval in nanoseconds."""


class CachedHistogramBucket(ABC):
    @abstractmethod
    def report_samples(self, value: int) -> None:
        """Report a number of samples for this bucket."""


class CachedHistogram(ABC):
    @abstractmethod
    def value_bucket(self, lower_bound: float, upper_bound: float) -> CachedHistogramBucket:
        """Return the bucket handle for a value range."""

    @abstractmethod
    def duration_bucket(self, lower_bound: int, upper_bound: int) -> CachedHistogramBucket:
        """Return the bucket handle for a duration range."""


class CachedStatsReporter(BaseStatsReporter):
    """A backend that pre-allocates a handle for every metric."""

    @abstractmethod
    def allocate_counter(self, name: str, tags: Mapping[str, str]) -> CachedCount:
        """Pre-allocate a counter."""

    @abstractmethod
    def allocate_gauge(self, name: str, tags: Mapping[str, str]) -> CachedGauge:
        """Pre-allocate a gauge."""

    @abstractmethod
    def allocate_timer(self, name: str, tags: Mapping[str, str]) -> CachedTimer:
        """Pre-allocate a timer."""

    @abstractmethod
    def allocate_histogram(
        self, name: str, tags: Mapping[str, str], buckets: Any
    ) -> CachedHistogram:
        """Pre-allocate a histogram for the given buckets."""


class NullStatsReporter(StatsReporter):
    """A reporter that discards every value; it only counts flushes."""

    def __init__(self) -> None:
        self.flushes = 0

    def report_counter(self, name, tags, value):
        pass

    def report_gauge(self, name, tags, value):
        pass

    def report_timer(self, name, tags, interval):
        pass

    def report_histogram_value_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ):
        pass

    def report_histogram_duration_samples(
        self, name, tags, buckets, lower_bound, upper_bound, samples
    ):
        pass

    def capabilities(self) -> Capabilities:
        return CAPABILITIES_NONE

    def flush(self) -> None:
        """Record that a flush was requested; there is nothing buffered."""
        self.flushes += 1


NULL_STATS_REPORTER = NullStatsReporter()