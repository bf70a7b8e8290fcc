"""Point-in-time copies of metric values, and keys that identify tagged metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

_PREFIX_SPLITTER = "+"
_KEY_PAIR_SPLITTER = ","
_KEY_NAME_SPLITTER = "="


def key_for_prefixed_string_maps(prefix: str, *args: Optional[Mapping[str, str]]) -> str:
    """Build a unique key from a prefix and one or more tag maps.

    Keys are written in sorted order as ``key=value`` pairs joined by commas.
    Where a key appears in several maps the rightmost map wins.
    """
    maps = [m for m in args if m]
    keys = sorted({k for m in maps for k in m})
    pairs = []
    for key in keys:
        value = next(m[key] for m in reversed(maps) if key in m)
        pairs.append(f"{key}{_KEY_NAME_SPLITTER}{value}")
    return prefix + _PREFIX_SPLITTER + _KEY_PAIR_SPLITTER.join(pairs)


def merge_right_tags(
    left: Optional[Mapping[str, str]], right: Optional[Mapping[str, str]]
) -> Optional[Mapping[str, str]]:
    """Merge two tag maps; values from ``right`` override those from ``left``."""
    if left is None and right is None:
        return None
    if not right:
        return left
    if not left:
        return right
    return {**left, **right}


@dataclass(frozen=True)
class CounterSnapshot:
    """A counter's unreported total."""

    name: str
    tags: Mapping[str, str]
    value: int


@dataclass(frozen=True)
class GaugeSnapshot:
    """A gauge's last value."""

    name: str
    tags: Mapping[str, str]
    value: float


@dataclass(frozen=True)
class TimerSnapshot:
    """The intervals, in nanoseconds, recorded to a timer."""

    name: str
    tags: Mapping[str, str]
    values: list[int]


@dataclass(frozen=True)
class HistogramSnapshot:
    """Sample counts by bucket upper bound.

    ``values`` is set for value histograms and ``durations`` for duration
    histograms; the other is ``None``.
    """

    name: str
    tags: Mapping[str, str]
    values: Optional[dict[float, int]]
    durations: Optional[dict[int, int]]


@dataclass
class Snapshot:
    """All metric values of a scope tree, keyed by name and tags."""

    counters: dict[str, CounterSnapshot] = field(default_factory=dict)
    gauges: dict[str, GaugeSnapshot] = field(default_factory=dict)
    timers: dict[str, TimerSnapshot] = field(default_factory=dict)
    histograms: dict[str, HistogramSnapshot] = field(default_factory=dict)