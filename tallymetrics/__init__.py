"""Buffered, hierarchical metrics: scopes, counters, gauges, timers, histograms and reporters."""

__version__ = "3.4.2"

__all__ = ["reporter", "sanitize", "scope", "snapshot", "statsd", "stats"]