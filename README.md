# tallymetrics

Buffered, hierarchical metrics for Python programs. Metrics are created on
scopes, which carry a name prefix and a set of tags. Values are aggregated in
memory and handed to a reporter, either periodically by a background thread or
on demand.

All durations in this package, including timer intervals, histogram duration
buckets and the reporting interval, are integers in nanoseconds. The
`tallymetrics.stats` module provides `NANOSECOND`, `MICROSECOND`, `MILLISECOND`
and `SECOND` to build them.

## Installation

```
pip install tallymetrics
```

## Modules

- `tallymetrics.scope`: `Scope`, `ScopeOptions`, `ScopeRegistry`,
  `new_root_scope(options, interval)` and `new_test_scope(prefix, tags)`.
- `tallymetrics.stats`: `Counter`, `Gauge`, `Timer`, `Histogram`, `Stopwatch`,
  `ValueBuckets`, `DurationBuckets`, `BucketStorage` and `BucketCache`.
- `tallymetrics.reporter`: the reporter interfaces `StatsReporter` and
  `CachedStatsReporter`, the cached handle interfaces, `Capabilities` and
  `NullStatsReporter`.
- `tallymetrics.snapshot`: `Snapshot` and the per-metric snapshot classes,
  `merge_right_tags` and `key_for_prefixed_string_maps`.
- `tallymetrics.sanitize`: `Sanitizer`, `SanitizeOptions`, `ValidCharacters`
  and ready-made character sets.
- `tallymetrics.statsd`: `StatsdReporter`, which forwards values to a statsd
  client object, and `format_duration`.

## Concepts

- **Scope**: a namespace with a prefix and tags. `Scope.sub_scope(prefix)`
  returns a child with a longer prefix (joined by the separator, `.` by
  default); `Scope.tagged(tags)` returns a child with extra tags. Asking twice
  for the same child, or the same metric name, returns the same object.
- **Counter**: `inc(delta)` accumulates. Each report sends only the delta since
  the previous report, and nothing when it is zero.
- **Gauge**: `update(value)` sets the latest value; it is reported only if it
  was updated since the last report.
- **Timer**: `record(interval)` sends the interval to the reporter at once.
  `start()` returns a `Stopwatch`; its `stop()` records the elapsed time, and
  it can be used as a context manager.
- **Histogram**: `record_value(value)` or `record_duration(value)` counts a
  sample in the first bucket whose upper bound is at least the sample. A final
  unbounded bucket is always added. `ValueBuckets` make a value histogram,
  `DurationBuckets` a duration histogram; without buckets the scope's default
  duration buckets are used.

## Example

```python
from tallymetrics.scope import new_test_scope
from tallymetrics.stats import MILLISECOND, ValueBuckets

scope = new_test_scope("my_service", {"env": "test"})
scope.counter("requests").inc(1)
scope.gauge("queue_depth").update(12)
scope.timer("latency").record(175 * MILLISECOND)
scope.histogram("size", ValueBuckets([0, 10, 100])).record_value(42)

snap = scope.snapshot()
print(snap.counters["my_service.requests+env=test"].value)   # 1
print(snap.timers["my_service.latency+env=test"].values)     # [175000000]
print(snap.histograms["my_service.size+env=test"].values[100.0])  # 1
```

A root scope with a reporter, reporting every second:

```python
from tallymetrics.scope import ScopeOptions, new_root_scope
from tallymetrics.stats import SECOND

with new_root_scope(ScopeOptions(prefix="my_service", reporter=my_reporter), SECOND) as scope:
    scope.tagged({"endpoint": "home"}).counter("hits").inc(1)
# on close the root scope reports what is left, flushes the reporter,
# and calls the reporter's close() if it has one
```

With an interval of `0` nothing is reported in the background; call
`scope.report_registry()` to report and flush by hand. Once a scope is closed,
new child scopes taken from it are the shared no-op scope.

## Writing a reporter

Subclass `tallymetrics.reporter.StatsReporter` and implement `report_counter`,
`report_gauge`, `report_timer`, `report_histogram_value_samples`,
`report_histogram_duration_samples`, `capabilities` and `flush`. Alternatively
subclass `CachedStatsReporter` and return handles from `allocate_counter`,
`allocate_gauge`, `allocate_timer` and `allocate_histogram`; scopes then report
through those handles.

## statsd

`StatsdReporter(statter, sample_rate=1.0, histogram_bucket_name_precision=6)`
wraps any object with `inc(name, value, rate)`, `gauge(name, value, rate)` and
`timing_duration(name, interval, rate)` methods. Gauges are sent as integers.
Histogram samples are sent as counters named `<name>.<lower>-<upper>`, with
value bounds written to the given precision and duration bounds written like
`10ms` or `1m30s`; the open ends are `-infinity` and `infinity`. Tags are
dropped. `flush()` calls the client's `flush()` if it has one.

## Sanitising names

Pass `SanitizeOptions` in `ScopeOptions.sanitize_options` to replace characters
outside an allowed set in metric names, tag keys and tag values.
`tallymetrics.sanitize` provides `ALPHANUMERIC_RANGE`, `UNDERSCORE_CHARACTERS`,
`UNDERSCORE_DASH_CHARACTERS`, `UNDERSCORE_DASH_DOT_CHARACTERS`, and
`PROMETHEUS_SANITIZE_OPTIONS`, which allows only letters, digits and
underscores.

## What this package does not do

It contains no network client: `StatsdReporter` needs a statsd client object
supplied by the caller. There is no Prometheus reporter and no HTTP endpoint
for scraping metrics; only the Prometheus-style sanitising options are
provided. There is no command-line program.

## Testing

```
pip install tallymetrics[test]
pytest
```