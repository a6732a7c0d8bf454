# spanz

`spanz` keeps an in-process picture of the spans your application produces
and serves it as JSON, without an external collector. Spans are grouped by
name; for each name it keeps a bounded sample of running spans, of spans that
ended with an error, and of finished spans sorted into latency buckets.

The package also carries two event-style exporters:

- a log exporter (`spanz.logs.UserEventsExporter`, driven by
  `ReentrantLogProcessor`) that turns log records into structured events with
  `PartA`, `PartB` and `PartC` sections, routed by level and keyword;
- a metrics exporter (`spanz.metrics_exporter.MetricsExporter`) that encodes
  sum metrics as an OTLP export request in protobuf wire format and writes it
  to a Linux `user_events` tracepoint.

## Tracking spans

Spans are described by `spanz.model.SpanData` (with `SpanContext` and
`Status`). `spanz.tracez.tracez(sample_size)` must be called with an asyncio
event loop running; it starts the aggregator as a task and returns a span
processor and a querier.

```python
from spanz.tracez import tracez

processor, querier = tracez(5)   # keep 5 samples per span name and category

processor.on_start(span)   # when a span starts
processor.on_end(span)     # when a span ends

counts = await querier.aggregation()
print(counts.to_json())

running = await querier.running("checkout")
errors = await querier.error("checkout")
slow = await querier.latency(6, "checkout")   # spans that took 1 s to 10 s

querier.close()   # stops the aggregator; the querier is also a context manager
```

Latency buckets start at 0 µs, 10 µs, 100 µs, 1 ms, 10 ms, 100 ms, 1 s,
10 s and 100 s; bucket `i` holds spans whose duration is at least the `i`-th
bound and below the next one. Ending a span removes it from the running
sample; it then goes to the error sample if its status is an error, otherwise
to its latency bucket. Each sample holds at most `sample_size` spans, the
oldest slot being overwritten, while the counts reported by `aggregation()`
keep counting every span.

Asking about an unknown span name raises `NotFoundError`; an out-of-range
bucket raises `InvalidArgumentError`; a query after the aggregator has stopped
raises `AggregatorDroppedError`. All derive from `spanz.messages.TracezError`.
`TracezResponse.to_json()` raises `SerializationError` if the data cannot be
written as JSON.

## The HTTP endpoint

Run the demo server:

```
spanz-server [--host 127.0.0.1] [--port 3000] [--sample-size 5]
```

It answers:

| Path                                        | Response                                   |
|---------------------------------------------|--------------------------------------------|
| `/tracez/api/aggregations`                  | counts per span name                       |
| `/tracez/api/running/{span_name}`           | sampled running spans                      |
| `/tracez/api/error/{span_name}`             | sampled error spans                        |
| `/tracez/api/latency/{bucket}/{span_name}`  | sampled spans in one latency bucket        |
| `/running`                                  | records a span that sleeps 1–6 s, for demo |

Malformed paths and non-numeric bucket indexes get `404`; a failed query gets
`500` with an empty body. To serve the API from your own aiohttp setup, use
`spanz.server.create_app(querier)` (it has no `/running` demo path), or call
`await route(querier, path)`, which returns an HTTP status and a JSON body.

## Log events

```python
from spanz.events import Level
from spanz.logs import ExporterConfig, LogData, LogRecord, ReentrantLogProcessor, Severity

config = ExporterConfig(default_keyword=1, keywords_map={})
processor = ReentrantLogProcessor("test", None, config)

event_set = processor.exporter.provider.find_set(Level.ERROR, 1)
event_set.listeners.append(print)   # an event set is enabled while it has listeners

processor.emit(LogData(
    LogRecord(body="failed", severity_number=Severity.ERROR,
              attributes={"event_id": 20, "user_name": "otel user"}),
    instrumentation_name="my-logger",
))
```

Event sets are registered for the informational, verbose, warning, error and
critical-error levels of every configured keyword. With an empty
`keywords_map` every logger uses `default_keyword`; otherwise only loggers
named in the map are exported. A record is written only when the matching
event set has a listener; `event_enabled(level, target, name)` tells in
advance. The attributes `event_id` and `event_name` (or `name`) are lifted
into `PartB`; other boolean, integer, float and string attributes go into
`PartC`, and the rest are dropped. After `shutdown()` the processor drops
records.

## Metrics

```python
from spanz.metrics_exporter import MetricsExporter
from spanz.tracepoint import Tracepoint

tracepoint = Tracepoint()   # or Tracepoint(path_to_user_events_data)
tracepoint.register()
exporter = MetricsExporter(tracepoint)
exporter.export(resource_metrics)
```

`MetricsExporter()` without an argument creates and registers a tracepoint
itself, logging the error if registration fails, and closes it on
`shutdown()`. Nothing is written unless the tracepoint is enabled. Counters,
observable counters, observable gauges and histograms use delta temporality;
up-down counters use cumulative. Only `spanz.transform.Sum` data is encoded;
any other data is logged as an unknown aggregator and the metric is sent
without data.

## What it does not do

- It is not a tracing SDK: spans must be handed to the processor by your own
  code, and a running span's sample is the snapshot taken when it started.
- Log events go to in-process listeners (`EventSet.listeners`), not to the
  kernel.
- Tracepoint registration works only on Linux with the tracing file system
  mounted and enough permissions; elsewhere it raises `TracepointError`.

## Tests

The tests use `pytest` and `pytest-asyncio`, available through the `test`
extra.