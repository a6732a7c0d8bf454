"""Aggregate span samples by name and answer tracez queries."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from .messages import (
    AggregationQuery,
    AggregatorDroppedError,
    ErrorQuery,
    InvalidArgumentError,
    LatencyQuery,
    NotFoundError,
    Query,
    ResponseKind,
    RunningQuery,
    SampleSpan,
    ShutDown,
    SpanEnd,
    TracezCounts,
    TracezError,
    TracezResponse,
)
from .span_queue import SpanQueue

LATENCY_BUCKETS = (
    timedelta(microseconds=0),
    timedelta(microseconds=10),
    timedelta(microseconds=100),
    timedelta(milliseconds=1),
    timedelta(milliseconds=10),
    timedelta(milliseconds=100),
    timedelta(seconds=1),
    timedelta(seconds=10),
    timedelta(seconds=100),
)
LATENCY_BUCKET_COUNT = len(LATENCY_BUCKETS)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_LATENCY_API = "tracez/api/latency/{bucket_index}/{span_name}"
_ERROR_API = "tracez/api/error/{span_name}"


def _since_epoch(moment: datetime) -> timedelta:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(moment - _EPOCH, timedelta(0))


def latency_bucket(start_time: datetime, end_time: datetime) -> int:
    """Index of the latency bucket the span duration falls into."""
    latency = _since_epoch(end_time) - _since_epoch(start_time)
    for idx, lower in enumerate(LATENCY_BUCKETS[1:], start=1):
        if lower > latency:
            return idx - 1
    return LATENCY_BUCKET_COUNT - 1


class SpanSummary:
    """Sampled running, error and per-latency spans for one span name."""

    def __init__(self, sample_size: int) -> None:
        self.running = SpanQueue(sample_size)
        self.error = SpanQueue(sample_size)
        self.latencies = [SpanQueue(sample_size) for _ in range(LATENCY_BUCKET_COUNT)]


def _reply(future: asyncio.Future, result=None, error: BaseException | None = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class SpanAggregator:
    """Consume messages from a queue and keep span summaries grouped by name."""

    def __init__(self, receiver: asyncio.Queue, sample_size: int) -> None:
        self._receiver = receiver
        self._sample_size = sample_size
        self._closed = False
        self.summaries: dict[str, SpanSummary] = {}

    @property
    def closed(self) -> bool:
        return self._closed

    def _summary(self, name: str) -> SpanSummary:
        summary = self.summaries.get(name)
        if summary is None:
            summary = self.summaries[name] = SpanSummary(self._sample_size)
        return summary

    async def process(self) -> None:
        """Handle messages until a ShutDown message arrives."""
        try:
            while True:
                msg = await self._receiver.get()
                if isinstance(msg, ShutDown):
                    return
                if isinstance(msg, SpanEnd):
                    self._on_end(msg)
                elif isinstance(msg, SampleSpan):
                    # Resampling on every start also evicts stale spans whose
                    # end message was never delivered.
                    self._summary(msg.span.name).running.push_back(msg.span)
                elif isinstance(msg, Query):
                    try:
                        _reply(msg.response, self.handle_query(msg.query))
                    except TracezError as err:
                        _reply(msg.response, error=err)
        finally:
            self._closed = True
            self._drain()

    def _on_end(self, msg: SpanEnd) -> None:
        span = msg.span
        summary = self._summary(span.name)
        summary.running.remove(span.span_context)
        if span.status.is_error():
            summary.error.push_back(span)
        else:
            summary.latencies[latency_bucket(span.start_time, span.end_time)].push_back(span)

    def _drain(self) -> None:
        while True:
            try:
                msg = self._receiver.get_nowait()
            except asyncio.QueueEmpty:
                return
            if isinstance(msg, Query):
                _reply(msg.response, error=AggregatorDroppedError())

    def handle_query(self, query) -> TracezResponse:
        """Answer one query from the current summaries, raising TracezError on failure."""
        if isinstance(query, AggregationQuery):
            return TracezResponse(
                ResponseKind.AGGREGATION,
                [
                    TracezCounts(
                        spanname=name,
                        latency=[queue.count() for queue in summary.latencies],
                        running=summary.running.count(),
                        error=summary.error.count(),
                    )
                    for name, summary in self.summaries.items()
                ],
            )
        if isinstance(query, LatencyQuery):
            summary = self.summaries.get(query.span_name)
            if summary is None:
                raise NotFoundError(_LATENCY_API)
            if not 0 <= query.bucket_index < len(summary.latencies):
                raise InvalidArgumentError(_LATENCY_API, "invalid bucket index")
            return TracezResponse(
                ResponseKind.LATENCY, summary.latencies[query.bucket_index].spans()
            )
        if isinstance(query, ErrorQuery):
            summary = self.summaries.get(query.span_name)
            if summary is None:
                raise NotFoundError(_ERROR_API)
            return TracezResponse(ResponseKind.ERROR, summary.error.spans())
        if isinstance(query, RunningQuery):
            summary = self.summaries.get(query.span_name)
            if summary is None:
                raise NotFoundError(_ERROR_API)
            return TracezResponse(ResponseKind.RUNNING, summary.running.spans())
        raise TypeError(f"unknown tracez query: {query!r}")