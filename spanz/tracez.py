"""Tracez components: a span processor feeding the aggregator and a querier reading it."""

from __future__ import annotations

import asyncio

from .aggregator import SpanAggregator
from .messages import (
    AggregationQuery,
    AggregatorDroppedError,
    ErrorQuery,
    LatencyQuery,
    Query,
    RunningQuery,
    SampleSpan,
    ShutDown,
    SpanEnd,
    TracezResponse,
)
from .model import SpanData


class ZPagesSpanProcessor:
    """Send span snapshots to the aggregator when spans start and end.

    Sending never blocks: the queue is unbounded, and once the aggregator has
    stopped the messages are simply left unread.
    """

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue

    def on_start(self, span: SpanData | None) -> None:
        """Sample a span that has just started; ``None`` means nothing to sample."""
        if span is not None:
            self._queue.put_nowait(SampleSpan(span))

    def on_end(self, span: SpanData) -> None:
        """Report a span that has ended."""
        self._queue.put_nowait(SpanEnd(span))

    def force_flush(self) -> None:
        """Nothing is buffered, so there is nothing to flush."""

    def shutdown(self) -> None:
        """No cleanup is needed."""

    def __repr__(self) -> str:
        return "ZPageProcessor"


class TracezQuerier:
    """Query the aggregated span information held by the aggregator."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue
        self._aggregator: SpanAggregator | None = None
        self._task: asyncio.Task | None = None
        self._closed = False

    async def _query(self, query) -> TracezResponse:
        if self._closed or (self._aggregator is not None and self._aggregator.closed):
            raise AggregatorDroppedError()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(Query(query, future))
        return await future

    async def aggregation(self) -> TracezResponse:
        """Error, running and latency counts for every span name."""
        return await self._query(AggregationQuery())

    async def latency(self, bucket_index: int, span_name: str) -> TracezResponse:
        """Sampled spans of ``span_name`` in the given latency bucket."""
        return await self._query(LatencyQuery(bucket_index, span_name))

    async def running(self, span_name: str) -> TracezResponse:
        """Snapshots of sampled running spans, as they were when they started."""
        return await self._query(RunningQuery(span_name))

    async def error(self, span_name: str) -> TracezResponse:
        """Sampled spans of ``span_name`` that ended with an error status."""
        return await self._query(ErrorQuery(span_name))

    def close(self) -> None:
        """Ask the aggregator to shut down; later queries fail."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(ShutDown())

    def __enter__(self) -> TracezQuerier:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"TracezQuerier({state})"


def tracez(sample_size: int) -> tuple[ZPagesSpanProcessor, TracezQuerier]:
    """Create a processor and a querier sharing an aggregator task.

    ``sample_size`` is how many spans are sampled for each span name and
    category. Must be called with an asyncio event loop running.
    """
    if sample_size < 1:
        raise ValueError("sample_size must be at least 1")
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    aggregator = SpanAggregator(queue, sample_size)
    processor = ZPagesSpanProcessor(queue)
    querier = TracezQuerier(queue)
    querier._aggregator = aggregator
    querier._task = loop.create_task(aggregator.process())
    return processor, querier