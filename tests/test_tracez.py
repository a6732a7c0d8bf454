import asyncio
import contextlib
import json
from datetime import datetime, timedelta, timezone

import pytest

from spanz.messages import (
    AggregatorDroppedError,
    InvalidArgumentError,
    NotFoundError,
    ResponseKind,
)
from spanz.model import SpanContext, SpanData, Status
from spanz.tracez import TracezQuerier, ZPagesSpanProcessor, tracez


def make_span(span_id, *, error=False, duration=timedelta(milliseconds=2), name="test-service"):
    start = datetime.now(timezone.utc)
    return SpanData(
        span_context=SpanContext(trace_id=1, span_id=span_id),
        name=name,
        start_time=start,
        end_time=start + duration,
        status=Status.error("") if error else Status.ok(),
    )


@contextlib.asynccontextmanager
async def running_tracez(sample_size=5):
    processor, querier = tracez(sample_size)
    try:
        yield processor, querier
    finally:
        querier.close()
        for _ in range(3):
            await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_empty_aggregation():
    async with running_tracez() as (_, querier):
        response = await querier.aggregation()
    assert response.kind is ResponseKind.AGGREGATION
    assert response.data == []


@pytest.mark.asyncio
async def test_started_span_is_running():
    async with running_tracez() as (processor, querier):
        span = make_span(1)
        processor.on_start(span)
        counts = (await querier.aggregation()).data
        running = await querier.running("test-service")
    assert [c.spanname for c in counts] == ["test-service"]
    assert counts[0].running == 1
    assert running.kind is ResponseKind.RUNNING
    assert [s.span_context for s in running.data] == [span.span_context]


@pytest.mark.asyncio
async def test_start_and_end_lands_in_latency_bucket():
    async with running_tracez() as (processor, querier):
        span = make_span(1)
        processor.on_start(span)
        processor.on_end(span)
        counts = (await querier.aggregation()).data[0]
        latency = await querier.latency(3, "test-service")
        running = await querier.running("test-service")
    assert counts.running == 0
    assert counts.latency[3] == 1
    assert sum(counts.latency) == 1
    assert [s.span_context for s in latency.data] == [span.span_context]
    assert running.data == []


@pytest.mark.asyncio
async def test_error_span_goes_to_error_queue():
    async with running_tracez() as (processor, querier):
        span = make_span(1, error=True)
        processor.on_start(make_span(1))
        processor.on_end(span)
        counts = (await querier.aggregation()).data[0]
        errors = await querier.error("test-service")
    assert counts.error == 1
    assert sum(counts.latency) == 0
    assert errors.kind is ResponseKind.ERROR
    assert errors.data[0].status.is_error()


@pytest.mark.asyncio
async def test_on_start_without_data_is_ignored():
    async with running_tracez() as (processor, querier):
        processor.on_start(None)
        response = await querier.aggregation()
    assert response.data == []


@pytest.mark.asyncio
async def test_running_unknown_span_name_not_found():
    async with running_tracez() as (_, querier):
        with pytest.raises(NotFoundError) as info:
            await querier.running("missing")
    assert str(info.value) == "the requested resource is not founded"


@pytest.mark.asyncio
async def test_error_unknown_span_name_not_found():
    async with running_tracez() as (_, querier):
        with pytest.raises(NotFoundError) as info:
            await querier.error("missing")
    assert str(info.value) == "the requested resource is not founded"


@pytest.mark.asyncio
async def test_latency_unknown_span_name_not_found():
    async with running_tracez() as (_, querier):
        with pytest.raises(NotFoundError) as info:
            await querier.latency(0, "missing")
    assert str(info.value) == "the requested resource is not founded"


@pytest.mark.asyncio
async def test_latency_invalid_bucket_index():
    async with running_tracez() as (processor, querier):
        processor.on_end(make_span(1))
        with pytest.raises(InvalidArgumentError) as info:
            await querier.latency(9, "test-service")
    assert info.value.message == "invalid bucket index"


@pytest.mark.asyncio
async def test_query_after_close_raises():
    processor, querier = tracez(5)
    querier.close()
    with pytest.raises(AggregatorDroppedError) as info:
        await querier.aggregation()
    assert str(info.value) == "the span aggregator is already dropped when querying"


@pytest.mark.asyncio
async def test_pending_query_answered_when_aggregator_stops():
    processor, querier = tracez(5)
    queue = querier._queue
    pending = asyncio.ensure_future(querier.aggregation())
    querier.close()
    with pytest.raises(AggregatorDroppedError):
        await pending
    assert queue.empty()


@pytest.mark.asyncio
async def test_response_json_round_trip():
    async with running_tracez() as (processor, querier):
        processor.on_end(make_span(7, name="svc"))
        body = (await querier.latency(3, "svc")).to_json()
    decoded = json.loads(body)
    assert [item["name"] for item in decoded] == ["svc"]
    assert decoded[0]["spanid"] == SpanContext(span_id=7).span_id_hex


def test_tracez_requires_running_loop():
    with pytest.raises(RuntimeError):
        tracez(5)


@pytest.mark.asyncio
async def test_tracez_rejects_bad_sample_size():
    with pytest.raises(ValueError):
        tracez(0)


def test_processor_repr():
    processor = ZPagesSpanProcessor(asyncio.Queue())
    assert repr(processor) == "ZPageProcessor"


def test_close_sends_one_shutdown():
    queue = asyncio.Queue()
    querier = TracezQuerier(queue)
    querier.close()
    querier.close()
    assert queue.qsize() == 1