import json
from datetime import datetime, timezone

import pytest

from spanz.messages import (
    AggregatorDroppedError,
    InvalidArgumentError,
    NotFoundError,
    ResponseKind,
    SerializationError,
    TracezCounts,
    TracezError,
    TracezResponse,
    span_to_dict,
)
from spanz.model import SpanContext, SpanData, Status


def _span(trace_id=7, span_id=9, **kwargs):
    return SpanData(
        span_context=SpanContext(trace_id=trace_id, span_id=span_id),
        name="op",
        **kwargs,
    )


def test_error_messages_match_descriptions():
    assert str(NotFoundError("tracez/api/error/{span_name}")) == (
        "the requested resource is not founded"
    )
    assert str(SerializationError()) == "cannot serialize the response into json"
    assert str(AggregatorDroppedError()) == (
        "the span aggregator is already dropped when querying"
    )


def test_invalid_argument_uses_message():
    err = InvalidArgumentError("tracez/api/latency", "invalid bucket index")
    assert str(err) == "invalid bucket index"
    assert err.api == "tracez/api/latency"


def test_errors_share_base_class():
    span = _span(attributes={"bad": object()})
    response = TracezResponse(ResponseKind.RUNNING, [span])
    with pytest.raises(TracezError) as info:
        response.to_json()
    assert type(info.value) is SerializationError
    assert str(info.value) == "cannot serialize the response into json"


def test_not_found_keeps_api():
    err = NotFoundError("x")
    assert err.api == "x"
    assert str(err) == "the requested resource is not founded"


def test_span_to_dict_ids_round_trip():
    span = _span(trace_id=0xABCDEF, span_id=0x1234, parent_span_id=0x55)
    data = span_to_dict(span)
    assert int(data["traceid"], 16) == 0xABCDEF
    assert int(data["spanid"], 16) == 0x1234
    assert int(data["parentid"], 16) == 0x55
    assert len(data["traceid"]) == 32
    assert len(data["spanid"]) == 16


def test_span_to_dict_times_and_status():
    start = datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
    span = _span(start_time=start, end_time=start, status=Status.error("boom"))
    data = span_to_dict(span)
    assert data["starttime"] == 1_000_000_000
    assert data["endtime"] == data["starttime"]
    assert data["status"]["message"] == "boom"


def test_aggregation_to_json_round_trip():
    counts = TracezCounts(spanname="op", latency=[1, 0, 2], running=3, error=4)
    response = TracezResponse(ResponseKind.AGGREGATION, [counts])
    decoded = json.loads(response.to_json())
    assert decoded == [
        {"spanname": "op", "latency": [1, 0, 2], "running": 3, "error": 4}
    ]


def test_span_response_to_json_matches_span_to_dict():
    span = _span(attributes={"k": "v"})
    response = TracezResponse(ResponseKind.RUNNING, [span])
    assert json.loads(response.to_json()) == [span_to_dict(span)]


def test_empty_response_is_empty_array():
    assert json.loads(TracezResponse(ResponseKind.ERROR).to_json()) == []


def test_unserialisable_attribute_raises():
    span = _span(attributes={"bad": object()})
    response = TracezResponse(ResponseKind.LATENCY, [span])
    with pytest.raises(SerializationError):
        response.to_json()