from datetime import datetime, timezone

import pytest

from spanz.model import SpanContext, SpanData, Status, StatusCode


def test_status_ok_is_not_error():
    status = Status.ok()
    assert status.code is StatusCode.OK
    assert status.is_error() is False


def test_status_error_keeps_description():
    status = Status.error("boom")
    assert status.is_error() is True
    assert status.description == "boom"


def test_default_status_is_unset_and_not_error():
    status = Status()
    assert status.code is StatusCode.UNSET
    assert not status.is_error()


def test_error_statuses_compare_by_value():
    assert Status.error("") == Status.error("")
    assert Status.error("a") != Status.error("b")


def test_span_context_is_hashable_by_value():
    a = SpanContext(trace_id=1, span_id=2)
    b = SpanContext(trace_id=1, span_id=2)
    lookup = {a: "first"}
    assert lookup[b] == "first"
    assert a == b


def test_span_context_differs_on_flags():
    assert SpanContext(1, 1, 0) != SpanContext(1, 1, 1)


def test_span_context_hex_widths():
    ctx = SpanContext(trace_id=1, span_id=1)
    assert len(ctx.trace_id_hex) == 32
    assert len(ctx.span_id_hex) == 16
    assert int(ctx.trace_id_hex, 16) == 1
    assert int(ctx.span_id_hex, 16) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"trace_id": -1},
        {"trace_id": 1 << 128},
        {"span_id": 1 << 64},
        {"trace_flags": 256},
    ],
)
def test_span_context_rejects_out_of_range_ids(kwargs):
    with pytest.raises(ValueError):
        SpanContext(**kwargs)


def test_span_data_fields_are_mutable():
    moment = datetime(2020, 1, 1, tzinfo=timezone.utc)
    span = SpanData(name="test-service")
    span.start_time = moment
    span.end_time = moment
    assert span.start_time == span.end_time == moment
    assert span.name == "test-service"


def test_span_data_equality_covers_all_fields():
    moment = datetime(2020, 1, 1, tzinfo=timezone.utc)
    ctx = SpanContext(1, 1)
    first = SpanData(span_context=ctx, start_time=moment, end_time=moment)
    second = SpanData(span_context=ctx, start_time=moment, end_time=moment)
    assert first == second
    second.status = Status.error("")
    assert first != second
    assert first.span_context == second.span_context