"""Messages exchanged with the span aggregator, plus query responses and errors."""

from __future__ import annotations

import asyncio
import enum
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Union

from .model import SpanData

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class SampleSpan:
    """A span has started and should be sampled as running."""

    span: SpanData


@dataclass(frozen=True)
class SpanEnd:
    """A span has ended."""

    span: SpanData


@dataclass(frozen=True)
class ShutDown:
    """Ask the aggregator to stop."""


@dataclass(frozen=True)
class AggregationQuery:
    """tracez/api/aggregations"""


@dataclass(frozen=True)
class LatencyQuery:
    """tracez/api/latency/{bucket_index}/{span_name}"""

    bucket_index: int
    span_name: str


@dataclass(frozen=True)
class RunningQuery:
    """tracez/api/running/{span_name}"""

    span_name: str


@dataclass(frozen=True)
class ErrorQuery:
    """tracez/api/error/{span_name}"""

    span_name: str


TracezQuery = Union[AggregationQuery, LatencyQuery, RunningQuery, ErrorQuery]


@dataclass(frozen=True)
class Query:
    """A query from the web service; the answer is set on ``response``."""

    query: TracezQuery
    response: asyncio.Future


TracezMessage = Union[SampleSpan, SpanEnd, ShutDown, Query]


@dataclass
class TracezCounts:
    """Per span name counts of latency buckets, running and error spans."""

    spanname: str
    latency: list[int] = field(default_factory=list)
    running: int = 0
    error: int = 0


class ResponseKind(enum.Enum):
    AGGREGATION = "aggregation"
    LATENCY = "latency"
    RUNNING = "running"
    ERROR = "error"


def _to_nanos(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = max(moment - _EPOCH, timedelta(0))
    return (delta // timedelta(microseconds=1)) * 1000


def span_to_dict(span: SpanData) -> dict[str, Any]:
    """Describe a span as a JSON-ready mapping."""
    ctx = span.span_context
    return {
        "traceid": ctx.trace_id_hex,
        "spanid": ctx.span_id_hex,
        "parentid": f"{span.parent_span_id:016x}",
        "name": span.name,
        "starttime": _to_nanos(span.start_time),
        "endtime": _to_nanos(span.end_time),
        "attributes": dict(span.attributes),
        "status": {
            "code": span.status.code.value,
            "message": span.status.description,
        },
    }


def _item_to_json(item: Any) -> Any:
    if isinstance(item, SpanData):
        return span_to_dict(item)
    if isinstance(item, TracezCounts):
        return asdict(item)
    return item


@dataclass
class TracezResponse:
    """Answer to a tracez query: a list of counts or of sampled spans."""

    kind: ResponseKind
    data: list[Any] = field(default_factory=list)

    def to_json(self) -> str:
        """Serialise the response data as a JSON array."""
        try:
            return json.dumps([_item_to_json(item) for item in self.data])
        except (TypeError, ValueError) as err:
            raise SerializationError() from err


class TracezError(Exception):
    """Base class for errors reported by tracez queries."""


class InvalidArgumentError(TracezError):
    """The query named an operation argument that is not valid."""

    def __init__(self, api: str, message: str) -> None:
        super().__init__(message)
        self.api = api
        self.message = message


class NotFoundError(TracezError):
    """The requested resource does not exist."""

    def __init__(self, api: str) -> None:
        super().__init__("the requested resource is not founded")
        self.api = api


class SerializationError(TracezError):
    """The response could not be converted to JSON."""

    def __init__(self) -> None:
        super().__init__("cannot serialize the response into json")


class AggregatorDroppedError(TracezError):
    """The span aggregator is no longer running."""

    def __init__(self) -> None:
        super().__init__("the span aggregator is already dropped when querying")