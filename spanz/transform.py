"""Convert metric data into an OTLP export request and encode it as protobuf."""

from __future__ import annotations

import enum
import logging
import struct
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

_log = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_U64 = 1 << 64


class Temporality(enum.IntEnum):
    """Aggregation temporality, numbered as in the OTLP protocol."""

    DELTA = 1
    CUMULATIVE = 2


@dataclass
class InstrumentationScope:
    """The library or component that recorded the metrics."""

    name: str
    version: str | None = None
    schema_url: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class Resource:
    """The entity producing telemetry, described by attributes."""

    attributes: dict[str, Any] = field(default_factory=dict)
    schema_url: str | None = None


@dataclass
class SumDataPoint:
    """One value of a sum for one set of attributes."""

    value: int | float
    attributes: dict[str, Any] = field(default_factory=dict)
    start_time: datetime | None = None
    time: datetime | None = None


@dataclass
class Sum:
    """Sum aggregation data of a metric."""

    data_points: list[SumDataPoint] = field(default_factory=list)
    temporality: Temporality = Temporality.CUMULATIVE
    is_monotonic: bool = False


@dataclass
class Metric:
    """A named metric and its aggregated data."""

    name: str
    description: str = ""
    unit: str = ""
    data: Any = None


@dataclass
class ScopeMetrics:
    """Metrics recorded by one instrumentation scope."""

    scope: InstrumentationScope
    metrics: list[Metric] = field(default_factory=list)


@dataclass
class ResourceMetrics:
    """All metrics collected for one resource."""

    resource: Resource = field(default_factory=Resource)
    scope_metrics: list[ScopeMetrics] = field(default_factory=list)


# --- protobuf wire encoding -------------------------------------------------


def _varint(value: int) -> bytes:
    value %= _U64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _tag(number: int, wire_type: int) -> bytes:
    return _varint((number << 3) | wire_type)


def _message(number: int, payload: bytes) -> bytes:
    return _tag(number, 2) + _varint(len(payload)) + payload


def _string(number: int, text: str) -> bytes:
    return _message(number, text.encode("utf-8")) if text else b""


def _uint(number: int, value: int) -> bytes:
    return _tag(number, 0) + _varint(value) if value else b""


def _fixed64(number: int, value: int) -> bytes:
    return _tag(number, 1) + struct.pack("<Q", value % _U64) if value else b""


def _signed64(value: int) -> int:
    return ((value + (1 << 63)) % _U64) - (1 << 63)


def _any_value(value: Any) -> bytes:
    if isinstance(value, bool):
        return _tag(2, 0) + _varint(int(value))
    if isinstance(value, int):
        return _tag(3, 0) + _varint(value)
    if isinstance(value, float):
        return _tag(4, 1) + struct.pack("<d", value)
    if isinstance(value, str):
        return _message(1, value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray)):
        return _message(7, bytes(value))
    if isinstance(value, Mapping):
        return _message(6, b"".join(_message(1, _key_value(k, v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return _message(5, b"".join(_message(1, _any_value(v)) for v in value))
    raise TypeError(f"unsupported attribute value: {value!r}")


def _key_value(key: str, value: Any) -> bytes:
    return _string(1, str(key)) + _message(2, _any_value(value))


def _attributes(number: int, attributes: Mapping[str, Any]) -> bytes:
    return b"".join(_message(number, _key_value(k, v)) for k, v in attributes.items())


@dataclass
class _NumberDataPoint:
    attributes: dict[str, Any]
    start_time_unix_nano: int
    time_unix_nano: int
    value: int | float
    flags: int = 0

    def encode(self) -> bytes:
        if isinstance(self.value, float):
            value = _tag(4, 1) + struct.pack("<d", self.value)
        else:
            value = _tag(6, 1) + struct.pack("<q", _signed64(int(self.value)))
        return b"".join(
            (
                _fixed64(2, self.start_time_unix_nano),
                _fixed64(3, self.time_unix_nano),
                value,
                _attributes(7, self.attributes),
                _uint(8, self.flags),
            )
        )


@dataclass
class _SumData:
    data_points: list[_NumberDataPoint]
    aggregation_temporality: int
    is_monotonic: bool

    def encode(self) -> bytes:
        points = b"".join(_message(1, dp.encode()) for dp in self.data_points)
        return points + _uint(2, self.aggregation_temporality) + _uint(3, int(self.is_monotonic))


@dataclass
class _MetricData:
    name: str
    description: str
    unit: str
    data: _SumData | None

    def encode(self) -> bytes:
        body = _string(1, self.name) + _string(2, self.description) + _string(3, self.unit)
        if self.data is not None:
            body += _message(7, self.data.encode())
        return body


@dataclass
class _ScopeData:
    name: str
    version: str
    attributes: dict[str, Any]

    def encode(self) -> bytes:
        return _string(1, self.name) + _string(2, self.version) + _attributes(3, self.attributes)


@dataclass
class _ScopeMetricsData:
    scope: _ScopeData
    metrics: list[_MetricData]
    schema_url: str

    def encode(self) -> bytes:
        return (
            _message(1, self.scope.encode())
            + b"".join(_message(2, m.encode()) for m in self.metrics)
            + _string(3, self.schema_url)
        )


@dataclass
class _ResourceData:
    attributes: dict[str, Any]
    dropped_attributes_count: int = 0

    def encode(self) -> bytes:
        return _attributes(1, self.attributes) + _uint(2, self.dropped_attributes_count)


@dataclass
class _ResourceMetricsData:
    resource: _ResourceData | None
    scope_metrics: list[_ScopeMetricsData]
    schema_url: str

    def encode(self) -> bytes:
        body = b""
        if self.resource is not None:
            body += _message(1, self.resource.encode())
        body += b"".join(_message(2, sm.encode()) for sm in self.scope_metrics)
        return body + _string(3, self.schema_url)


@dataclass
class ExportMetricsServiceRequest:
    """An OTLP metrics export request."""

    resource_metrics: list[_ResourceMetricsData] = field(default_factory=list)

    def encode(self) -> bytes:
        """Serialise the request in protobuf wire format."""
        return b"".join(_message(1, rm.encode()) for rm in self.resource_metrics)


# --- transformation ---------------------------------------------------------


def to_nanos(time: datetime) -> int:
    """Nanoseconds since the Unix epoch; zero for times before it."""
    if time.tzinfo is None:
        time = time.replace(tzinfo=timezone.utc)
    delta = time - _EPOCH
    if delta < timedelta(0):
        return 0
    return (delta // timedelta(microseconds=1)) * 1000


def _transform_resource(resource: Resource) -> _ResourceData | None:
    if not resource.attributes:
        return None
    return _ResourceData(dict(resource.attributes))


def _transform_sum(data: Sum) -> _SumData:
    return _SumData(
        data_points=[
            _NumberDataPoint(
                attributes=dict(dp.attributes),
                start_time_unix_nano=to_nanos(dp.start_time) if dp.start_time else 0,
                time_unix_nano=to_nanos(dp.time) if dp.time else 0,
                value=dp.value,
            )
            for dp in data.data_points
        ],
        aggregation_temporality=int(Temporality(data.temporality)),
        is_monotonic=data.is_monotonic,
    )


def _transform_data(data: Any) -> _SumData | None:
    if isinstance(data, Sum):
        return _transform_sum(data)
    _log.error("unknown aggregator")
    return None


def _transform_scope_metrics(scope_metrics: ScopeMetrics) -> _ScopeMetricsData:
    scope = scope_metrics.scope
    return _ScopeMetricsData(
        scope=_ScopeData(scope.name, scope.version or "", dict(scope.attributes)),
        metrics=[
            _MetricData(m.name, m.description, m.unit, _transform_data(m.data))
            for m in scope_metrics.metrics
        ],
        schema_url=scope.schema_url or "",
    )


def transform_resource_metrics(metrics: ResourceMetrics) -> ExportMetricsServiceRequest:
    """Build the export request for one resource's metrics."""
    return ExportMetricsServiceRequest(
        [
            _ResourceMetricsData(
                resource=_transform_resource(metrics.resource),
                scope_metrics=[_transform_scope_metrics(sm) for sm in metrics.scope_metrics],
                schema_url=metrics.resource.schema_url or "",
            )
        ]
    )