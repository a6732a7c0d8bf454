"""Span data types shared by the span queue, the aggregator and the processor."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SpanContext:
    """Identity of a span: the key spans are compared and indexed by."""

    trace_id: int = 0
    span_id: int = 0
    trace_flags: int = 0
    is_remote: bool = False
    trace_state: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.trace_id < 1 << 128:
            raise ValueError("trace_id must fit in 128 bits")
        if not 0 <= self.span_id < 1 << 64:
            raise ValueError("span_id must fit in 64 bits")
        if not 0 <= self.trace_flags < 1 << 8:
            raise ValueError("trace_flags must fit in 8 bits")

    @property
    def trace_id_hex(self) -> str:
        return f"{self.trace_id:032x}"

    @property
    def span_id_hex(self) -> str:
        return f"{self.span_id:016x}"


class StatusCode(enum.Enum):
    """Outcome of a span."""

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class Status:
    """Span status with an optional error description."""

    code: StatusCode = StatusCode.UNSET
    description: str = ""

    @classmethod
    def ok(cls) -> Status:
        return cls(StatusCode.OK)

    @classmethod
    def error(cls, description: str) -> Status:
        return cls(StatusCode.ERROR, description)

    def is_error(self) -> bool:
        return self.code is StatusCode.ERROR


@dataclass
class SpanData:
    """A snapshot of a span as seen when it starts or ends."""

    span_context: SpanContext = field(default_factory=SpanContext)
    name: str = ""
    start_time: datetime = field(default_factory=_now)
    end_time: datetime = field(default_factory=_now)
    status: Status = field(default_factory=Status)
    parent_span_id: int = 0
    attributes: dict[str, Any] = field(default_factory=dict)