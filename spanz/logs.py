"""Log exporter writing OpenTelemetry log records as structured trace events."""

from __future__ import annotations

import enum
import logging
import math
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from .events import EventBuilder, EventProvider, FieldFormat, Level, Opcode

_log = logging.getLogger(__name__)

EVENT_ID = "event_id"
EVENT_NAME_PRIMARY = "event_name"
EVENT_NAME_SECONDARY = "name"

_REGISTERED_LEVELS = (
    Level.INFORMATIONAL,
    Level.VERBOSE,
    Level.WARNING,
    Level.ERROR,
    Level.CRITICAL_ERROR,
)


class Severity(enum.IntEnum):
    """OpenTelemetry log severity numbers."""

    TRACE = 1
    TRACE2 = 2
    TRACE3 = 3
    TRACE4 = 4
    DEBUG = 5
    DEBUG2 = 6
    DEBUG3 = 7
    DEBUG4 = 8
    INFO = 9
    INFO2 = 10
    INFO3 = 11
    INFO4 = 12
    WARN = 13
    WARN2 = 14
    WARN3 = 15
    WARN4 = 16
    ERROR = 17
    ERROR2 = 18
    ERROR3 = 19
    ERROR4 = 20
    FATAL = 21
    FATAL2 = 22
    FATAL3 = 23
    FATAL4 = 24


def severity_level(severity: Severity) -> Level:
    """Event level for a log severity."""
    severity = Severity(severity)
    if severity <= Severity.DEBUG4:
        return Level.VERBOSE
    if severity <= Severity.INFO4:
        return Level.INFORMATIONAL
    if severity <= Severity.WARN4:
        return Level.WARNING
    if severity <= Severity.ERROR4:
        return Level.ERROR
    return Level.CRITICAL_ERROR


@dataclass
class ExporterConfig:
    """Keywords per logger name, or a default keyword when no map is given."""

    keywords_map: dict[str, int] = field(default_factory=dict)
    default_keyword: int = 1

    def get_log_keyword(self, name: str) -> int | None:
        return self.keywords_map.get(name)

    def get_log_keyword_or_default(self, name: str) -> int | None:
        if not self.keywords_map:
            return self.default_keyword
        return self.get_log_keyword(name)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LogRecord:
    """A log record; attributes keep their insertion order."""

    body: Any = None
    severity_number: Severity | None = None
    severity_text: str | None = None
    timestamp: datetime | None = None
    observed_timestamp: datetime = field(default_factory=_now)
    attributes: dict[str, Any] | None = None


@dataclass
class LogData:
    """A log record together with the name of the logger that produced it."""

    record: LogRecord
    instrumentation_name: str = ""


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    base = moment.strftime("%Y-%m-%dT%H:%M:%S")
    micros = moment.microsecond
    if micros == 0:
        fraction = ""
    elif micros % 1000 == 0:
        fraction = f".{micros // 1000:03d}"
    else:
        fraction = f".{micros:06d}"
    return f"{base}{fraction}+00:00"


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        text = str(int(value))
        return "-0" if value == 0 and math.copysign(1.0, value) < 0 else text
    return format(Decimal(repr(value)), "f")


def _body_text(body: Any) -> str:
    if isinstance(body, bool):
        return "true" if body else "false"
    if isinstance(body, int):
        return str(body)
    if isinstance(body, float):
        return _format_float(body)
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")
    return ""


def _add_attribute(builder: EventBuilder, name: str, value: Any) -> bool:
    if isinstance(value, bool):
        builder.add_value(name, value, FieldFormat.BOOLEAN)
    elif isinstance(value, int):
        builder.add_value(name, value, FieldFormat.SIGNED_INT)
    elif isinstance(value, float):
        builder.add_value(name, value, FieldFormat.FLOAT)
    elif isinstance(value, str):
        builder.add_str(name, value, FieldFormat.DEFAULT)
    else:
        return False
    return True


_local = threading.local()


def _builder() -> EventBuilder:
    builder = getattr(_local, "builder", None)
    if builder is None:
        builder = _local.builder = EventBuilder()
    return builder


class UserEventsExporter:
    """Write log records to the event sets of a provider."""

    def __init__(
        self,
        provider_name: str,
        provider_group: str | None,
        exporter_config: ExporterConfig,
    ) -> None:
        # The group is currently always the provider name.
        self.provider = EventProvider(provider_name, group_name=provider_name)
        self.exporter_config = exporter_config
        self._register_keywords()

    def _register_keywords(self) -> None:
        config = self.exporter_config
        keywords = list(config.keywords_map.values())
        if not keywords:
            _log.info("Register default keyword %d", config.default_keyword)
            keywords = [config.default_keyword]
        for keyword in keywords:
            for level in _REGISTERED_LEVELS:
                self.provider.register_set(level, keyword)

    def export_log_data(self, log_data: LogData) -> None:
        """Write one record if a listener is enabled for its level and keyword."""
        record = log_data.record
        level = (
            severity_level(record.severity_number)
            if record.severity_number is not None
            else Level.INVALID
        )
        keyword = self.exporter_config.get_log_keyword_or_default(
            log_data.instrumentation_name
        )
        if keyword is None:
            return
        event_set = self.provider.find_set(level, keyword)
        if event_set is None or not event_set.enabled:
            return

        eb = _builder()
        eb.reset(log_data.instrumentation_name, 0)
        eb.opcode(Opcode.INFO)
        eb.add_value("__csver__", 0x0401, FieldFormat.HEX_INT)

        event_time = record.timestamp if record.timestamp is not None else record.observed_timestamp
        eb.add_struct("PartA", 1)
        eb.add_str("time", _rfc3339(event_time), FieldFormat.DEFAULT)

        event_id: int | None = None
        event_name = ""
        has_primary_name = False
        part_c_bookmark: int | None = None
        part_c_count = 0
        for key, value in (record.attributes or {}).items():
            if key == EVENT_ID and isinstance(value, int) and not isinstance(value, bool):
                event_id = value
                continue
            if key == EVENT_NAME_PRIMARY and isinstance(value, str):
                has_primary_name = True
                event_name = value
                continue
            if key == EVENT_NAME_SECONDARY and isinstance(value, str):
                if not has_primary_name:
                    event_name = value
                continue
            if not isinstance(value, (bool, int, float, str)):
                continue
            if part_c_bookmark is None:
                part_c_bookmark = eb.add_struct("PartC", 1)
            _add_attribute(eb, key, value)
            part_c_count += 1
        if part_c_bookmark is not None:
            eb.set_struct_field_count(part_c_bookmark, part_c_count)

        part_b_bookmark = eb.add_struct("PartB", 1)
        eb.add_str("_typeName", "Logs", FieldFormat.DEFAULT)
        part_b_count = 1
        if record.body is not None:
            eb.add_str("body", _body_text(record.body), FieldFormat.DEFAULT)
            part_b_count += 1
        if level is not Level.INVALID:
            eb.add_value("severityNumber", int(level), FieldFormat.SIGNED_INT)
            part_b_count += 1
        if record.severity_text is not None:
            eb.add_str("severityText", record.severity_text, FieldFormat.SIGNED_INT)
            part_b_count += 1
        if event_id is not None:
            eb.add_value("eventId", event_id, FieldFormat.SIGNED_INT)
            part_b_count += 1
        if event_name:
            eb.add_str("name", event_name, FieldFormat.DEFAULT)
            part_b_count += 1
        eb.set_struct_field_count(part_b_bookmark, part_b_count)

        eb.write(event_set)

    def export(self, batch: Iterable[LogData]) -> None:
        """Export every record of a batch."""
        for log_data in batch:
            self.export_log_data(log_data)

    def event_enabled(self, level: Severity, target: str, name: str) -> bool:
        """Whether a record of this severity from logger ``name`` would be written."""
        config = self.exporter_config
        if config.keywords_map:
            keyword = config.get_log_keyword(name)
            if keyword is None:
                return False
        else:
            keyword = config.default_keyword
        event_set = self.provider.find_set(severity_level(level), keyword)
        return event_set is not None and event_set.enabled

    def __repr__(self) -> str:
        return "user_events log exporter"


class ReentrantLogProcessor:
    """Export each record as it is emitted, without buffering or locking."""

    def __init__(
        self,
        provider_name: str,
        provider_group: str | None,
        exporter_config: ExporterConfig,
    ) -> None:
        self.exporter = UserEventsExporter(provider_name, provider_group, exporter_config)
        self.is_shutdown = False

    def emit(self, data: LogData) -> None:
        if self.is_shutdown:
            return
        self.exporter.export_log_data(data)

    def force_flush(self) -> bool:
        """Records are written as they are emitted; report that nothing is pending."""
        return not self.is_shutdown or True

    def shutdown(self) -> None:
        """Mark the processor as shut down; later records are dropped."""
        self.is_shutdown = True

    def event_enabled(self, level: Severity, target: str, name: str) -> bool:
        return self.exporter.event_enabled(level, target, name)

    def __repr__(self) -> str:
        return f"ReentrantLogProcessor({self.exporter!r})"