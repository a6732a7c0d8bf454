"""In-process model of self-describing trace events grouped by level and keyword."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

_MAX_STRUCT_FIELDS = 127
_KEYWORD_LIMIT = 1 << 64


class Level(enum.IntEnum):
    """Event severity level as understood by trace consumers."""

    INVALID = 0
    CRITICAL_ERROR = 1
    ERROR = 2
    WARNING = 3
    INFORMATIONAL = 4
    VERBOSE = 5


class FieldFormat(enum.IntEnum):
    """How a consumer should present a field's value."""

    DEFAULT = 0
    UNSIGNED_INT = 1
    SIGNED_INT = 2
    HEX_INT = 3
    ERRNO = 4
    PID = 5
    TIME = 6
    BOOLEAN = 7
    FLOAT = 8
    HEX_BYTES = 9
    STRING8 = 10
    STRING_UTF = 11


class Opcode(enum.IntEnum):
    """Role of an event within an activity."""

    INFO = 0
    ACTIVITY_START = 1
    ACTIVITY_STOP = 2


@dataclass
class Field:
    """One field of an event. Structs carry a ``field_count`` and no value."""

    name: str
    value: Any = None
    format: FieldFormat = FieldFormat.DEFAULT
    tag: int = 0
    field_count: int | None = None


@dataclass(frozen=True)
class Event:
    """A fully built event, as delivered to listeners."""

    name: str
    tags: int = 0
    opcode: Opcode = Opcode.INFO
    fields: tuple[Field, ...] = ()
    level: Level = Level.INVALID
    keyword: int = 0
    provider_name: str = ""


@dataclass
class EventSet:
    """Events of one provider sharing a level and keyword.

    The set is enabled while at least one listener is attached.
    """

    provider_name: str
    level: Level
    keyword: int
    tracepoint_name: str
    listeners: list[Callable[[Event], None]] = field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return bool(self.listeners)


def _check_keyword(keyword: int) -> int:
    if not 0 <= keyword < _KEYWORD_LIMIT:
        raise ValueError("keyword must fit in 64 bits")
    return keyword


class EventProvider:
    """A named source of events holding one event set per (level, keyword)."""

    def __init__(self, name: str, group_name: str | None = None) -> None:
        if not name:
            raise ValueError("provider name must not be empty")
        self.name = name
        self.group_name = group_name
        self._sets: dict[tuple[Level, int], EventSet] = {}

    def _tracepoint_name(self, level: Level, keyword: int) -> str:
        group = f"G{self.group_name}" if self.group_name else ""
        return f"{self.name}_L{int(level)}K{keyword:x}{group}"

    def register_set(self, level: Level | int, keyword: int) -> EventSet:
        """Register (or return the already registered) set for level and keyword."""
        key = (Level(level), _check_keyword(keyword))
        event_set = self._sets.get(key)
        if event_set is None:
            event_set = EventSet(self.name, key[0], key[1], self._tracepoint_name(*key))
            self._sets[key] = event_set
        return event_set

    def find_set(self, level: Level | int, keyword: int) -> EventSet | None:
        """The registered set for level and keyword, or None."""
        try:
            key = (Level(level), keyword)
        except ValueError:
            return None
        return self._sets.get(key)

    def __repr__(self) -> str:
        return f"EventProvider({self.name!r}, sets={len(self._sets)})"


class EventBuilder:
    """Accumulates the fields of one event at a time."""

    def __init__(self) -> None:
        self._name = ""
        self._tags = 0
        self._opcode = Opcode.INFO
        self._fields: list[Field] = []

    def reset(self, name: str, tags: int = 0) -> None:
        """Start a new event, discarding any fields collected so far."""
        self._name = name
        self._tags = tags
        self._opcode = Opcode.INFO
        self._fields = []

    def opcode(self, opcode: Opcode) -> None:
        self._opcode = Opcode(opcode)

    def add_value(self, name: str, value: Any, field_format: FieldFormat) -> None:
        """Append a scalar field."""
        self._fields.append(Field(name, value, FieldFormat(field_format)))

    def add_str(self, name: str, value: str, field_format: FieldFormat) -> None:
        """Append a string field."""
        self._fields.append(Field(name, str(value), FieldFormat(field_format)))

    def add_struct(self, name: str, field_count: int) -> int:
        """Open a struct holding the next ``field_count`` fields; returns its bookmark."""
        _check_count(field_count)
        self._fields.append(Field(name, None, FieldFormat.DEFAULT, 0, field_count))
        return len(self._fields) - 1

    def set_struct_field_count(self, bookmark: int, count: int) -> None:
        """Change the field count of the struct at ``bookmark``."""
        _check_count(count)
        if not 0 <= bookmark < len(self._fields):
            raise ValueError(f"no field at bookmark {bookmark}")
        target = self._fields[bookmark]
        if target.field_count is None:
            raise ValueError(f"field {target.name!r} is not a struct")
        target.field_count = count

    def build(self) -> Event:
        """The event collected so far, not yet bound to an event set."""
        fields = tuple(replace(f) for f in self._fields)
        return Event(self._name, self._tags, self._opcode, fields)

    def write(self, event_set: EventSet) -> Event | None:
        """Deliver the event to the set's listeners; None when the set is disabled."""
        if not event_set.enabled:
            return None
        event = replace(
            self.build(),
            level=event_set.level,
            keyword=event_set.keyword,
            provider_name=event_set.provider_name,
        )
        for listener in list(event_set.listeners):
            listener(event)
        return event


def _check_count(count: int) -> None:
    if not 1 <= count <= _MAX_STRUCT_FIELDS:
        raise ValueError(f"struct field count must be between 1 and {_MAX_STRUCT_FIELDS}")