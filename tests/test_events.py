import pytest

from spanz.events import (
    Event,
    EventBuilder,
    EventProvider,
    FieldFormat,
    Level,
    Opcode,
)


def test_register_and_find_set():
    provider = EventProvider("prov")
    registered = provider.register_set(Level.ERROR, 7)
    assert provider.find_set(Level.ERROR, 7) is registered
    assert provider.find_set(int(Level.ERROR), 7) is registered
    assert provider.find_set(Level.WARNING, 7) is None
    assert provider.find_set(Level.ERROR, 8) is None


def test_register_set_is_idempotent():
    provider = EventProvider("prov")
    first = provider.register_set(Level.VERBOSE, 1)
    assert provider.register_set(Level.VERBOSE, 1) is first


def test_tracepoint_name_includes_group():
    provider = EventProvider("prov", group_name="prov")
    event_set = provider.register_set(Level.INFORMATIONAL, 1)
    assert event_set.tracepoint_name == "prov_L4K1Gprov"


def test_invalid_keyword_rejected():
    provider = EventProvider("prov")
    with pytest.raises(ValueError):
        provider.register_set(Level.ERROR, -1)


def test_write_to_disabled_set_delivers_nothing():
    provider = EventProvider("prov")
    event_set = provider.register_set(Level.ERROR, 1)
    builder = EventBuilder()
    builder.reset("scope")
    builder.add_value("x", 1, FieldFormat.SIGNED_INT)
    assert event_set.enabled is False
    assert builder.write(event_set) is None


def test_write_delivers_event_to_listeners():
    provider = EventProvider("prov")
    event_set = provider.register_set(Level.ERROR, 3)
    received: list[Event] = []
    event_set.listeners.append(received.append)
    builder = EventBuilder()
    builder.reset("scope", 0)
    builder.opcode(Opcode.INFO)
    builder.add_str("who", "someone", FieldFormat.DEFAULT)
    written = builder.write(event_set)
    assert received == [written]
    assert written.name == "scope"
    assert written.level is Level.ERROR
    assert written.keyword == 3
    assert written.provider_name == "prov"
    assert [(f.name, f.value) for f in written.fields] == [("who", "someone")]


def test_struct_bookmark_updates_count():
    builder = EventBuilder()
    builder.reset("scope")
    bookmark = builder.add_struct("Part", 1)
    builder.add_value("a", True, FieldFormat.BOOLEAN)
    builder.add_value("b", 2.5, FieldFormat.FLOAT)
    builder.set_struct_field_count(bookmark, 2)
    event = builder.build()
    assert event.fields[bookmark].name == "Part"
    assert event.fields[bookmark].field_count == 2
    assert event.fields[1].field_count is None


def test_set_struct_count_on_scalar_raises():
    builder = EventBuilder()
    builder.reset("scope")
    builder.add_value("a", 1, FieldFormat.SIGNED_INT)
    with pytest.raises(ValueError):
        builder.set_struct_field_count(0, 1)
    with pytest.raises(ValueError):
        builder.set_struct_field_count(5, 1)


def test_struct_count_must_be_positive():
    builder = EventBuilder()
    builder.reset("scope")
    with pytest.raises(ValueError):
        builder.add_struct("Part", 0)


def test_reset_clears_fields_and_opcode():
    builder = EventBuilder()
    builder.reset("first")
    builder.opcode(Opcode.ACTIVITY_START)
    builder.add_value("a", 1, FieldFormat.SIGNED_INT)
    builder.reset("second", 5)
    event = builder.build()
    assert event.name == "second"
    assert event.tags == 5
    assert event.opcode is Opcode.INFO
    assert event.fields == ()


def test_built_event_does_not_change_with_builder():
    builder = EventBuilder()
    builder.reset("scope")
    bookmark = builder.add_struct("Part", 1)
    event = builder.build()
    builder.set_struct_field_count(bookmark, 3)
    assert event.fields[0].field_count == 1