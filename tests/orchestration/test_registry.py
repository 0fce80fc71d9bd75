"""Tests for HandlerRegistry."""

from support import recording_handler

from blueprint_workflow.events import SystemEventType
from blueprint_workflow.registry import HandlerRegistry
from blueprint_workflow.workflow import HandlerOptions


def test_priority_ordering_regardless_of_registration_order():
    registry = HandlerRegistry()
    calls: list[str] = []

    registry.register("E", recording_handler("low", calls, priority=1))
    registry.register("E", recording_handler("high", calls, priority=10))

    assert [entry.id for entry in registry.lookup("E")] == ["high", "low"]


def test_equal_priorities_keep_registration_order():
    registry = HandlerRegistry()
    calls: list[str] = []

    for handler_id in ("a", "b", "c"):
        registry.register("E", recording_handler(handler_id, calls, priority=5))
    registry.register("E", recording_handler("top", calls, priority=6))

    assert [entry.id for entry in registry.lookup("E")] == ["top", "a", "b", "c"]


def test_register_same_id_replaces_in_place():
    registry = HandlerRegistry()
    calls: list[str] = []
    first = recording_handler("h", calls, priority=1)
    second = recording_handler("h", calls, priority=1)

    registry.register("E", first)
    registry.register("E", recording_handler("other", calls, priority=1))
    registry.register("E", second)

    entries = registry.lookup("E")
    assert len(entries) == 2
    assert entries[0].handler is second
    assert registry.count() == 2


def test_register_reports_first_registration_per_key():
    registry = HandlerRegistry()
    calls: list[str] = []

    assert registry.register(SystemEventType.TASK_COMPLETED, recording_handler("a", calls)) is True
    assert registry.register("task.completed", recording_handler("b", calls)) is False
    assert registry.register("log.created", recording_handler("c", calls)) is True


def test_unregister_removes_and_ignores_unknown():
    registry = HandlerRegistry()
    calls: list[str] = []
    registry.register("E", recording_handler("a", calls))

    assert registry.unregister("E", "missing") is False
    assert registry.unregister("unknown-key", "a") is False
    assert registry.unregister("E", "a") is True
    assert registry.lookup("E") == ()
    # The key stays known, so a new registration is not a first registration.
    assert registry.register("E", recording_handler("b", calls)) is False


def test_lookup_unknown_key_is_empty():
    assert HandlerRegistry().lookup("nothing") == ()


def test_options_argument_overrides_handler_options():
    registry = HandlerRegistry()
    calls: list[str] = []

    registry.register("E", recording_handler("a", calls, priority=1))
    registry.register("E", recording_handler("b", calls, priority=2), HandlerOptions(priority=0))

    entries = registry.lookup("E")
    assert [entry.id for entry in entries] == ["a", "b"]
    assert entries[1].options.priority == 0


def test_lookup_returns_snapshot():
    registry = HandlerRegistry()
    calls: list[str] = []
    registry.register("E", recording_handler("a", calls))

    snapshot = registry.lookup("E")
    registry.register("E", recording_handler("b", calls, priority=9))

    assert [entry.id for entry in snapshot] == ["a"]


def test_find_searches_all_event_types():
    registry = HandlerRegistry()
    calls: list[str] = []
    registry.register("A", recording_handler("a", calls))
    registry.register("B", recording_handler("b", calls))

    assert registry.find("b").id == "b"
    assert registry.find("missing") is None
    assert sorted(registry.event_types()) == ["A", "B"]

    registry.clear()
    assert registry.count() == 0
