"""Tests for InMemoryEventBus."""

import pytest

from blueprint_workflow.bus import InMemoryEventBus
from blueprint_workflow.events import Event, EventActor, SystemEventType


@pytest.mark.asyncio
async def test_event_bus_subscribe_and_emit():
    """Test subscribing and emitting events."""
    bus = InMemoryEventBus(blueprint_id="bp-1")

    events_received: list[Event] = []

    async def callback(event: Event) -> None:
        events_received.append(event)

    bus.subscribe(SystemEventType.TASK_COMPLETED, callback)

    await bus.emit(
        SystemEventType.TASK_COMPLETED,
        {"task_id": "task-1"},
        EventActor(user_id="user-1"),
        {"correlation_id": "wf_1", "source": "test", "trace": "abc"},
    )

    assert len(events_received) == 1
    event = events_received[0]
    assert event.type == "task.completed"
    assert event.payload == {"task_id": "task-1"}
    assert event.blueprint_id == "bp-1"
    assert event.metadata.correlation_id == "wf_1"
    assert event.metadata.source == "test"
    assert event.metadata.extra == {"trace": "abc"}


@pytest.mark.asyncio
async def test_event_bus_multiple_subscribers_and_sync_callbacks():
    """Both async and sync callbacks receive the event."""
    bus = InMemoryEventBus()
    received_1: list[Event] = []
    received_2: list[Event] = []

    async def callback1(event: Event) -> None:
        received_1.append(event)

    bus.subscribe("workflow.started", callback1)
    bus.subscribe("workflow.started", received_2.append)

    await bus.emit("workflow.started", {}, EventActor(user_id="u"), blueprint_id="bp-2")

    assert len(received_1) == 1
    assert len(received_2) == 1
    assert received_2[0].blueprint_id == "bp-2"


@pytest.mark.asyncio
async def test_event_bus_no_subscribers():
    """Emitting without subscribers should not raise."""
    bus = InMemoryEventBus()

    event = await bus.emit("nobody.listens", {"x": 1}, EventActor(user_id="u"))

    assert event.type == "nobody.listens"


@pytest.mark.asyncio
async def test_event_bus_unsubscribe():
    """Unsubscribed callbacks stop receiving events; unsubscribing twice is safe."""
    bus = InMemoryEventBus()
    received: list[Event] = []

    unsubscribe = bus.subscribe("a", received.append)
    unsubscribe()
    unsubscribe()

    await bus.emit("a", {}, EventActor(user_id="u"))

    assert received == []
    assert bus.subscriber_count("a") == 0


@pytest.mark.asyncio
async def test_event_bus_failing_subscriber_does_not_block_others():
    bus = InMemoryEventBus()
    received: list[Event] = []

    async def broken(event: Event) -> None:
        raise RuntimeError("subscriber failure")

    bus.subscribe("a", broken)
    bus.subscribe("a", received.append)

    await bus.emit("a", {}, EventActor(user_id="u"))

    assert len(received) == 1
