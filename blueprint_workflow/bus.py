"""Event bus - EventBusProtocol and InMemoryEventBus."""

import inspect
import threading
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Protocol

from .events import Event, EventActor, EventMetadata, SystemEventType, event_key
from .logging import get_logger

EventCallback = Callable[[Event], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class EventBusProtocol(Protocol):
    """Protocol for event bus implementations."""

    def subscribe(self, event_type: SystemEventType | str, callback: EventCallback) -> Unsubscribe:
        """Subscribe a callback to an event type.

        Args:
            event_type: Event type to subscribe to
            callback: Sync or async callback

        Returns:
            Callable that removes the subscription
        """
        ...

    async def emit(
        self,
        event_type: SystemEventType | str,
        payload: Mapping[str, object],
        actor: EventActor,
        metadata: Mapping[str, object] | None = None,
        *,
        blueprint_id: str | None = None,
    ) -> Event:
        """Build and publish an event.

        Args:
            event_type: Event type to emit
            payload: Event payload
            actor: Actor the event is attributed to
            metadata: Optional metadata (correlation_id, source, anything else)
            blueprint_id: Optional blueprint scope override

        Returns:
            The published event
        """
        ...

    async def publish(self, event: Event) -> None:
        """Publish an already built event.

        Args:
            event: Event to publish
        """
        ...


class InMemoryEventBus(EventBusProtocol):
    """In-memory event bus implementation."""

    def __init__(self, blueprint_id: str = "") -> None:
        """Initialize in-memory event bus.

        Args:
            blueprint_id: Default blueprint scope for emitted events
        """
        self._blueprint_id = blueprint_id
        self._callbacks: dict[str, list[EventCallback]] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("blueprint_workflow.event_bus")

    def subscribe(self, event_type: SystemEventType | str, callback: EventCallback) -> Unsubscribe:
        key = event_key(event_type)
        with self._lock:
            self._callbacks.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._callbacks.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, event_type: SystemEventType | str) -> int:
        with self._lock:
            return len(self._callbacks.get(event_key(event_type), []))

    async def emit(
        self,
        event_type: SystemEventType | str,
        payload: Mapping[str, object],
        actor: EventActor,
        metadata: Mapping[str, object] | None = None,
        *,
        blueprint_id: str | None = None,
    ) -> Event:
        metadata = dict(metadata or {})
        event = Event(
            type=event_key(event_type),
            payload=dict(payload),
            actor=actor,
            metadata=EventMetadata(
                blueprint_id=blueprint_id or str(payload.get("blueprint_id") or self._blueprint_id),
                timestamp=datetime.now(timezone.utc),
                correlation_id=metadata.pop("correlation_id", None),
                source=metadata.pop("source", None),
                extra=metadata,
            ),
        )
        await self.publish(event)
        return event

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribed callbacks.

        Args:
            event: Event to publish
        """
        with self._lock:
            callbacks = list(self._callbacks.get(event.type, []))
        if not callbacks:
            return

        self._logger.info(
            f"Publishing event {event.type} "
            f"(correlation_id={event.metadata.correlation_id}, subscribers={len(callbacks)})"
        )

        for callback in callbacks:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._logger.error(
                    f"Subscriber {getattr(callback, '__name__', callback)!r} failed for {event.type}: {exc}",
                    exc_info=True,
                )
