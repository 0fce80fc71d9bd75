"""Handler registry - event type to priority-ordered handlers."""

import threading
from dataclasses import dataclass

from .events import SystemEventType, event_key
from .logging import get_logger
from .workflow import HandlerOptions, WorkflowHandler


@dataclass(frozen=True)
class RegisteredHandler:
    """A handler together with the options it was registered with."""

    handler: WorkflowHandler
    options: HandlerOptions

    @property
    def id(self) -> str:
        return self.handler.id

    @property
    def name(self) -> str:
        return self.handler.name


class HandlerRegistry:
    """Maps event keys to handlers ordered by descending priority.

    Buckets are immutable tuples swapped under the lock, so a dispatch that
    already looked up a bucket keeps a fully sorted snapshot.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, tuple[RegisteredHandler, ...]] = {}
        self._lock = threading.RLock()
        self._logger = get_logger("blueprint_workflow.registry")

    def register(
        self,
        event_type: SystemEventType | str,
        handler: WorkflowHandler,
        options: HandlerOptions | None = None,
    ) -> bool:
        """Insert or replace ``handler`` for ``event_type``.

        Args:
            event_type: Event key
            handler: Handler to register
            options: Options overriding ``handler.options``

        Returns:
            True if this is the first registration ever seen for the key
        """
        key = event_key(event_type)
        entry = RegisteredHandler(
            handler=handler,
            options=options or getattr(handler, "options", None) or HandlerOptions(),
        )
        with self._lock:
            is_new_key = key not in self._buckets
            bucket = list(self._buckets.get(key, ()))
            for index, existing in enumerate(bucket):
                if existing.id == handler.id:
                    self._logger.warning(f"Handler {handler.id} already exists for {key}. Replacing...")
                    bucket[index] = entry
                    break
            else:
                bucket.append(entry)
            self._buckets[key] = tuple(sorted(bucket, key=lambda e: -e.options.priority))

        self._logger.info(f'Registered handler "{handler.id}" for event "{key}"')
        return is_new_key

    def unregister(self, event_type: SystemEventType | str, handler_id: str) -> bool:
        """Remove a handler; returns False when it was not registered."""
        key = event_key(event_type)
        with self._lock:
            bucket = self._buckets.get(key)
            if not bucket:
                return False
            remaining = tuple(e for e in bucket if e.id != handler_id)
            if len(remaining) == len(bucket):
                return False
            # The key is kept so the bus subscription is not duplicated later.
            self._buckets[key] = remaining

        self._logger.info(f'Unregistered handler "{handler_id}" from event "{key}"')
        return True

    def lookup(self, event_type: SystemEventType | str) -> tuple[RegisteredHandler, ...]:
        with self._lock:
            return self._buckets.get(event_key(event_type), ())

    def find(self, handler_id: str) -> RegisteredHandler | None:
        """Find a handler by id across all event keys."""
        with self._lock:
            for bucket in self._buckets.values():
                for entry in bucket:
                    if entry.id == handler_id:
                        return entry
        return None

    def event_types(self) -> list[str]:
        with self._lock:
            return list(self._buckets)

    def count(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._buckets.values())

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
