"""Helpers shared by the orchestration tests."""

from blueprint_workflow.events import Event, EventActor, EventMetadata
from blueprint_workflow.models import StepResult, WorkflowContext
from blueprint_workflow.workflow import FunctionHandler, HandlerOptions, RetryPolicy

FAST_RETRY = RetryPolicy(max_attempts=3, backoff_multiplier=2, initial_delay=0.0, max_delay=0.0)


def make_event(event_type: str = "test.event", payload: dict | None = None, blueprint_id: str = "bp-1") -> Event:
    return Event(
        type=event_type,
        payload=payload or {},
        actor=EventActor(user_id="user-1", user_name="Tester"),
        metadata=EventMetadata(blueprint_id=blueprint_id),
    )


def recording_handler(
    handler_id: str,
    calls: list[str],
    *,
    priority: int = 0,
    success: bool = True,
    data: object = None,
    retry_policy: RetryPolicy = FAST_RETRY,
    **options: object,
) -> FunctionHandler:
    """Handler that appends its id to ``calls`` on every execution."""

    async def execute(event: Event, context: WorkflowContext) -> StepResult:
        calls.append(handler_id)
        return StepResult(step_id=handler_id, success=success, data=data, error=None if success else "boom")

    return FunctionHandler(
        id=handler_id,
        name=handler_id,
        execute=execute,
        options=HandlerOptions(priority=priority, retry_policy=retry_policy, **options),
    )


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeEventBus:
    """Fake EventBus for testing."""

    def __init__(self) -> None:
        self.subscriptions: list[tuple[str, object]] = []
        self.emitted: list[dict[str, object]] = []

    def subscribe(self, event_type: str, callback: object):
        self.subscriptions.append((event_type, callback))
        return lambda: None

    async def emit(self, event_type, payload, actor, metadata=None, *, blueprint_id=None):
        self.emitted.append(
            {
                "event_type": str(event_type),
                "payload": dict(payload),
                "actor": actor,
                "metadata": dict(metadata or {}),
                "blueprint_id": blueprint_id,
            }
        )

    async def publish(self, event: Event) -> None:
        pass
