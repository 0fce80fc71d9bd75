"""Blueprint workflow - event-driven workflow orchestration."""

from .bus import EventBusProtocol, InMemoryEventBus
from .compensation import CompensationManager
from .config import DEFAULT_WORKFLOW_CONFIG, SETCWorkflowType, StepConfig, WorkflowConfig, WorkflowTypeConfig
from .events import Event, EventActor, EventMetadata, SystemEventType
from .executor import WorkflowExecutor
from .handlers import InMemoryRecordRepository, RecordRepository, build_default_handlers
from .models import (
    FollowUpEvent,
    OrchestratorStatistics,
    StepResult,
    WorkflowContext,
    WorkflowErrorInfo,
    WorkflowResult,
    WorkflowResultStatus,
    WorkflowState,
    WorkflowStatus,
)
from .orchestrator import Orchestrator
from .registry import HandlerRegistry
from .state_store import WorkflowStateStore
from .workflow import DEFAULT_RETRY_POLICY, FunctionHandler, HandlerOptions, RetryPolicy, WorkflowHandler

__all__ = [
    "CompensationManager",
    "DEFAULT_RETRY_POLICY",
    "DEFAULT_WORKFLOW_CONFIG",
    "Event",
    "EventActor",
    "EventBusProtocol",
    "EventMetadata",
    "FollowUpEvent",
    "FunctionHandler",
    "HandlerOptions",
    "HandlerRegistry",
    "InMemoryEventBus",
    "InMemoryRecordRepository",
    "Orchestrator",
    "OrchestratorStatistics",
    "RecordRepository",
    "RetryPolicy",
    "SETCWorkflowType",
    "StepConfig",
    "StepResult",
    "SystemEventType",
    "WorkflowConfig",
    "WorkflowContext",
    "WorkflowErrorInfo",
    "WorkflowExecutor",
    "WorkflowHandler",
    "WorkflowResult",
    "WorkflowResultStatus",
    "WorkflowState",
    "WorkflowStateStore",
    "WorkflowStatus",
    "WorkflowTypeConfig",
    "create_default_orchestrator",
]


def create_default_orchestrator(
    event_bus: EventBusProtocol | None = None,
    repository: RecordRepository | None = None,
    config: WorkflowConfig | None = None,
) -> Orchestrator:
    """Create an orchestrator wired with the construction-flow handlers.

    Args:
        event_bus: Event bus to subscribe to (in-memory if omitted)
        repository: Record repository for the handlers (in-memory if omitted)
        config: Workflow configuration (DEFAULT_WORKFLOW_CONFIG if omitted)

    Returns:
        Orchestrator instance; call ``initialize`` to register the handlers
    """
    bus = event_bus or InMemoryEventBus()
    records = repository or InMemoryRecordRepository()
    return Orchestrator(
        event_bus=bus,
        config=config,
        default_handlers=build_default_handlers(records),
    )
