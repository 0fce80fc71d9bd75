"""Workflow models - WorkflowContext, StepResult, WorkflowStatus, WorkflowResult."""

import itertools
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .events import EventActor

_workflow_counter = itertools.count(1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_workflow_id() -> str:
    """Generate a process-unique workflow id (``wf_<ms>_<seq>_<random>``)."""
    return f"wf_{int(time.time() * 1000)}_{next(_workflow_counter)}_{secrets.token_hex(4)}"


class WorkflowState(str, Enum):
    """Lifecycle state of a workflow instance."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({WorkflowState.COMPLETED, WorkflowState.FAILED, WorkflowState.CANCELLED})


class WorkflowResultStatus(str, Enum):
    """Outcome of a config-driven workflow run."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class WorkflowContext:
    """Context owned by a single workflow execution."""

    workflow_id: str
    blueprint_id: str
    initiator: EventActor
    start_time: datetime = field(default_factory=utc_now)
    current_step: int = 0
    total_steps: int = 0
    data: dict[str, object] = field(default_factory=dict)
    metadata: dict[str, object] = field(default_factory=dict)
    entity_id: str | None = None
    entity_type: str | None = None


@dataclass
class FollowUpEvent:
    """Event a handler asks the orchestrator to emit after it succeeds."""

    event_type: str
    payload: dict[str, object] = field(default_factory=dict)


@dataclass
class StepResult:
    """Result of a single handler execution."""

    step_id: str
    success: bool
    data: object = None
    error: BaseException | str | None = None
    continue_workflow: bool | None = None
    next_steps: list[str] = field(default_factory=list)
    follow_up: list[FollowUpEvent] = field(default_factory=list)
    attempts: int = 0

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error)


@dataclass
class WorkflowErrorInfo:
    """Error recorded against a workflow."""

    step_id: str
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    attempt: int = 1
    stack: str | None = None
    error_type: str | None = None


@dataclass
class WorkflowStatus:
    """Lifecycle record of a workflow instance."""

    workflow_id: str
    state: WorkflowState
    current_step: int
    total_steps: int
    start_time: datetime
    end_time: datetime | None = None
    errors: list[WorkflowErrorInfo] = field(default_factory=list)
    workflow_type: str | None = None
    blueprint_id: str | None = None


@dataclass
class WorkflowResult:
    """Result of a config-driven workflow execution."""

    workflow_id: str
    status: WorkflowResultStatus
    completed_steps: int
    total_steps: int
    errors: list[WorkflowErrorInfo]
    duration: float
    result_data: dict[str, object] = field(default_factory=dict)


@dataclass
class OrchestratorStatistics:
    """Snapshot of orchestrator counters."""

    total_workflows: int
    running_workflows: int
    completed_workflows: int
    failed_workflows: int
    cancelled_workflows: int
    paused_workflows: int
    registered_handlers: int
    running_count: int
    error_count: int
    last_execution_time: datetime | None
