"""Handler contract - RetryPolicy, HandlerOptions, WorkflowHandler, FunctionHandler."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .events import Event
from .models import StepResult, WorkflowContext

Condition = Callable[[Event], bool]
Execute = Callable[[Event, WorkflowContext], Awaitable[StepResult]]
Validate = Callable[[Event], bool]
Rollback = Callable[[WorkflowContext], Awaitable[None] | None]


class RetryPolicy(BaseModel):
    """Exponential backoff retry policy (delays in seconds)."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self


DEFAULT_RETRY_POLICY = RetryPolicy()

# Single attempt; used for config steps that are not retryable.
NO_RETRY = RetryPolicy(max_attempts=1, initial_delay=0, max_delay=0)


@dataclass(frozen=True)
class HandlerOptions:
    """Registration options for a handler."""

    priority: int = 0
    retry_policy: RetryPolicy | None = None
    timeout: float | None = None
    critical: bool = False
    retryable: bool = True
    condition: Condition | None = None


@runtime_checkable
class WorkflowHandler(Protocol):
    """Contract implemented by business handlers.

    ``validate(event) -> bool`` and ``rollback(context)`` are optional;
    the orchestrator looks them up with ``getattr``.
    """

    id: str
    name: str
    options: HandlerOptions

    async def execute(self, event: Event, context: WorkflowContext) -> StepResult:
        ...


@dataclass
class FunctionHandler:
    """Handler assembled from plain callables."""

    id: str
    name: str
    execute: Execute
    validate: Validate | None = None
    rollback: Rollback | None = None
    options: HandlerOptions = field(default_factory=HandlerOptions)
    description: str | None = None
