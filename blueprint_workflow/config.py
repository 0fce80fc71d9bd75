"""Workflow configuration - step sequences per workflow type."""

from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .workflow import DEFAULT_RETRY_POLICY, RetryPolicy


class SETCWorkflowType(str, Enum):
    """Built-in workflow types of the construction flow."""

    TASK_COMPLETION = "task.completion"
    LOG_INSPECTION = "log.inspection"
    QC_INSPECTION = "qc.inspection"
    ACCEPTANCE = "acceptance.process"
    INVOICE_PAYMENT = "finance.invoice"
    WARRANTY = "warranty.management"
    DEFECT_HANDLING = "defect.handling"
    ISSUE_HANDLING = "issue.handling"


class StepConfig(BaseModel):
    """A single step of a config-driven workflow."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    handler_id: str
    condition: str | None = None
    retryable: bool = True
    critical: bool = False
    order: int = 0

    def applies_to(self, data: Mapping[str, object]) -> bool:
        """Evaluate ``condition`` against context data.

        ``"key"`` holds when ``data[key]`` is truthy, ``"!key"`` when it is
        falsy or missing. A step without a condition always applies.
        """
        if not self.condition or not self.condition.strip():
            return True
        expression = self.condition.strip()
        negate = expression.startswith("!")
        key = expression[1:].strip() if negate else expression
        value = bool(data.get(key))
        return not value if negate else value


class WorkflowTypeConfig(BaseModel):
    """Configuration of one workflow type."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY
    timeout: float = Field(default=30.0, gt=0)
    steps: tuple[StepConfig, ...] = ()
    description: str | None = None

    def ordered_steps(self) -> list[StepConfig]:
        return sorted(self.steps, key=lambda step: step.order)


class WorkflowConfig(BaseModel):
    """Process-wide workflow configuration, immutable once built."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    global_retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY
    global_timeout: float = Field(default=30.0, gt=0)
    max_concurrent_workflows: int = Field(default=100, ge=1)
    max_workflow_history: int = Field(default=1000, ge=1)
    workflows: dict[str, WorkflowTypeConfig] = Field(default_factory=dict)

    def get_workflow(self, workflow_type: SETCWorkflowType | str) -> WorkflowTypeConfig | None:
        """Return the enabled config for ``workflow_type``, or None."""
        if not self.enabled:
            return None
        key = workflow_type.value if isinstance(workflow_type, SETCWorkflowType) else str(workflow_type)
        type_config = self.workflows.get(key)
        if type_config is None or not type_config.enabled:
            return None
        return type_config


def _single_step(step_id: str, name: str, handler_id: str, description: str) -> WorkflowTypeConfig:
    return WorkflowTypeConfig(
        retry_policy=RetryPolicy(max_attempts=3, backoff_multiplier=2, initial_delay=1.0, max_delay=10.0),
        timeout=30.0,
        steps=(
            StepConfig(id=step_id, name=name, handler_id=handler_id, retryable=True, critical=True, order=1),
        ),
        description=description,
    )


DEFAULT_WORKFLOW_CONFIG = WorkflowConfig(
    workflows={
        SETCWorkflowType.TASK_COMPLETION.value: _single_step(
            "create-log",
            "Create construction log",
            "task-completed-handler",
            "Create a construction log when a task is completed",
        ),
        SETCWorkflowType.LOG_INSPECTION.value: _single_step(
            "create-qc",
            "Create pending QC inspection",
            "log-created-handler",
            "Create a pending QC inspection when a log is created",
        ),
        SETCWorkflowType.QC_INSPECTION.value: _single_step(
            "process-qc-result",
            "Process QC result",
            "qc-passed-handler",
            "Create an acceptance request for a passed inspection",
        ),
        SETCWorkflowType.ACCEPTANCE.value: _single_step(
            "process-acceptance-result",
            "Process acceptance result",
            "acceptance-finalized-handler",
            "Create invoice, payment and warranty records for an accepted acceptance",
        ),
    }
)
