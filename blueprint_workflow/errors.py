"""Workflow errors.

These never escape the orchestrator's public API; they describe failures
that are folded into ``WorkflowErrorInfo`` records.
"""


class WorkflowError(Exception):
    """Base class for orchestrator failures."""


class HandlerTimeoutError(WorkflowError):
    """Handler execution exceeded its timeout."""

    def __init__(self, handler_id: str, timeout: float) -> None:
        super().__init__("Timeout")
        self.handler_id = handler_id
        self.timeout = timeout


class HandlerExecutionError(WorkflowError):
    """Handler returned an unsuccessful result without an exception."""


class RetriesExhaustedError(WorkflowError):
    """All attempts for a handler failed."""

    def __init__(self, handler_id: str, attempts: int, last_error: BaseException | None) -> None:
        message = str(last_error) if last_error else "Handler execution failed after all retries"
        super().__init__(message)
        self.handler_id = handler_id
        self.attempts = attempts
        self.last_error = last_error


class CriticalStepError(WorkflowError):
    """A critical step failed and aborted the remaining steps."""

    def __init__(self, step_id: str, error: BaseException | str | None) -> None:
        super().__init__(str(error) if error else "Critical step failed")
        self.step_id = step_id


class UnknownWorkflowTypeError(WorkflowError):
    """Workflow type is not configured or not enabled."""

    def __init__(self, workflow_type: str) -> None:
        super().__init__(f'Workflow "{workflow_type}" is not enabled or not found')
        self.workflow_type = workflow_type


class UnknownHandlerError(WorkflowError):
    """Step references a handler id that is not registered."""

    def __init__(self, handler_id: str) -> None:
        super().__init__(f'Handler "{handler_id}" not found')
        self.handler_id = handler_id


class ResumeTimeoutError(WorkflowError):
    """Paused workflow was not resumed in time."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__("Workflow resume timeout")
        self.workflow_id = workflow_id
