"""Workflow executor - runs handlers with timeout, retry and compensation."""

import asyncio
import traceback
from collections.abc import Awaitable, Callable, Mapping

from .bus import EventBusProtocol
from .compensation import CompensationManager
from .errors import HandlerExecutionError, HandlerTimeoutError, RetriesExhaustedError
from .events import Event
from .logging import get_logger
from .models import (
    StepResult,
    WorkflowContext,
    WorkflowErrorInfo,
    WorkflowState,
    WorkflowStatus,
    generate_workflow_id,
)
from .registry import HandlerRegistry, RegisteredHandler
from .retry import calculate_backoff, run_with_timeout
from .state_store import WorkflowStateStore
from .workflow import DEFAULT_RETRY_POLICY, RetryPolicy

Sleep = Callable[[float], Awaitable[None]]


def to_error_info(step_id: str, error: BaseException | str | None, attempt: int = 1) -> WorkflowErrorInfo:
    """Build a ``WorkflowErrorInfo`` from an exception or message."""
    stack = None
    if isinstance(error, BaseException):
        cause = error
        while cause.__cause__ is not None:
            cause = cause.__cause__
        if cause.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))
        message = str(error) or type(error).__name__
        error_type = type(error).__name__
    else:
        message = error or "Unknown error"
        error_type = None
    return WorkflowErrorInfo(step_id=step_id, message=message, stack=stack, attempt=attempt, error_type=error_type)


def _as_exception(handler_id: str, error: BaseException | str | None) -> BaseException:
    if isinstance(error, BaseException):
        return error
    if error:
        return HandlerExecutionError(error)
    return HandlerExecutionError(f'Handler "{handler_id}" returned an unsuccessful result')


class WorkflowExecutor:
    """Dispatches events to registered handlers.

    Every handler matching an event runs in its own single-step workflow,
    sequentially in priority order. A failing handler never stops the
    handlers after it.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        store: WorkflowStateStore,
        event_bus: EventBusProtocol | None = None,
        compensation: CompensationManager | None = None,
        *,
        default_timeout: float = 30.0,
        default_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize executor.

        Args:
            registry: Handler registry to resolve event handlers from
            store: Status store updated for every workflow
            event_bus: Bus used for follow-up events (None disables them)
            compensation: Rollback runner; a default one is created if omitted
            default_timeout: Handler timeout in seconds when none is configured
            default_policy: Retry policy for handlers registered without one
            sleep: Coroutine used for backoff waits
        """
        self._registry = registry
        self._store = store
        self._event_bus = event_bus
        self._compensation = compensation or CompensationManager()
        self._default_timeout = default_timeout
        self._default_policy = default_policy
        self._sleep = sleep
        self._logger = get_logger("blueprint_workflow.executor")

    @property
    def compensation(self) -> CompensationManager:
        return self._compensation

    async def handle_event(self, event: Event) -> list[str]:
        """Run every applicable handler for ``event``.

        Args:
            event: Incoming event

        Returns:
            Ids of the workflows started, in execution order
        """
        entries = self._registry.lookup(event.type)
        if not entries:
            return []

        self._logger.info(f'Processing event "{event.type}" with {len(entries)} handler(s)')

        workflow_ids: list[str] = []
        for entry in entries:
            if not self._should_run(entry, event):
                continue
            context = self.create_context(event)
            workflow_ids.append(context.workflow_id)
            await self._run_single(entry, event, context)
        return workflow_ids

    def create_context(self, event: Event) -> WorkflowContext:
        """Create a single-step context for ``event`` and register it running."""
        context = WorkflowContext(
            workflow_id=generate_workflow_id(),
            blueprint_id=event.blueprint_id,
            initiator=event.actor,
            current_step=0,
            total_steps=1,
            metadata={"event_type": event.type, "event_id": event.event_id},
        )
        self._store.set(
            context.workflow_id,
            WorkflowStatus(
                workflow_id=context.workflow_id,
                state=WorkflowState.RUNNING,
                current_step=0,
                total_steps=1,
                start_time=context.start_time,
                workflow_type=event.type,
                blueprint_id=context.blueprint_id,
            ),
        )
        return context

    async def execute_handler_with_retry(
        self,
        entry: RegisteredHandler,
        event: Event,
        context: WorkflowContext,
        policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> StepResult:
        """Execute a handler, retrying with exponential backoff.

        Each attempt is bounded by the handler's timeout (falling back to
        ``timeout``, then the executor default). Rollback is left to the
        caller.

        Args:
            entry: Registered handler to run
            event: Event handed to the handler
            context: Workflow context handed to the handler
            policy: Retry policy; defaults to the handler's, then the executor default
            timeout: Fallback timeout in seconds

        Returns:
            The first successful StepResult, or a failed one wrapping the last error
        """
        policy = policy or entry.options.retry_policy or self._default_policy
        timeout = entry.options.timeout or timeout or self._default_timeout
        last_error: BaseException | None = None

        for attempt in range(policy.max_attempts):
            try:
                result = await run_with_timeout(entry.handler.execute(event, context), timeout)
            except asyncio.TimeoutError:
                last_error = HandlerTimeoutError(entry.id, timeout)
            except Exception as exc:
                last_error = exc
            else:
                if result.success:
                    result.attempts = attempt + 1
                    return result
                last_error = _as_exception(entry.id, result.error)

            self._logger.warning(
                f'Handler "{entry.id}" attempt {attempt + 1}/{policy.max_attempts} failed: {last_error}'
            )
            if attempt < policy.max_attempts - 1:
                delay = calculate_backoff(attempt, policy)
                self._logger.info(f"Retrying in {delay:.3f}s...")
                await self._sleep(delay)

        self._logger.error(f'Handler "{entry.id}" failed after {policy.max_attempts} attempt(s)')
        error = RetriesExhaustedError(entry.id, policy.max_attempts, last_error)
        error.__cause__ = last_error
        return StepResult(
            step_id=entry.id,
            success=False,
            error=error,
            attempts=policy.max_attempts,
        )

    async def compensate(self, entry: RegisteredHandler, context: WorkflowContext) -> bool:
        return await self._compensation.rollback(entry, context)

    @staticmethod
    def apply_result(context: WorkflowContext, result: StepResult) -> None:
        """Merge a successful step's data into the context."""
        if result.data is None:
            return
        if isinstance(result.data, Mapping):
            context.data.update(result.data)
        else:
            context.data[result.step_id] = result.data

    async def emit_follow_ups(self, entry: RegisteredHandler, context: WorkflowContext, result: StepResult) -> None:
        """Emit the follow-up events of a successful step, correlated to the workflow."""
        if self._event_bus is None or not result.follow_up:
            return
        for follow_up in result.follow_up:
            payload = {**follow_up.payload, "auto_created": True, "source": entry.id}
            payload.setdefault("blueprint_id", context.blueprint_id)
            try:
                await self._event_bus.emit(
                    follow_up.event_type,
                    payload,
                    context.initiator,
                    {"source": entry.id, "correlation_id": context.workflow_id},
                    blueprint_id=context.blueprint_id,
                )
            except Exception as exc:
                self._logger.error(
                    f'Failed to emit "{follow_up.event_type}" for workflow {context.workflow_id}: {exc}',
                    exc_info=True,
                )

    def _should_run(self, entry: RegisteredHandler, event: Event) -> bool:
        condition = entry.options.condition
        try:
            if condition is not None and not condition(event):
                self._logger.info(f'Handler "{entry.id}" condition not met, skipping')
                return False
        except Exception as exc:
            self._logger.error(f'Handler "{entry.id}" condition raised, skipping: {exc}', exc_info=True)
            return False

        validate = getattr(entry.handler, "validate", None)
        try:
            if validate is not None and not validate(event):
                self._logger.warning(f'Handler "{entry.id}" validation failed, skipping')
                return False
        except Exception as exc:
            self._logger.error(f'Handler "{entry.id}" validation raised, skipping: {exc}', exc_info=True)
            return False
        return True

    async def _run_single(self, entry: RegisteredHandler, event: Event, context: WorkflowContext) -> None:
        self._store.increment_running()
        try:
            result = await self.execute_handler_with_retry(entry, event, context)
        finally:
            self._store.decrement_running()

        if result.success:
            self.apply_result(context, result)
            self._store.update_progress(context.workflow_id, 1)
            self._store.finish(context.workflow_id, WorkflowState.COMPLETED)
            await self.emit_follow_ups(entry, context, result)
        else:
            await self.compensate(entry, context)
            self._store.record_error(
                context.workflow_id,
                to_error_info(entry.id, result.error, result.attempts),
                fail=True,
            )
        self._store.touch_last_execution()
