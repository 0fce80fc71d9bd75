"""Orchestrator - public API over registry, executor and workflow state."""

import asyncio
import time
from collections.abc import Iterable

from .bus import EventBusProtocol, Unsubscribe
from .compensation import CompensationManager
from .config import DEFAULT_WORKFLOW_CONFIG, SETCWorkflowType, StepConfig, WorkflowConfig, WorkflowTypeConfig
from .errors import CriticalStepError, ResumeTimeoutError, UnknownHandlerError, UnknownWorkflowTypeError
from .events import Event, EventActor, EventMetadata, SystemEventType, event_key
from .executor import Sleep, WorkflowExecutor, to_error_info
from .logging import get_logger
from .models import (
    OrchestratorStatistics,
    StepResult,
    WorkflowContext,
    WorkflowErrorInfo,
    WorkflowResult,
    WorkflowResultStatus,
    WorkflowState,
    WorkflowStatus,
    generate_workflow_id,
)
from .registry import HandlerRegistry
from .settings import OrchestratorSettings, get_settings
from .state_store import WorkflowStateStore
from .workflow import NO_RETRY, HandlerOptions, WorkflowHandler

DefaultHandler = tuple[SystemEventType | str, WorkflowHandler]


class Orchestrator:
    """Event-driven workflow orchestrator.

    Handlers registered for an event type run whenever the event bus
    delivers that type; each handler run is tracked as its own workflow.
    Config-driven multi-step workflows run through ``execute_workflow``.
    """

    def __init__(
        self,
        event_bus: EventBusProtocol,
        registry: HandlerRegistry | None = None,
        config: WorkflowConfig | None = None,
        settings: OrchestratorSettings | None = None,
        compensation: CompensationManager | None = None,
        default_handlers: Iterable[DefaultHandler] = (),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize orchestrator.

        Args:
            event_bus: Bus delivering domain events and accepting follow-ups
            registry: Handler registry (a new one if omitted)
            config: Workflow configuration (DEFAULT_WORKFLOW_CONFIG if omitted)
            settings: Runtime settings (cached environment settings if omitted)
            compensation: Rollback runner (a new one if omitted)
            default_handlers: Handlers registered by ``initialize``
            sleep: Coroutine used for retry backoff waits
        """
        self._event_bus = event_bus
        self._registry = registry or HandlerRegistry()
        self._config = config or DEFAULT_WORKFLOW_CONFIG
        self._settings = settings or get_settings()
        self._store = WorkflowStateStore(max_history=self._config.max_workflow_history)
        self._executor = WorkflowExecutor(
            self._registry,
            self._store,
            event_bus,
            compensation,
            default_timeout=self._config.global_timeout,
            default_policy=self._config.global_retry_policy,
            sleep=sleep,
        )
        self._default_handlers = list(default_handlers)
        self._unsubscribes: list[Unsubscribe] = []
        self._tasks: set[asyncio.Task] = set()
        self._dispatch_slots = asyncio.Semaphore(self._config.max_concurrent_workflows)
        self._resume_signals: dict[str, asyncio.Event] = {}
        self._scope_id = ""
        self._initialized = False
        self._logger = get_logger("blueprint_workflow.orchestrator")

    @property
    def scope_id(self) -> str:
        return self._scope_id

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def executor(self) -> WorkflowExecutor:
        return self._executor

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    def initialize(self, scope_id: str) -> None:
        """Bind the orchestrator to a blueprint scope and register default handlers."""
        if self._initialized:
            self._logger.warning("Already initialized. Skipping...")
            return

        self._scope_id = scope_id
        self._initialized = True
        self._logger.info(f"Initializing workflow orchestrator for blueprint: {scope_id}")

        for event_type, handler in self._default_handlers:
            self.register_handler(event_type, handler)

        self._logger.info(f"Orchestrator initialized with {self._registry.count()} handler(s)")

    def register_handler(
        self,
        event_type: SystemEventType | str,
        handler: WorkflowHandler,
        options: HandlerOptions | None = None,
    ) -> None:
        """Register ``handler`` for ``event_type``; replaces a handler with the same id."""
        if self._registry.register(event_type, handler, options):
            self._unsubscribes.append(self._event_bus.subscribe(event_key(event_type), self._dispatch))

    def unregister_handler(self, event_type: SystemEventType | str, handler_id: str) -> None:
        self._registry.unregister(event_type, handler_id)

    def create_context(
        self,
        initiator: EventActor,
        *,
        blueprint_id: str | None = None,
        entity_id: str | None = None,
        entity_type: str | None = None,
        data: dict[str, object] | None = None,
    ) -> WorkflowContext:
        """Build a fresh context for ``execute_workflow``."""
        return WorkflowContext(
            workflow_id=generate_workflow_id(),
            blueprint_id=blueprint_id or self._scope_id,
            initiator=initiator,
            entity_id=entity_id,
            entity_type=entity_type,
            data=dict(data or {}),
        )

    async def execute_workflow(
        self, workflow_type: SETCWorkflowType | str, context: WorkflowContext
    ) -> WorkflowResult:
        """Run the configured step sequence of ``workflow_type``.

        Never raises for handler or configuration failures; they are
        reported through the returned WorkflowResult.

        Args:
            workflow_type: Configured workflow type name
            context: Context owned by this run

        Returns:
            WorkflowResult with status, completed step count and errors
        """
        type_name = workflow_type.value if isinstance(workflow_type, SETCWorkflowType) else str(workflow_type)
        type_config = self._config.get_workflow(type_name)
        if type_config is None:
            error = UnknownWorkflowTypeError(type_name)
            self._logger.warning(str(error))
            return WorkflowResult(
                workflow_id=context.workflow_id,
                status=WorkflowResultStatus.FAILED,
                completed_steps=0,
                total_steps=0,
                errors=[to_error_info("initialization", error)],
                duration=0.0,
            )

        started = time.monotonic()
        steps = type_config.ordered_steps()
        workflow_id = context.workflow_id
        context.total_steps = len(steps)
        context.current_step = 0

        self._store.set(
            workflow_id,
            WorkflowStatus(
                workflow_id=workflow_id,
                state=WorkflowState.RUNNING,
                current_step=0,
                total_steps=context.total_steps,
                start_time=context.start_time,
                workflow_type=type_name,
                blueprint_id=context.blueprint_id,
            ),
        )
        resume_signal = asyncio.Event()
        resume_signal.set()
        self._resume_signals[workflow_id] = resume_signal
        self._store.increment_running()

        self._logger.info(f"Starting workflow {workflow_id} ({type_name}, {len(steps)} step(s))")

        errors: list[WorkflowErrorInfo] = []
        completed_steps = 0
        cancelled = False
        resumed = True
        try:
            for index, step in enumerate(steps):
                context.current_step = index

                resumed = await self._hold_while_paused(workflow_id, errors, index)
                if not resumed:
                    break

                state = self._store.state_of(workflow_id)
                if state is None or state is WorkflowState.CANCELLED:
                    self._logger.info(f"Workflow {workflow_id} was cancelled")
                    cancelled = True
                    break

                if not step.applies_to(context.data):
                    self._logger.info(f'Step "{step.id}" condition "{step.condition}" not met, skipping')
                    self._store.update_progress(workflow_id, index + 1)
                    continue

                result = await self._run_step(step, type_config, context)
                self._store.update_progress(workflow_id, index + 1)

                if result.success:
                    completed_steps += 1
                    self._logger.info(f'Step "{step.id}" completed successfully')
                    if result.continue_workflow is False:
                        self._logger.info(f'Step "{step.id}" ended workflow {workflow_id}')
                        break
                    continue

                error = result.error
                if step.critical:
                    error = CriticalStepError(step.id, result.error)
                    if isinstance(result.error, BaseException):
                        error.__cause__ = result.error
                self._fail(workflow_id, errors, to_error_info(step.id, error, max(result.attempts, 1)))
                self._logger.error(f'Step "{step.id}" failed: {result.error_message}')
                if step.critical:
                    self._logger.error("Critical step failed, aborting workflow")
                    break

            # A pause requested during the last step holds the workflow before it finishes.
            if resumed and not cancelled:
                await self._hold_while_paused(workflow_id, errors, len(steps))
                cancelled = self._store.state_of(workflow_id) in (None, WorkflowState.CANCELLED)
        finally:
            self._store.decrement_running()
            self._resume_signals.pop(workflow_id, None)

        if cancelled or self._store.state_of(workflow_id) is WorkflowState.CANCELLED:
            status = WorkflowResultStatus.CANCELLED
        elif not errors:
            status = WorkflowResultStatus.SUCCESS
            self._store.finish(workflow_id, WorkflowState.COMPLETED)
        else:
            status = WorkflowResultStatus.PARTIAL_SUCCESS if completed_steps else WorkflowResultStatus.FAILED
            self._store.finish(workflow_id, WorkflowState.FAILED)
        self._store.touch_last_execution()

        self._logger.info(f"Workflow {workflow_id} completed with status: {status.value}")

        return WorkflowResult(
            workflow_id=workflow_id,
            status=status,
            completed_steps=completed_steps,
            total_steps=len(steps),
            errors=errors,
            duration=time.monotonic() - started,
            result_data=dict(context.data),
        )

    def get_workflow_status(self, workflow_id: str) -> WorkflowStatus | None:
        return self._store.get(workflow_id)

    def get_all_workflow_statuses(self) -> list[WorkflowStatus]:
        return self._store.all()

    def pause_workflow(self, workflow_id: str) -> None:
        """Pause a running workflow; no-op for unknown or non-running ids."""
        if self._store.transition(workflow_id, {WorkflowState.RUNNING}, WorkflowState.PAUSED):
            signal = self._resume_signals.get(workflow_id)
            if signal is not None:
                signal.clear()
            self._logger.info(f"Paused workflow {workflow_id}")

    def resume_workflow(self, workflow_id: str) -> None:
        """Resume a paused workflow; no-op for unknown or non-paused ids."""
        if self._store.transition(workflow_id, {WorkflowState.PAUSED}, WorkflowState.RUNNING):
            self._wake(workflow_id)
            self._logger.info(f"Resumed workflow {workflow_id}")

    def cancel_workflow(self, workflow_id: str) -> None:
        """Cancel a running or paused workflow; no-op otherwise.

        The config-driven loop observes the cancellation at its next step
        boundary; a handler call already in flight is not interrupted.
        """
        if self._store.transition(
            workflow_id, {WorkflowState.RUNNING, WorkflowState.PAUSED}, WorkflowState.CANCELLED, stamp_end=True
        ):
            self._wake(workflow_id)
            self._logger.info(f"Cancelled workflow {workflow_id}")

    def get_statistics(self) -> OrchestratorStatistics:
        counts = self._store.count_by_state()
        return OrchestratorStatistics(
            total_workflows=sum(counts.values()),
            running_workflows=counts[WorkflowState.RUNNING],
            completed_workflows=counts[WorkflowState.COMPLETED],
            failed_workflows=counts[WorkflowState.FAILED],
            cancelled_workflows=counts[WorkflowState.CANCELLED],
            paused_workflows=counts[WorkflowState.PAUSED],
            registered_handlers=self._registry.count(),
            running_count=self._store.running_count,
            error_count=self._store.error_count,
            last_execution_time=self._store.last_execution_time,
        )

    async def join(self) -> None:
        """Wait until every scheduled event dispatch has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def dispose(self) -> None:
        """Unsubscribe from the bus and clear all state. Safe to call repeatedly."""
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        for workflow_id in list(self._resume_signals):
            self._wake(workflow_id)

        self._registry.clear()
        self._store.clear()
        self._initialized = False

        self._logger.info("Orchestrator disposed")

    def _dispatch(self, event: Event) -> None:
        task = asyncio.get_running_loop().create_task(self._handle_event(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_event(self, event: Event) -> None:
        async with self._dispatch_slots:
            try:
                await self._executor.handle_event(event)
            except Exception as exc:
                self._logger.error(f'Dispatch of "{event.type}" failed: {exc}', exc_info=True)

    async def _run_step(
        self, step: StepConfig, type_config: WorkflowTypeConfig, context: WorkflowContext
    ) -> StepResult:
        entry = self._registry.find(step.handler_id)
        if entry is None:
            return StepResult(step_id=step.id, success=False, error=UnknownHandlerError(step.handler_id))

        policy = type_config.retry_policy if step.retryable else NO_RETRY
        result = await self._executor.execute_handler_with_retry(
            entry, self._step_event(context), context, policy, type_config.timeout
        )
        if result.success:
            self._executor.apply_result(context, result)
            await self._executor.emit_follow_ups(entry, context, result)
        else:
            await self._executor.compensate(entry, context)
        return result

    def _step_event(self, context: WorkflowContext) -> Event:
        return Event(
            type=SystemEventType.WORKFLOW_STEP.value,
            payload=dict(context.data),
            actor=context.initiator,
            metadata=EventMetadata(
                blueprint_id=context.blueprint_id,
                correlation_id=context.workflow_id,
                source="orchestrator",
                extra={"workflow_id": context.workflow_id, "current_step": context.current_step},
            ),
        )

    def _fail(self, workflow_id: str, errors: list[WorkflowErrorInfo], error: WorkflowErrorInfo) -> None:
        errors.append(error)
        self._store.record_error(workflow_id, error)

    def _wake(self, workflow_id: str) -> None:
        signal = self._resume_signals.get(workflow_id)
        if signal is not None:
            signal.set()

    async def _hold_while_paused(self, workflow_id: str, errors: list[WorkflowErrorInfo], position: int) -> bool:
        """Wait out a pause; returns False when the resume timed out (recorded as an error)."""
        if self._store.state_of(workflow_id) is not WorkflowState.PAUSED:
            return True
        self._logger.info(f"Workflow {workflow_id} is paused at step {position}")
        try:
            await self._wait_for_resume(workflow_id)
        except ResumeTimeoutError as exc:
            self._fail(workflow_id, errors, to_error_info("resume", exc))
            return False
        return True

    async def _wait_for_resume(self, workflow_id: str) -> None:
        signal = self._resume_signals[workflow_id]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.resume_timeout
        while self._store.state_of(workflow_id) is WorkflowState.PAUSED:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ResumeTimeoutError(workflow_id)
            try:
                await asyncio.wait_for(
                    signal.wait(), timeout=min(self._settings.resume_poll_interval, remaining)
                )
            except asyncio.TimeoutError:
                pass
