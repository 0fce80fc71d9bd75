"""Base class for the record-creating business handlers."""

import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta

from pydantic import BaseModel, ValidationError

from ..events import Event, parse_payload
from ..logging import get_logger
from ..models import StepResult, WorkflowContext, utc_now
from ..workflow import HandlerOptions, RetryPolicy
from .records import RecordRepository

HANDLER_RETRY_POLICY = RetryPolicy(max_attempts=3, backoff_multiplier=2, initial_delay=1.0, max_delay=5.0)


def next_working_day(start: date) -> date:
    """Day after ``start``, moved to Monday when it falls on a weekend."""
    day = start + timedelta(days=1)
    if day.weekday() == 5:
        day += timedelta(days=2)
    elif day.weekday() == 6:
        day += timedelta(days=1)
    return day


class RecordHandler(ABC):
    """Validates a typed payload, creates records and rolls them back.

    Subclasses set ``payload_model`` and ``created_records`` (pairs of
    collection and the ``context.data`` key holding the created id) and
    implement ``process``.
    """

    id: str
    name: str
    description: str = ""
    payload_model: type[BaseModel]
    created_records: tuple[tuple[str, str], ...] = ()
    options = HandlerOptions(retry_policy=HANDLER_RETRY_POLICY, timeout=10.0, critical=False, retryable=True)

    def __init__(self, repository: RecordRepository) -> None:
        self._repository = repository
        self._logger = get_logger(f"blueprint_workflow.handlers.{self.id}")

    def parse(self, event: Event) -> BaseModel | None:
        if not event.blueprint_id or not event.actor.user_id:
            return None
        try:
            return parse_payload(event, self.payload_model)
        except ValidationError as exc:
            self._logger.warning(f"Invalid event data for {event.type}: {exc.error_count()} error(s)")
            return None

    def validate(self, event: Event) -> bool:
        return self.parse(event) is not None

    async def execute(self, event: Event, context: WorkflowContext) -> StepResult:
        started = time.monotonic()
        payload = self.parse(event)
        if payload is None:
            return self.failure("Invalid event data: missing required fields")

        try:
            result = await self.process(event, payload, context)
        except Exception as exc:
            self._logger.error(f"Failed: {exc}", exc_info=True)
            return self.failure(exc)

        self._logger.info(f"Completed in {(time.monotonic() - started) * 1000:.0f}ms")
        return result

    @abstractmethod
    async def process(self, event: Event, payload: BaseModel, context: WorkflowContext) -> StepResult:
        """Create the handler's records and describe the outcome."""

    async def rollback(self, context: WorkflowContext) -> None:
        for collection, key in self.created_records:
            record_id = context.data.get(key)
            if not record_id or not context.blueprint_id:
                continue
            self._logger.info(f"Rolling back: deleting {collection} {record_id}")
            try:
                await self._repository.delete(context.blueprint_id, collection, str(record_id))
            except Exception as exc:
                self._logger.error(f"Rollback failed for {collection} {record_id}: {exc}", exc_info=True)

    def failure(self, error: BaseException | str) -> StepResult:
        return StepResult(step_id=self.id, success=False, error=error, continue_workflow=True)

    def skipped(self, reason: str) -> StepResult:
        self._logger.info(f"Skipping: {reason}")
        return StepResult(
            step_id=self.id, success=True, data={"skipped": True, "reason": reason}, continue_workflow=True
        )

    @staticmethod
    def now() -> datetime:
        return utc_now()
