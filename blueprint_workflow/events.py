"""Workflow events - Event, EventActor, EventMetadata and typed payloads."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SystemEventType(str, Enum):
    """Event keys used by the built-in construction flow."""

    TASK_COMPLETED = "task.completed"
    LOG_CREATED = "log.created"
    QC_INSPECTION_CREATED = "qc.inspection.created"
    QC_INSPECTION_PASSED = "qc.inspection.passed"
    QC_INSPECTION_FAILED = "qc.inspection.failed"
    QC_DEFECT_CREATED = "qc.defect.created"
    ACCEPTANCE_REQUEST_CREATED = "acceptance.request.created"
    ACCEPTANCE_FINALIZED = "acceptance.finalized"
    INVOICE_GENERATED = "invoice.generated"
    WARRANTY_PERIOD_STARTED = "warranty.period.started"
    WORKFLOW_STEP = "workflow.step"


def event_key(event_type: "SystemEventType | str") -> str:
    """Normalize an event type to its string key."""
    if isinstance(event_type, SystemEventType):
        return event_type.value
    return str(event_type)


@dataclass
class EventActor:
    """Identity that caused an event."""

    user_id: str
    user_name: str | None = None


@dataclass
class EventMetadata:
    """Metadata for an event."""

    blueprint_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str | None = None
    source: str | None = None
    extra: dict[str, object] = field(default_factory=dict)


@dataclass
class Event:
    """Domain event delivered through the event bus."""

    type: str
    payload: dict[str, object]
    actor: EventActor
    metadata: EventMetadata
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def blueprint_id(self) -> str:
        return self.metadata.blueprint_id


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")

    auto_created: bool = False
    source: str | None = None


class TaskCompletedPayload(_Payload):
    task_id: str = Field(min_length=1)
    completed_by: str | None = None
    completed_at: datetime | None = None
    notes: str | None = None


class LogCreatedPayload(_Payload):
    log_id: str = Field(min_length=1)
    task_id: str | None = None


class FailedItem(BaseModel):
    item_name: str
    description: str | None = None


class QCInspectionPassedPayload(_Payload):
    inspection_id: str = Field(min_length=1)
    task_id: str | None = None
    inspector_id: str | None = None


class QCInspectionFailedPayload(_Payload):
    inspection_id: str = Field(min_length=1)
    task_id: str | None = None
    task_owner_id: str | None = None
    failure_reason: str | None = None
    failed_items: list[FailedItem] = Field(default_factory=list)


class AcceptanceFinalizedPayload(_Payload):
    acceptance_id: str = Field(min_length=1)
    final_decision: Literal["accepted", "rejected", "conditional"]
    amount: float | None = Field(default=None, ge=0)
    contract_id: str | None = None


PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    SystemEventType.TASK_COMPLETED.value: TaskCompletedPayload,
    SystemEventType.LOG_CREATED.value: LogCreatedPayload,
    SystemEventType.QC_INSPECTION_PASSED.value: QCInspectionPassedPayload,
    SystemEventType.QC_INSPECTION_FAILED.value: QCInspectionFailedPayload,
    SystemEventType.ACCEPTANCE_FINALIZED.value: AcceptanceFinalizedPayload,
}


def parse_payload(event: Event, model: type[BaseModel] | None = None) -> BaseModel | dict[str, object]:
    """Validate an event payload against the model for its type.

    Args:
        event: Event whose payload should be validated
        model: Model to use instead of the one registered for ``event.type``

    Returns:
        Typed payload model, or the raw payload for untyped event keys

    Raises:
        pydantic.ValidationError: If the payload does not match its model
    """
    model = model or PAYLOAD_MODELS.get(event.type)
    if model is None:
        return event.payload
    return model.model_validate(event.payload)
