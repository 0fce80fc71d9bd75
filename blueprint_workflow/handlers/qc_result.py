"""QC inspection result -> acceptance request or defect."""

from enum import Enum

from ..events import (
    Event,
    FailedItem,
    QCInspectionFailedPayload,
    QCInspectionPassedPayload,
    SystemEventType,
)
from ..models import FollowUpEvent, StepResult, WorkflowContext
from ..workflow import HandlerOptions
from .base import HANDLER_RETRY_POLICY, RecordHandler


class DefectSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_KEYWORDS = {
    DefectSeverity.CRITICAL: ("安全", "危險", "緊急", "生命", "safety", "critical", "emergency"),
    DefectSeverity.HIGH: ("結構", "重大", "嚴重", "主體", "structural", "major", "severe"),
    DefectSeverity.LOW: ("輕微", "小問題", "minor", "cosmetic"),
}

INELIGIBLE_TASK_STATES = frozenset({"cancelled", "rejected"})


def calculate_severity(failure_reason: str, failed_items: list[FailedItem]) -> DefectSeverity:
    """Keyword-based severity; critical beats high beats low, default medium."""
    text = " ".join(
        [failure_reason, *(f"{item.item_name} {item.description or ''}" for item in failed_items)]
    ).lower()
    for severity, keywords in SEVERITY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return severity
    return DefectSeverity.MEDIUM


def build_defect_description(inspection_id: str, failure_reason: str, failed_items: list[FailedItem]) -> str:
    lines = [f"Defect created from QC inspection {inspection_id}", "", f"Failure reason: {failure_reason}"]
    if failed_items:
        lines += ["", "Failed items:"]
        for index, item in enumerate(failed_items, start=1):
            suffix = f" - {item.description}" if item.description else ""
            lines.append(f"{index}. {item.item_name}{suffix}")
    return "\n".join(lines)


class QCPassedHandler(RecordHandler):
    """Opens an acceptance request for a passed inspection."""

    id = "qc-passed-handler"
    name = "Create acceptance request on QC pass"
    payload_model = QCInspectionPassedPayload
    created_records = (("acceptances", "acceptance_id"),)
    options = HandlerOptions(priority=8, retry_policy=HANDLER_RETRY_POLICY, timeout=10.0, critical=False)

    async def process(
        self, event: Event, payload: QCInspectionPassedPayload, context: WorkflowContext
    ) -> StepResult:
        blueprint_id = event.blueprint_id

        if payload.task_id:
            task = await self._repository.get(blueprint_id, "tasks", payload.task_id)
            if task is None:
                return self.skipped(f"Task {payload.task_id} not found")
            if task.get("status") in INELIGIBLE_TASK_STATES:
                return self.skipped(f"Task {payload.task_id} is {task['status']}")

        acceptance_id = await self._repository.create(
            blueprint_id,
            "acceptances",
            {
                "blueprint_id": blueprint_id,
                "title": "Acceptance request: QC inspection passed",
                "status": "pending",
                "inspection_id": payload.inspection_id,
                "task_id": payload.task_id,
                "inspector_id": payload.inspector_id,
                "created_by": event.actor.user_id,
            },
        )
        self._logger.info(f"Created acceptance request {acceptance_id}")

        context.data.update(acceptance_id=acceptance_id, inspection_id=payload.inspection_id)

        return StepResult(
            step_id=self.id,
            success=True,
            data={"acceptance_id": acceptance_id, "inspection_id": payload.inspection_id},
            continue_workflow=True,
            follow_up=[
                FollowUpEvent(
                    SystemEventType.ACCEPTANCE_REQUEST_CREATED.value,
                    {
                        "acceptance_id": acceptance_id,
                        "inspection_id": payload.inspection_id,
                        "task_id": payload.task_id,
                    },
                )
            ],
        )


class QCFailedHandler(RecordHandler):
    """Files a defect for a failed inspection."""

    id = "qc-failed-handler"
    name = "Create defect on QC failure"
    payload_model = QCInspectionFailedPayload
    created_records = (("defects", "defect_id"),)
    options = HandlerOptions(priority=8, retry_policy=HANDLER_RETRY_POLICY, timeout=10.0, critical=False)

    async def process(
        self, event: Event, payload: QCInspectionFailedPayload, context: WorkflowContext
    ) -> StepResult:
        blueprint_id = event.blueprint_id
        failure_reason = payload.failure_reason or "QC inspection failed"
        severity = calculate_severity(failure_reason, payload.failed_items)

        defect_id = await self._repository.create(
            blueprint_id,
            "defects",
            {
                "blueprint_id": blueprint_id,
                "title": f"QC defect: {failure_reason[:50]}",
                "description": build_defect_description(
                    payload.inspection_id, failure_reason, payload.failed_items
                ),
                "severity": severity.value,
                "inspection_id": payload.inspection_id,
                "task_id": payload.task_id,
                "assignee_id": payload.task_owner_id,
                "created_by": event.actor.user_id,
            },
        )
        self._logger.info(f"Created defect {defect_id} for inspection {payload.inspection_id}")

        context.data.update(defect_id=defect_id, inspection_id=payload.inspection_id)

        return StepResult(
            step_id=self.id,
            success=True,
            data={"defect_id": defect_id, "inspection_id": payload.inspection_id, "severity": severity.value},
            continue_workflow=True,
            follow_up=[
                FollowUpEvent(
                    SystemEventType.QC_DEFECT_CREATED.value,
                    {
                        "defect_id": defect_id,
                        "inspection_id": payload.inspection_id,
                        "task_id": payload.task_id,
                        "severity": severity.value,
                    },
                )
            ],
        )
