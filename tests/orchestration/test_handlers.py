"""Tests for the construction-flow business handlers."""

from datetime import date

import pytest
from support import make_event

from blueprint_workflow import create_default_orchestrator
from blueprint_workflow.bus import InMemoryEventBus
from blueprint_workflow.config import SETCWorkflowType
from blueprint_workflow.events import EventActor, FailedItem, SystemEventType
from blueprint_workflow.handlers import (
    AcceptanceFinalizedHandler,
    DefectSeverity,
    InMemoryRecordRepository,
    QCFailedHandler,
    QCPassedHandler,
    TaskCompletedHandler,
)
from blueprint_workflow.handlers.acceptance_finalized import add_one_year
from blueprint_workflow.handlers.base import next_working_day
from blueprint_workflow.handlers.qc_result import calculate_severity
from blueprint_workflow.models import WorkflowContext, WorkflowResultStatus, WorkflowState

ACTOR = EventActor(user_id="user-1", user_name="Tester")


def make_context(**data) -> WorkflowContext:
    return WorkflowContext(workflow_id="wf-test", blueprint_id="bp-1", initiator=ACTOR, data=dict(data))


async def seeded_repository(**task) -> InMemoryRecordRepository:
    repository = InMemoryRecordRepository()
    await repository.create("bp-1", "tasks", {"id": "t-1", "title": "Pour slab", "actual_hours": 6, **task})
    return repository


@pytest.mark.asyncio
async def test_task_completion_creates_log_then_pending_inspection():
    repository = await seeded_repository()
    bus = InMemoryEventBus(blueprint_id="bp-1")
    orchestrator = create_default_orchestrator(bus, repository)
    orchestrator.initialize("bp-1")

    await bus.emit(SystemEventType.TASK_COMPLETED, {"task_id": "t-1"}, ACTOR)
    await orchestrator.join()

    [log] = repository.records("bp-1", "logs")
    assert log["task_id"] == "t-1"
    assert log["title"] == "Construction completed: Pour slab"
    assert log["work_hours"] == 6

    [inspection] = repository.records("bp-1", "qc_inspections")
    assert inspection["log_id"] == log["id"]
    assert inspection["status"] == "pending"
    assert inspection["inspector_id"] == "system-inspector"

    statuses = orchestrator.get_all_workflow_statuses()
    assert {s.workflow_type for s in statuses} == {"task.completed", "log.created"}
    assert all(s.state is WorkflowState.COMPLETED for s in statuses)


@pytest.mark.asyncio
async def test_invalid_payload_is_skipped_without_workflow():
    repository = await seeded_repository()
    bus = InMemoryEventBus(blueprint_id="bp-1")
    orchestrator = create_default_orchestrator(bus, repository)
    orchestrator.initialize("bp-1")

    await bus.emit(SystemEventType.TASK_COMPLETED, {"task_id": ""}, ACTOR)
    await orchestrator.join()

    assert repository.records("bp-1", "logs") == []
    assert orchestrator.get_all_workflow_statuses() == []


@pytest.mark.asyncio
async def test_missing_task_is_reported_as_failure():
    handler = TaskCompletedHandler(InMemoryRecordRepository())

    result = await handler.execute(make_event("task.completed", {"task_id": "nope"}), make_context())

    assert result.success is False
    assert isinstance(result.error, LookupError)


@pytest.mark.asyncio
async def test_execute_rejects_event_without_blueprint():
    handler = TaskCompletedHandler(InMemoryRecordRepository())

    result = await handler.execute(make_event("task.completed", {"task_id": "t-1"}, blueprint_id=""), make_context())

    assert result.success is False
    assert result.error == "Invalid event data: missing required fields"


@pytest.mark.asyncio
async def test_task_completion_workflow_from_default_config():
    repository = await seeded_repository()
    orchestrator = create_default_orchestrator(InMemoryEventBus(blueprint_id="bp-1"), repository)
    orchestrator.initialize("bp-1")

    context = orchestrator.create_context(ACTOR, data={"task_id": "t-1"})
    result = await orchestrator.execute_workflow(SETCWorkflowType.TASK_COMPLETION, context)
    await orchestrator.join()

    assert result.status is WorkflowResultStatus.SUCCESS
    assert result.completed_steps == 1
    assert result.result_data["log_id"] == repository.records("bp-1", "logs")[0]["id"]
    assert len(repository.records("bp-1", "qc_inspections")) == 1


@pytest.mark.asyncio
async def test_qc_pass_creates_acceptance_request():
    repository = await seeded_repository(status="in_progress")
    handler = QCPassedHandler(repository)
    context = make_context()

    result = await handler.execute(
        make_event("qc.inspection.passed", {"inspection_id": "qc-1", "task_id": "t-1"}), context
    )

    assert result.success is True
    [acceptance] = repository.records("bp-1", "acceptances")
    assert acceptance["inspection_id"] == "qc-1"
    assert context.data["acceptance_id"] == acceptance["id"]
    assert [f.event_type for f in result.follow_up] == ["acceptance.request.created"]


@pytest.mark.asyncio
async def test_qc_pass_skips_cancelled_task():
    repository = await seeded_repository(status="cancelled")
    handler = QCPassedHandler(repository)

    result = await handler.execute(
        make_event("qc.inspection.passed", {"inspection_id": "qc-1", "task_id": "t-1"}), make_context()
    )

    assert result.success is True
    assert result.data["skipped"] is True
    assert repository.records("bp-1", "acceptances") == []


@pytest.mark.asyncio
async def test_qc_failure_creates_defect_with_severity():
    repository = InMemoryRecordRepository()
    handler = QCFailedHandler(repository)

    result = await handler.execute(
        make_event(
            "qc.inspection.failed",
            {
                "inspection_id": "qc-2",
                "failure_reason": "Rebar spacing",
                "failed_items": [{"item_name": "Column C3", "description": "structural crack"}],
                "task_owner_id": "owner-1",
            },
        ),
        make_context(),
    )

    assert result.success is True
    [defect] = repository.records("bp-1", "defects")
    assert defect["severity"] == "high"
    assert defect["assignee_id"] == "owner-1"
    assert "1. Column C3 - structural crack" in defect["description"]


@pytest.mark.parametrize(
    "reason,items,expected",
    [
        ("Guard rail missing: safety hazard", [], DefectSeverity.CRITICAL),
        ("minor paint issue with safety sign", [], DefectSeverity.CRITICAL),
        ("Major deviation", [], DefectSeverity.HIGH),
        ("Cosmetic scratch", [], DefectSeverity.LOW),
        ("Uneven finish", [FailedItem(item_name="Wall", description="緊急")], DefectSeverity.CRITICAL),
        ("Uneven finish", [], DefectSeverity.MEDIUM),
    ],
)
def test_calculate_severity(reason, items, expected):
    assert calculate_severity(reason, items) is expected


@pytest.mark.asyncio
async def test_accepted_acceptance_creates_billing_and_warranty():
    repository = InMemoryRecordRepository()
    handler = AcceptanceFinalizedHandler(repository)
    context = make_context()

    result = await handler.execute(
        make_event(
            "acceptance.finalized",
            {"acceptance_id": "acc-1", "final_decision": "accepted", "amount": 1000},
        ),
        context,
    )

    assert result.success is True
    assert result.data["error_count"] == 0
    finance = repository.records("bp-1", "finance")
    assert sorted(r["type"] for r in finance) == ["invoice", "payment"]
    assert all(r["amount"] == 800 for r in finance)
    assert len(repository.records("bp-1", "warranties")) == 1
    assert [f.event_type for f in result.follow_up] == ["invoice.generated", "warranty.period.started"]
    assert {"invoice_record_id", "payment_record_id", "warranty_record_id"} <= set(context.data)


@pytest.mark.asyncio
async def test_rejected_acceptance_is_skipped():
    repository = InMemoryRecordRepository()
    handler = AcceptanceFinalizedHandler(repository)

    result = await handler.execute(
        make_event("acceptance.finalized", {"acceptance_id": "acc-1", "final_decision": "rejected"}),
        make_context(),
    )

    assert result.success is True
    assert result.data == {"skipped": True, "reason": "Acceptance not accepted"}
    assert repository.records("bp-1", "finance") == []


@pytest.mark.asyncio
async def test_rollback_deletes_created_records():
    repository = InMemoryRecordRepository()
    handler = AcceptanceFinalizedHandler(repository)
    context = make_context()
    await handler.execute(
        make_event("acceptance.finalized", {"acceptance_id": "acc-1", "final_decision": "accepted", "amount": 10}),
        context,
    )

    await handler.rollback(context)

    assert repository.records("bp-1", "finance") == []
    assert repository.records("bp-1", "warranties") == []


@pytest.mark.parametrize(
    "start,expected",
    [
        (date(2025, 1, 2), date(2025, 1, 3)),
        (date(2025, 1, 3), date(2025, 1, 6)),
        (date(2025, 1, 4), date(2025, 1, 6)),
    ],
)
def test_next_working_day(start, expected):
    assert next_working_day(start) == expected


def test_add_one_year_handles_leap_day():
    assert add_one_year(date(2024, 2, 29)) == date(2025, 2, 28)
    assert add_one_year(date(2024, 3, 1)) == date(2025, 3, 1)


def test_handler_clock_is_timezone_aware():
    assert TaskCompletedHandler.now().tzinfo is not None


@pytest.mark.asyncio
async def test_workflow_step_event_is_validated_with_handler_model():
    repository = await seeded_repository()
    handler = TaskCompletedHandler(repository)

    assert handler.validate(make_event("workflow.step", {"task_id": "t-1"})) is True
    assert handler.validate(make_event("workflow.step", {"log_id": "log-1"})) is False
