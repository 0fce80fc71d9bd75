"""Construction log -> pending QC inspection."""

from ..events import Event, LogCreatedPayload, SystemEventType
from ..models import FollowUpEvent, StepResult, WorkflowContext
from ..workflow import HandlerOptions
from .base import HANDLER_RETRY_POLICY, RecordHandler, next_working_day

DEFAULT_INSPECTOR = {"id": "system-inspector", "name": "System Inspector"}


class LogCreatedHandler(RecordHandler):
    """Schedules a routine QC inspection for a new construction log."""

    id = "log-created-handler"
    name = "Create pending QC inspection on log creation"
    payload_model = LogCreatedPayload
    created_records = (("qc_inspections", "qc_inspection_id"),)
    options = HandlerOptions(priority=9, retry_policy=HANDLER_RETRY_POLICY, timeout=10.0, critical=False)

    async def process(self, event: Event, payload: LogCreatedPayload, context: WorkflowContext) -> StepResult:
        blueprint_id = event.blueprint_id

        log = await self._repository.get(blueprint_id, "logs", payload.log_id)
        if log is None:
            raise LookupError(f"Log {payload.log_id} not found")

        # TODO: assign inspectors by workload once inspector rosters are stored per blueprint
        inspector = DEFAULT_INSPECTOR
        scheduled_date = next_working_day(self.now().date())

        inspection_id = await self._repository.create(
            blueprint_id,
            "qc_inspections",
            {
                "blueprint_id": blueprint_id,
                "title": f"QC pending: {log.get('title', payload.log_id)}",
                "status": "pending",
                "inspection_type": "routine",
                "log_id": payload.log_id,
                "task_id": payload.task_id,
                "inspector_id": inspector["id"],
                "scheduled_date": scheduled_date.isoformat(),
                "created_by": event.actor.user_id,
            },
        )
        self._logger.info(f"Created QC pending inspection {inspection_id} for log {payload.log_id}")

        context.data.update(
            qc_inspection_id=inspection_id,
            log_id=payload.log_id,
            inspector_id=inspector["id"],
            scheduled_date=scheduled_date.isoformat(),
        )

        return StepResult(
            step_id=self.id,
            success=True,
            data={"qc_inspection_id": inspection_id, "log_id": payload.log_id},
            continue_workflow=True,
            follow_up=[
                FollowUpEvent(
                    SystemEventType.QC_INSPECTION_CREATED.value,
                    {
                        "inspection_id": inspection_id,
                        "log_id": payload.log_id,
                        "task_id": payload.task_id,
                        "inspector_id": inspector["id"],
                        "scheduled_date": scheduled_date.isoformat(),
                    },
                )
            ],
        )
