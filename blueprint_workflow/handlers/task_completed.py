"""Task completed -> construction log."""

from ..events import Event, SystemEventType, TaskCompletedPayload
from ..models import FollowUpEvent, StepResult, WorkflowContext
from ..workflow import HandlerOptions
from .base import HANDLER_RETRY_POLICY, RecordHandler


class TaskCompletedHandler(RecordHandler):
    """Creates a construction log when a task is confirmed complete."""

    id = "task-completed-handler"
    name = "Create construction log on task completion"
    description = "Creates the construction log for a completed task"
    payload_model = TaskCompletedPayload
    created_records = (("logs", "log_id"),)
    options = HandlerOptions(priority=10, retry_policy=HANDLER_RETRY_POLICY, timeout=10.0, critical=False)

    async def process(self, event: Event, payload: TaskCompletedPayload, context: WorkflowContext) -> StepResult:
        blueprint_id = event.blueprint_id
        self._logger.info(f"Processing task completion: {payload.task_id}")

        task = await self._repository.get(blueprint_id, "tasks", payload.task_id)
        if task is None:
            raise LookupError(f"Task {payload.task_id} not found in blueprint {blueprint_id}")

        completed_at = payload.completed_at or self.now()
        log_id = await self._repository.create(
            blueprint_id,
            "logs",
            {
                "blueprint_id": blueprint_id,
                "task_id": payload.task_id,
                "date": completed_at.isoformat(),
                "title": f"Construction completed: {task.get('title', payload.task_id)}",
                "description": task.get("description") or "",
                "work_hours": task.get("actual_hours") or task.get("estimated_hours") or 0,
                "workers": 0,
                "notes": payload.notes,
                "creator_id": event.actor.user_id,
            },
        )
        self._logger.info(f"Created log {log_id} for task {payload.task_id}")

        context.data.update(log_id=log_id, task_id=payload.task_id, auto_created=True)

        return StepResult(
            step_id=self.id,
            success=True,
            data={"log_id": log_id, "task_id": payload.task_id},
            continue_workflow=True,
            follow_up=[
                FollowUpEvent(
                    SystemEventType.LOG_CREATED.value,
                    {"log_id": log_id, "task_id": payload.task_id},
                )
            ],
        )
