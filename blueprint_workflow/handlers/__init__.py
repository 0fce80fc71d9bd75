"""Business handlers for the construction flow."""

from ..events import SystemEventType
from ..workflow import WorkflowHandler
from .acceptance_finalized import AcceptanceFinalizedHandler
from .base import RecordHandler
from .log_created import LogCreatedHandler
from .qc_result import DefectSeverity, QCFailedHandler, QCPassedHandler
from .records import InMemoryRecordRepository, RecordRepository
from .task_completed import TaskCompletedHandler

__all__ = [
    "AcceptanceFinalizedHandler",
    "DefectSeverity",
    "InMemoryRecordRepository",
    "LogCreatedHandler",
    "QCFailedHandler",
    "QCPassedHandler",
    "RecordHandler",
    "RecordRepository",
    "TaskCompletedHandler",
    "build_default_handlers",
]


def build_default_handlers(repository: RecordRepository) -> list[tuple[SystemEventType, WorkflowHandler]]:
    """Pair each construction-flow handler with the event it reacts to."""
    return [
        (SystemEventType.TASK_COMPLETED, TaskCompletedHandler(repository)),
        (SystemEventType.LOG_CREATED, LogCreatedHandler(repository)),
        (SystemEventType.QC_INSPECTION_PASSED, QCPassedHandler(repository)),
        (SystemEventType.QC_INSPECTION_FAILED, QCFailedHandler(repository)),
        (SystemEventType.ACCEPTANCE_FINALIZED, AcceptanceFinalizedHandler(repository)),
    ]
