"""Workflow state store - bounded, lock-guarded status history."""

import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from .logging import get_logger
from .models import WorkflowErrorInfo, WorkflowState, WorkflowStatus, utc_now

ACTIVE_STATES = frozenset({WorkflowState.PENDING, WorkflowState.RUNNING, WorkflowState.PAUSED})


def _snapshot(status: WorkflowStatus) -> WorkflowStatus:
    return replace(status, errors=list(status.errors))


class WorkflowStateStore:
    """Keeps one ``WorkflowStatus`` per workflow id.

    When more than ``max_history`` records are held, the oldest terminal
    records (by ``start_time``) are evicted, both on insert and whenever a
    record reaches a terminal state. Pending, running and paused
    records are never evicted. Readers get copies; all mutation goes
    through the store's methods.

    The orchestrator counters (running count, error count, last execution
    time) live here too so that they share the status lock.
    """

    def __init__(self, max_history: int = 1000) -> None:
        if max_history < 1:
            raise ValueError("max_history must be >= 1")
        self._max_history = max_history
        self._statuses: dict[str, WorkflowStatus] = {}
        self._lock = threading.RLock()
        self._running_count = 0
        self._error_count = 0
        self._last_execution_time: datetime | None = None
        self._logger = get_logger("blueprint_workflow.state_store")

    @property
    def max_history(self) -> int:
        return self._max_history

    def set(self, workflow_id: str, status: WorkflowStatus) -> None:
        with self._lock:
            self._statuses[workflow_id] = _snapshot(status)
            self._evict()

    def get(self, workflow_id: str) -> WorkflowStatus | None:
        with self._lock:
            status = self._statuses.get(workflow_id)
            return _snapshot(status) if status else None

    def state_of(self, workflow_id: str) -> WorkflowState | None:
        with self._lock:
            status = self._statuses.get(workflow_id)
            return status.state if status else None

    def all(self) -> list[WorkflowStatus]:
        with self._lock:
            return [_snapshot(s) for s in self._statuses.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)

    def transition(
        self,
        workflow_id: str,
        from_states: Iterable[WorkflowState],
        to_state: WorkflowState,
        *,
        stamp_end: bool = False,
    ) -> WorkflowStatus | None:
        """Move a workflow to ``to_state`` if it is currently in ``from_states``.

        Returns:
            The updated status, or None when the id is unknown or the
            current state does not allow the transition
        """
        allowed = frozenset(from_states) & ACTIVE_STATES
        with self._lock:
            status = self._statuses.get(workflow_id)
            if status is None or status.state not in allowed:
                return None
            status.state = to_state
            if stamp_end:
                status.end_time = utc_now()
            snapshot = _snapshot(status)
            if to_state.is_terminal:
                self._evict()
            return snapshot

    def finish(self, workflow_id: str, state: WorkflowState) -> WorkflowStatus | None:
        """Move an active workflow to a terminal state, stamping ``end_time``."""
        if not state.is_terminal:
            raise ValueError(f"{state} is not a terminal state")
        return self.transition(workflow_id, ACTIVE_STATES, state, stamp_end=True)

    def update_progress(self, workflow_id: str, current_step: int) -> None:
        with self._lock:
            status = self._statuses.get(workflow_id)
            if status is None:
                return
            status.current_step = max(0, min(current_step, status.total_steps))

    def record_error(self, workflow_id: str, error: WorkflowErrorInfo, *, fail: bool = False) -> None:
        """Append ``error`` to the workflow and count it.

        Args:
            workflow_id: Workflow the error belongs to
            error: Error record
            fail: Also move an active workflow to ``failed``
        """
        with self._lock:
            self._error_count += 1
            status = self._statuses.get(workflow_id)
            if status is None:
                return
            status.errors.append(error)
            if fail and status.state in ACTIVE_STATES:
                status.state = WorkflowState.FAILED
                status.end_time = utc_now()
                self._evict()

    # Counters

    def increment_running(self) -> None:
        with self._lock:
            self._running_count += 1

    def decrement_running(self) -> None:
        with self._lock:
            self._running_count = max(0, self._running_count - 1)

    def touch_last_execution(self) -> None:
        with self._lock:
            self._last_execution_time = utc_now()

    @property
    def running_count(self) -> int:
        with self._lock:
            return self._running_count

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._error_count

    @property
    def last_execution_time(self) -> datetime | None:
        with self._lock:
            return self._last_execution_time

    def count_by_state(self) -> dict[WorkflowState, int]:
        with self._lock:
            counts = {state: 0 for state in WorkflowState}
            for status in self._statuses.values():
                counts[status.state] += 1
            return counts

    def clear(self) -> None:
        with self._lock:
            self._statuses.clear()
            self._running_count = 0
            self._error_count = 0
            self._last_execution_time = None

    def _evict(self) -> None:
        overflow = len(self._statuses) - self._max_history
        if overflow <= 0:
            return
        terminal = sorted(
            (s for s in self._statuses.values() if s.state.is_terminal),
            key=lambda s: s.start_time,
        )
        for status in terminal[:overflow]:
            del self._statuses[status.workflow_id]
        if terminal:
            self._logger.debug(f"Evicted {min(overflow, len(terminal))} terminal workflow record(s)")
