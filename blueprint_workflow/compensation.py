"""Compensation - best-effort rollback after exhausted retries."""

import inspect

from .logging import get_logger
from .models import WorkflowContext
from .registry import RegisteredHandler


class CompensationManager:
    """Invokes a handler's ``rollback`` hook.

    Rollback failures are logged and swallowed.
    """

    def __init__(self) -> None:
        self._logger = get_logger("blueprint_workflow.compensation")
        self.rollback_count = 0
        self.failed_rollback_count = 0

    async def rollback(self, entry: RegisteredHandler, context: WorkflowContext) -> bool:
        """Run the rollback hook of ``entry`` if it defines one.

        Args:
            entry: Handler whose retries were exhausted
            context: Context of the failed workflow

        Returns:
            True if a rollback ran and completed without raising
        """
        hook = getattr(entry.handler, "rollback", None)
        if hook is None:
            return False

        self._logger.info(f'Executing rollback for handler "{entry.id}" (workflow {context.workflow_id})')
        self.rollback_count += 1
        try:
            result = hook(context)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self.failed_rollback_count += 1
            self._logger.error(f'Rollback failed for handler "{entry.id}": {exc}', exc_info=True)
            return False
        return True
