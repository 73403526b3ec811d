"""
ExecutionLogger Service - persists run, step and notification records.

Persistence must never break a run: every write failure is logged and
swallowed here, so callers can await these methods unconditionally.
"""
import logging
import time
from typing import Any, Awaitable, Dict, Optional

from docflow.models.execution_log import (
    NotificationLog,
    RunStatus,
    StepLog,
    StepStatus,
    WorkflowExecutionLog,
    utcnow_iso,
)
from docflow.models.workflow import Step
from docflow.services.config_store import ConfigStore

logger = logging.getLogger(__name__)


class StepTimer:
    """Wall-clock start plus a monotonic clock for the duration"""

    def __init__(self):
        self.started_at = utcnow_iso()
        self._start = time.monotonic()

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


class ExecutionLogger:
    """
    Records the progress of one workflow run.

    Usage:
        exec_logger = ExecutionLogger(store, workflow_id)
        await exec_logger.start_run(extraction_log_id)
        await exec_logger.step_started(step, context.snapshot())
        await exec_logger.record_step(step, StepStatus.COMPLETED, timer, output=result)
        await exec_logger.complete_run()
    """

    def __init__(self, store: ConfigStore, workflow_id: str):
        """
        Args:
            store: Configuration/log store client
            workflow_id: Workflow being executed
        """
        self.store = store
        self.workflow_id = workflow_id
        self.workflow_execution_log_id: Optional[str] = None

    async def _persist(self, write: Awaitable[Any], description: str) -> Any:
        try:
            return await write
        except Exception as e:
            logger.error(f"[ExecutionLogger] Failed to persist {description}: {e}")
            logger.error(f"  workflow_id={self.workflow_id} log_id={self.workflow_execution_log_id}")
            return None

    async def start_run(self, extraction_log_id: Optional[str]) -> Optional[str]:
        """Create the workflow execution log in ``running`` state."""
        record = WorkflowExecutionLog(
            workflow_id=self.workflow_id,
            extraction_log_id=extraction_log_id,
        ).to_record()
        self.workflow_execution_log_id = await self._persist(
            self.store.create_workflow_execution_log(record),
            'workflow execution log',
        )
        if self.workflow_execution_log_id:
            logger.info(f"Workflow execution log created: {self.workflow_execution_log_id}")
        else:
            logger.warning("Continuing without workflow execution log")
        return self.workflow_execution_log_id

    async def _update_run(self, values: Dict[str, Any], description: str) -> None:
        if not self.workflow_execution_log_id:
            return
        values['updated_at'] = utcnow_iso()
        await self._persist(
            self.store.update_workflow_execution_log(self.workflow_execution_log_id, values),
            description,
        )

    async def step_started(self, step: Step, context_snapshot: Dict[str, Any]) -> None:
        await self._update_run({
            'current_step_id': step.id,
            'current_step_name': step.step_name,
            'context_data': context_snapshot,
        }, f'progress for step {step.step_order}')

    async def record_step(
        self,
        step: Step,
        status: StepStatus,
        timer: StepTimer,
        error_message: Optional[str] = None,
        output: Any = None,
        user_response: Optional[str] = None,
    ) -> None:
        if not self.workflow_execution_log_id:
            return
        step_log = StepLog(
            workflow_execution_log_id=self.workflow_execution_log_id,
            workflow_id=self.workflow_id,
            step_id=step.id,
            step_name=step.step_name,
            step_type=step.step_type.value,
            step_order=step.step_order,
            status=status,
            started_at=timer.started_at,
            completed_at=utcnow_iso(),
            duration_ms=timer.duration_ms,
            error_message=error_message,
            input_data={'config': step.raw_config},
            output_data=output,
            user_response=user_response,
        )
        step_log_id = await self._persist(self.store.create_step_log(step_log.to_record()), f'step log {step.step_order}')
        if step_log_id:
            logger.debug(f"Step log created for step {step.step_order}: {step_log_id}")

    async def complete_run(self) -> None:
        await self._update_run({
            'status': RunStatus.COMPLETED.value,
            'completed_at': utcnow_iso(),
        }, 'run completion')

    async def fail_run(self, error_message: str) -> None:
        await self._update_run({
            'status': RunStatus.FAILED.value,
            'error_message': error_message,
            'completed_at': utcnow_iso(),
        }, 'run failure')

    async def mark_notification_sent(self, notification_type: str) -> None:
        """Stamp the run log after a notification went out."""
        values: Dict[str, Any] = {'notification_sent_at': utcnow_iso()}
        if notification_type in ('success', 'failure'):
            values[f'{notification_type}_notification_sent'] = True
        await self._update_run(values, f'{notification_type} notification flag')

    async def log_notification(self, notification_log: NotificationLog) -> None:
        if notification_log.workflow_execution_log_id is None:
            notification_log.workflow_execution_log_id = self.workflow_execution_log_id
        await self._persist(
            self.store.create_notification_log(notification_log.to_record()),
            'notification log',
        )

    async def create_extraction_log(self, record: Dict[str, Any]) -> Optional[str]:
        extraction_log_id = await self._persist(self.store.create_extraction_log(record), 'extraction log')
        if extraction_log_id:
            logger.info(f"Extraction log created: {extraction_log_id}")
        return extraction_log_id
