"""
Tests for ExecutionLogger persistence
"""

import pytest

from docflow.models.execution_log import NotificationLog, SendStatus, StepStatus
from docflow.services.execution_logger import ExecutionLogger, StepTimer
from tests.conftest import make_step


class TestExecutionLogger:
    """Run, step and notification records"""

    @pytest.mark.asyncio
    async def test_run_lifecycle(self, store):
        exec_logger = ExecutionLogger(store, 'wf-1')

        run_id = await exec_logger.start_run('ex-1')
        await exec_logger.step_started(make_step('rename_pdf', {}), {'a': 1})
        await exec_logger.complete_run()

        run = store.rows('workflow_execution_logs')[0]
        assert run['id'] == run_id
        assert run['extraction_log_id'] == 'ex-1'
        assert run['status'] == 'completed'
        assert run['current_step_name'] == 'rename_pdf 1'
        assert run['context_data'] == {'a': 1}

    @pytest.mark.asyncio
    async def test_record_step(self, store):
        exec_logger = ExecutionLogger(store, 'wf-1')
        await exec_logger.start_run(None)
        step = make_step('api_call', {'url': 'https://x'}, step_order=3)

        await exec_logger.record_step(step, StepStatus.FAILED, StepTimer(), error_message='bad')

        row = store.rows('workflow_step_logs')[0]
        assert row['status'] == 'failed'
        assert row['step_order'] == 3
        assert row['step_type'] == 'api_call'
        assert row['error_message'] == 'bad'
        assert row['input_data'] == {'config': {'url': 'https://x'}}
        assert row['duration_ms'] >= 0

    @pytest.mark.asyncio
    async def test_notification_flags(self, store):
        exec_logger = ExecutionLogger(store, 'wf-1')
        await exec_logger.start_run(None)

        await exec_logger.log_notification(NotificationLog(
            notification_type='success', recipient_email='a@example.com',
            subject='s', body='b', send_status=SendStatus.SENT,
        ))
        await exec_logger.mark_notification_sent('success')

        assert store.rows('notification_logs')[0]['workflow_execution_log_id'] == exec_logger.workflow_execution_log_id
        run = store.rows('workflow_execution_logs')[0]
        assert run['success_notification_sent'] is True
        assert 'notification_sent_at' in run

    @pytest.mark.asyncio
    async def test_write_failures_are_swallowed(self, store):
        store.fail_writes = True
        exec_logger = ExecutionLogger(store, 'wf-1')

        assert await exec_logger.start_run('ex-1') is None
        await exec_logger.record_step(make_step('rename_pdf', {}), StepStatus.COMPLETED, StepTimer())
        await exec_logger.fail_run('boom')
        assert await exec_logger.create_extraction_log({}) is None
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_step_update_failure_swallowed(self, store):
        exec_logger = ExecutionLogger(store, 'wf-1')
        await exec_logger.start_run(None)
        store.fail_writes = True

        await exec_logger.step_started(make_step('rename_pdf', {}), {})
        await exec_logger.complete_run()

        assert store.rows('workflow_execution_logs')[0]['status'] == 'running'
