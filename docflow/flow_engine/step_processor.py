"""
Step Processor - dispatches a step to the executor for its type

Handles:
- Registry lookup by StepType
- Logging step start / finish
- Propagating executor errors unchanged
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from docflow.flow_engine.branching import execute_conditional_check
from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.exceptions import ConfigurationError
from docflow.flow_engine.steps import (
    StepRuntime,
    execute_api_call,
    execute_api_endpoint,
    execute_email_action,
    execute_json_transform,
    execute_rename,
    execute_upload,
)
from docflow.models.workflow import Step, StepType

logger = logging.getLogger(__name__)

StepHandler = Callable[[Step, ExecutionContext, StepRuntime], Awaitable[Any]]


class StepProcessor:
    """
    Processes individual steps of a workflow.

    Usage:
        processor = StepProcessor()
        output = await processor.process(step, context, runtime)
    """

    _handlers: Dict[StepType, StepHandler] = {
        StepType.API_CALL: execute_api_call,
        StepType.API_ENDPOINT: execute_api_endpoint,
        StepType.CONDITIONAL_CHECK: execute_conditional_check,
        StepType.JSON_TRANSFORM: execute_json_transform,
        StepType.RENAME_FILE: execute_rename,
        StepType.RENAME_PDF: execute_rename,
        StepType.EMAIL_ACTION: execute_email_action,
        StepType.SFTP_UPLOAD: execute_upload,
        StepType.CSV_UPLOAD: execute_upload,
        StepType.JSON_UPLOAD: execute_upload,
    }

    def __init__(self, handlers: Optional[Dict[StepType, StepHandler]] = None):
        """
        Args:
            handlers: Overrides merged over the default registry
        """
        self.handlers = dict(self._handlers)
        if handlers:
            self.handlers.update(handlers)

    async def process(self, step: Step, context: ExecutionContext, runtime: StepRuntime) -> Any:
        """
        Run one step.

        Returns:
            The executor's output

        Raises:
            ConfigurationError: If no executor is registered for the step type
            WorkflowError: Whatever the executor raised
        """
        handler = self.handlers.get(step.step_type)
        if handler is None:
            raise ConfigurationError(f"Unknown step type: {step.step_type.value}", step_name=step.step_name)

        logger.info(f"Executing step {step.step_order}: {step.step_name} ({step.step_type.value})")
        output = await handler(step, context, runtime)
        logger.info(f"Step {step.step_order} completed: {step.step_name}")
        return output
