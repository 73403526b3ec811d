"""
Upload steps (sftp_upload, csv_upload, json_upload).

Transfer and CSV/XML rendering live outside the engine. A step hands the
context to the configured UploadHandler and records what it returns.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.exceptions import ConfigurationError
from docflow.flow_engine.steps.base import StepRuntime
from docflow.models.workflow import Step, UploadConfig

logger = logging.getLogger(__name__)


class UploadHandler(ABC):
    """Performs the file transfer for upload steps"""

    @abstractmethod
    async def upload(self, config: UploadConfig, context: ExecutionContext) -> Dict[str, Any]:
        """
        Upload the run's output.

        Args:
            config: Upload step configuration (upload_type plus raw settings)
            context: Run context; filenames come from renamed*Filename keys

        Returns:
            Result dict stored as the step output
        """
        pass


async def execute_upload(step: Step, context: ExecutionContext, runtime: StepRuntime) -> Dict[str, Any]:
    config: UploadConfig = step.config
    if runtime.upload_handler is None:
        raise ConfigurationError(
            f"No upload handler configured for {config.upload_type}",
            step_name=step.step_name,
        )
    logger.info(f"Delegating {config.upload_type} to {type(runtime.upload_handler).__name__}")
    return await runtime.upload_handler.upload(config, context)
