"""
Step executors, one module per step type.

Every executor has the signature
``async def execute_x(step, context, runtime) -> output`` and either mutates
the context and returns its output or raises a WorkflowError.
"""
from docflow.flow_engine.steps.api_call import execute_api_call
from docflow.flow_engine.steps.api_endpoint import execute_api_endpoint
from docflow.flow_engine.steps.base import RunState, StepRuntime
from docflow.flow_engine.steps.email_action import execute_email_action
from docflow.flow_engine.steps.rename import execute_rename
from docflow.flow_engine.steps.transform import execute_json_transform
from docflow.flow_engine.steps.upload import UploadHandler, execute_upload

__all__ = [
    'RunState',
    'StepRuntime',
    'UploadHandler',
    'execute_api_call',
    'execute_api_endpoint',
    'execute_email_action',
    'execute_json_transform',
    'execute_rename',
    'execute_upload',
]
