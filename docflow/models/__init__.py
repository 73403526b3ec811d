from docflow.models.workflow import (
    StepType,
    Step,
    ResponseMapping,
    ApiCallConfig,
    ApiEndpointConfig,
    BodyFieldMapping,
    ConditionalCheckConfig,
    JsonTransformConfig,
    OutputField,
    RenameConfig,
    EmailActionConfig,
    UploadConfig,
    load_steps,
)
from docflow.models.execution_log import (
    StepLog,
    StepStatus,
    RunStatus,
    SendStatus,
    WorkflowExecutionLog,
    NotificationLog,
)
from docflow.models.notification import (
    NotificationTemplate,
    PdfAttachment,
    EmailMessage,
    EmailProviderConfig,
    split_addresses,
)

__all__ = [
    'StepType',
    'Step',
    'ResponseMapping',
    'ApiCallConfig',
    'ApiEndpointConfig',
    'BodyFieldMapping',
    'ConditionalCheckConfig',
    'JsonTransformConfig',
    'OutputField',
    'RenameConfig',
    'EmailActionConfig',
    'UploadConfig',
    'load_steps',
    'StepLog',
    'StepStatus',
    'RunStatus',
    'SendStatus',
    'WorkflowExecutionLog',
    'NotificationLog',
    'NotificationTemplate',
    'PdfAttachment',
    'EmailMessage',
    'EmailProviderConfig',
    'split_addresses',
]
