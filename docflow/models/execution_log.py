"""
Execution records written to the configuration store.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SendStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass
class StepLog:
    """One record per step, including failed and skipped steps"""
    workflow_execution_log_id: Optional[str]
    workflow_id: str
    step_id: str
    step_name: str
    step_type: str
    step_order: int
    status: StepStatus
    started_at: str
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    input_data: Optional[Dict[str, Any]] = None
    output_data: Optional[Any] = None
    user_response: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            'workflow_execution_log_id': self.workflow_execution_log_id,
            'workflow_id': self.workflow_id,
            'step_id': self.step_id,
            'step_name': self.step_name,
            'step_type': self.step_type,
            'step_order': self.step_order,
            'status': self.status.value,
            'started_at': self.started_at,
            'completed_at': self.completed_at,
            'duration_ms': self.duration_ms,
            'error_message': self.error_message,
            'input_data': self.input_data,
            'output_data': self.output_data,
            'user_response': self.user_response,
            'created_at': utcnow_iso(),
        }


@dataclass
class WorkflowExecutionLog:
    """Aggregate record of one run"""
    workflow_id: str
    extraction_log_id: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING
    id: Optional[str] = None
    current_step_id: Optional[str] = None
    current_step_name: Optional[str] = None
    error_message: Optional[str] = None
    context_data: Dict[str, Any] = field(default_factory=dict)
    started_at: str = field(default_factory=utcnow_iso)

    def to_record(self) -> Dict[str, Any]:
        return {
            'extraction_log_id': self.extraction_log_id,
            'workflow_id': self.workflow_id,
            'status': self.status.value,
            'context_data': self.context_data,
            'started_at': self.started_at,
            'updated_at': utcnow_iso(),
        }


@dataclass
class NotificationLog:
    """Delivery record for a template-driven email, written sent or failed"""
    notification_type: str
    recipient_email: str
    subject: str
    body: str
    send_status: SendStatus
    workflow_execution_log_id: Optional[str] = None
    extraction_type_id: Optional[str] = None
    cc_emails: Optional[str] = None
    bcc_emails: Optional[str] = None
    error_message: Optional[str] = None
    pdf_attached: bool = False
    template_id: Optional[str] = None
    sent_at: str = field(default_factory=utcnow_iso)

    def to_record(self) -> Dict[str, Any]:
        return {
            'workflow_execution_log_id': self.workflow_execution_log_id,
            'extraction_type_id': self.extraction_type_id,
            'notification_type': self.notification_type,
            'recipient_email': self.recipient_email,
            'subject': self.subject,
            'body': self.body,
            'cc_emails': self.cc_emails,
            'bcc_emails': self.bcc_emails,
            'send_status': self.send_status.value,
            'error_message': self.error_message,
            'pdf_attached': self.pdf_attached,
            'template_id': self.template_id,
            'sent_at': self.sent_at,
        }
