"""
Workflow exceptions.

Fatal classes raised by step executors. The orchestrator catches them at the
run boundary, marks the run failed and triggers the failure notification.
Soft problems (unresolved placeholders, missing response paths, CC lookup
failures) are only logged and never raised.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base error for workflow execution"""

    def __init__(self, message: str, step_name: Optional[str] = None):
        self.message = message
        self.step_name = step_name
        super().__init__(self.message)

    def __str__(self):
        if self.step_name:
            return f"[{self.step_name}] {self.message}"
        return self.message


class ConfigurationError(WorkflowError):
    """Missing or invalid configuration (empty base URL, no email config, etc)"""
    pass


class ExternalCallError(WorkflowError):
    """Non-2xx response or unusable response body from an external service"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        step_name: Optional[str] = None,
    ):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message, step_name)


class ValidationError(WorkflowError):
    """Invalid input data, e.g. a PDF page number out of range"""
    pass
