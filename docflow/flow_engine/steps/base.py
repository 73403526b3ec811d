"""
Shared runtime handed to every step executor.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

import httpx

from docflow.flow_engine.context import ExecutionContext, resolve_path
from docflow.models.workflow import ResponseMapping
from docflow.services.config_store import ConfigStore
from docflow.services.email import EmailService
from docflow.services.execution_logger import ExecutionLogger

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunState:
    """Per-run values that are not part of the context"""
    workflow_id: str
    format_type: str = 'JSON'
    trigger_source: str = 'manual'
    extraction_type_id: Optional[str] = None
    # Last api_call / api_endpoint result, used by the rename step
    last_api_response: Any = None


@dataclass
class StepRuntime:
    http_client: httpx.AsyncClient
    store: ConfigStore
    email_service: EmailService
    exec_logger: ExecutionLogger
    state: RunState
    upload_handler: Optional[Any] = None
    clock: Callable[[], datetime] = field(default=utcnow)


def apply_response_mappings(
    response_data: Any,
    mappings: List[ResponseMapping],
    context: ExecutionContext,
) -> Dict[str, Any]:
    """
    Copy values from an API response into the context.

    A response path that does not resolve is logged and skipped.

    Returns:
        update_path -> value for every mapping applied
    """
    applied: Dict[str, Any] = {}
    for mapping in mappings:
        value = resolve_path(response_data, mapping.response_path)
        if value is None:
            logger.warning(f"Path '{mapping.response_path}' not found in API response")
            continue
        try:
            context.set(mapping.update_path, value)
        except ValueError as e:
            logger.warning(f"Could not write response value to '{mapping.update_path}': {e}")
            continue
        applied[mapping.update_path] = value
        logger.debug(f"Updated context.{mapping.update_path} from {mapping.response_path}")
    return applied
