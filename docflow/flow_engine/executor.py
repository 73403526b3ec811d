"""
Workflow Executor - Main orchestrator for a workflow run

Responsibilities:
- Load extraction / transformation type details
- Create the extraction log and workflow execution log
- Build the initial context from the request
- Run every step in step_order (skipIf / runIf / manual trigger rules)
- Record a StepLog per step, including skipped and failed steps
- Mark the run completed or failed and send the run notification
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.exceptions import ExternalCallError, ValidationError
from docflow.flow_engine.notifications import RunNotifier
from docflow.flow_engine.step_processor import StepProcessor
from docflow.flow_engine.steps import RunState, StepRuntime, UploadHandler
from docflow.flow_engine.variable_resolver import VariableResolver
from docflow.models.execution_log import StepStatus, utcnow_iso
from docflow.models.workflow import Step, StepType, load_steps
from docflow.services.config_store import ConfigStore
from docflow.services.email import EmailService
from docflow.services.execution_logger import ExecutionLogger, StepTimer

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/Los_Angeles'
MANUAL_TRIGGER = 'manual'
CSV_FORMAT = 'CSV'


@dataclass
class WorkflowRequest:
    """Body of an execute request"""
    extracted_data: Any = None
    workflow_only_data: Any = None
    pdf_filename: Optional[str] = None
    original_pdf_filename: Optional[str] = None
    pdf_base64: Optional[str] = None
    pdf_pages: Optional[int] = None
    pdf_storage_path: Optional[str] = None
    user_id: Optional[str] = None
    sender_email: Optional[str] = None
    extraction_type_id: Optional[str] = None
    transformation_type_id: Optional[str] = None
    extraction_log_id: Optional[str] = None
    extraction_type_filename: Optional[str] = None
    page_group_filename_template: Optional[str] = None
    trigger_source: str = MANUAL_TRIGGER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowRequest':
        """
        Raises:
            ValidationError: If the body is not an object, or asks for
                extractedDataStoragePath loading
        """
        if not isinstance(data, dict):
            raise ValidationError("Invalid request format")
        if data.get('extractedDataStoragePath'):
            raise ValidationError("extractedDataStoragePath is not supported; send extractedData inline")
        return cls(
            extracted_data=data.get('extractedData'),
            workflow_only_data=data.get('workflowOnlyData'),
            pdf_filename=data.get('pdfFilename'),
            original_pdf_filename=data.get('originalPdfFilename'),
            pdf_base64=data.get('pdfBase64'),
            pdf_pages=data.get('pdfPages'),
            pdf_storage_path=data.get('pdfStoragePath'),
            user_id=data.get('userId'),
            sender_email=data.get('senderEmail'),
            extraction_type_id=data.get('extractionTypeId'),
            transformation_type_id=data.get('transformationTypeId'),
            extraction_log_id=data.get('extractionLogId'),
            extraction_type_filename=data.get('extractionTypeFilename'),
            page_group_filename_template=data.get('pageGroupFilenameTemplate'),
            trigger_source=data.get('triggerSource') or MANUAL_TRIGGER,
        )


@dataclass
class WorkflowRunResult:
    success: bool
    extraction_log_id: Optional[str] = None
    workflow_execution_log_id: Optional[str] = None
    final_context: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': self.success,
            'extractionLogId': self.extraction_log_id,
            'workflowExecutionLogId': self.workflow_execution_log_id,
        }
        if self.success:
            result['finalContext'] = self.final_context
        else:
            result['error'] = self.error
        return result


def parse_extracted_data(raw: Any, format_type: str) -> Any:
    """
    Normalize request extractedData.

    JSON strings are parsed, CSV text stays a string, empty or unparseable
    input becomes {}.
    """
    if raw is None:
        return {}
    if not isinstance(raw, str):
        return raw
    if not raw.strip():
        return {}
    if format_type == CSV_FORMAT:
        return raw
    try:
        return json.loads(raw)
    except ValueError as e:
        logger.error(f"Failed to parse extracted data: {e}")
        return {}


def parse_workflow_only_data(raw: Any) -> Dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Failed to parse workflowOnlyData: {e}")
            return {}
    if not isinstance(raw, dict):
        logger.warning("workflowOnlyData is not an object, ignoring")
        return {}
    return raw


def format_run_timestamp(now: datetime) -> str:
    """'MM/DD/YYYY, h:mm AM' in the clock's timezone"""
    hour = now.hour % 12 or 12
    return f"{now:%m/%d/%Y}, {hour}:{now:%M} {now:%p}"


class WorkflowExecutor:
    """
    Runs one workflow against one extraction result.

    Usage:
        async with httpx.AsyncClient(timeout=None) as client:
            store = ConfigStore(url, key, client)
            executor = WorkflowExecutor(store, client)
            result = await executor.execute(workflow_id, WorkflowRequest.from_dict(body))
    """

    def __init__(
        self,
        store: ConfigStore,
        http_client: httpx.AsyncClient,
        upload_handler: Optional[UploadHandler] = None,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None,
        step_processor: Optional[StepProcessor] = None,
    ):
        self.store = store
        self.http_client = http_client
        self.upload_handler = upload_handler
        self.email_service = EmailService(store, http_client)
        self.step_processor = step_processor or StepProcessor()
        tz = ZoneInfo(timezone)
        self.clock = clock or (lambda: datetime.now(tz))

    async def _load_type_details(self, request: WorkflowRequest) -> Optional[Dict[str, Any]]:
        try:
            if request.extraction_type_id:
                return await self.store.get_extraction_type(request.extraction_type_id)
            if request.transformation_type_id:
                return await self.store.get_transformation_type(request.transformation_type_id)
        except (ExternalCallError, httpx.HTTPError) as e:
            logger.warning(f"Failed to load type details: {e}")
        return None

    async def _extraction_log_id(self, request: WorkflowRequest, exec_logger: ExecutionLogger) -> Optional[str]:
        if request.extraction_log_id:
            logger.info(f"Using existing extraction log: {request.extraction_log_id}")
            return request.extraction_log_id
        return await exec_logger.create_extraction_log({
            'user_id': request.user_id,
            'extraction_type_id': request.extraction_type_id,
            'transformation_type_id': request.transformation_type_id,
            'pdf_filename': request.original_pdf_filename,
            'pdf_pages': request.pdf_pages,
            'extraction_status': 'success',
            'extracted_data': request.extracted_data,
            'processing_mode': 'transformation' if request.transformation_type_id else 'extraction',
            'created_at': utcnow_iso(),
        })

    def build_context(
        self,
        request: WorkflowRequest,
        type_details: Optional[Dict[str, Any]],
        format_type: str,
    ) -> ExecutionContext:
        type_details = type_details or {}
        extracted = parse_extracted_data(request.extracted_data, format_type)

        data: Dict[str, Any] = {
            'extractedData': extracted,
            'originalExtractedData': request.extracted_data,
            'formatType': format_type,
            'pdfFilename': request.extraction_type_filename or request.pdf_filename,
            'originalPdfFilename': request.original_pdf_filename,
            'extractionTypeFilename': type_details.get('filename_template') or request.extraction_type_filename,
            'pdfStoragePath': request.pdf_storage_path,
            'pdfBase64': request.pdf_base64,
            'userId': request.user_id,
            'senderEmail': request.sender_email,
            'extractionTypeName': type_details.get('name') or 'Unknown',
            'timestamp': format_run_timestamp(self.clock()),
        }
        if request.page_group_filename_template:
            data['pageGroupFilenameTemplate'] = request.page_group_filename_template
        data.update(parse_workflow_only_data(request.workflow_only_data))

        if format_type != CSV_FORMAT and isinstance(extracted, dict):
            data.update(extracted)

        return ExecutionContext(data)

    def skip_reason(self, step: Step, context: ExecutionContext, trigger_source: str) -> Optional[str]:
        """Why the step should not run, or None to run it."""
        if step.skip_if and context.get(step.skip_if) is True:
            return f"skipIf condition met: {step.skip_if} = true"

        if step.run_if:
            value = context.get(step.run_if)
            if value is not True:
                return f"runIf condition not met: {step.run_if} = {value}"

        if (
            step.step_type == StepType.EMAIL_ACTION
            and step.raw_config.get('isNotificationEmail') is True
            and trigger_source == MANUAL_TRIGGER
        ):
            return "Notification email steps only run when triggered by email monitoring"

        return None

    async def _run_step(self, step: Step, context: ExecutionContext, runtime: StepRuntime) -> None:
        exec_logger = runtime.exec_logger
        timer = StepTimer()
        await exec_logger.step_started(step, context.snapshot())

        reason = self.skip_reason(step, context, runtime.state.trigger_source)
        if reason:
            logger.info(f"Skipping step {step.step_order} ({step.step_name}): {reason}")
            await exec_logger.record_step(
                step, StepStatus.SKIPPED, timer,
                error_message=reason,
                output={'skipped': True, 'reason': reason, 'conditionalSkip': True},
            )
            return

        try:
            output = await self.step_processor.process(step, context, runtime)
        except Exception as e:
            logger.error(f"Step {step.step_order} failed: {e}")
            await exec_logger.record_step(step, StepStatus.FAILED, timer, error_message=str(e))
            raise

        user_response = VariableResolver(context).resolve_user_response(step.user_response_template)
        await exec_logger.record_step(
            step, StepStatus.COMPLETED, timer,
            output=output,
            user_response=user_response,
        )
        logger.info(f"Step {step.step_order} completed in {timer.duration_ms}ms")

    async def execute(self, workflow_id: str, request: WorkflowRequest) -> WorkflowRunResult:
        """
        Execute a workflow.

        Args:
            workflow_id: Workflow whose steps are run
            request: Extraction result and run options

        Returns:
            WorkflowRunResult; failures are reported there, never raised
        """
        logger.info(f"Executing workflow {workflow_id} (trigger: {request.trigger_source})")

        exec_logger = ExecutionLogger(self.store, workflow_id)
        notifier = RunNotifier(self.store, self.email_service, exec_logger)
        context: Optional[ExecutionContext] = None
        extraction_log_id: Optional[str] = None

        try:
            type_details = await self._load_type_details(request)
            format_type = (type_details or {}).get('format_type') or 'JSON'

            extraction_log_id = await self._extraction_log_id(request, exec_logger)
            await exec_logger.start_run(extraction_log_id)

            context = self.build_context(request, type_details, format_type)

            steps: List[Step] = load_steps(await self.store.get_workflow_steps(workflow_id))
            if not steps:
                raise ValidationError("No steps found in workflow")
            logger.info(f"Found {len(steps)} workflow steps")

            runtime = StepRuntime(
                http_client=self.http_client,
                store=self.store,
                email_service=self.email_service,
                exec_logger=exec_logger,
                state=RunState(
                    workflow_id=workflow_id,
                    format_type=format_type,
                    trigger_source=request.trigger_source,
                    extraction_type_id=request.extraction_type_id,
                ),
                upload_handler=self.upload_handler,
                clock=self.clock,
            )

            for step in steps:
                await self._run_step(step, context, runtime)

        except Exception as e:
            error_message = str(e)
            logger.error(f"Workflow {workflow_id} failed: {error_message}")
            await exec_logger.fail_run(error_message)

            if request.extraction_type_id:
                failure_context = context or ExecutionContext({
                    'senderEmail': request.sender_email,
                    'originalPdfFilename': request.original_pdf_filename or request.pdf_filename,
                    'pdfBase64': request.pdf_base64,
                    'extractionTypeName': 'Unknown',
                })
                try:
                    await notifier.send_failure(request.extraction_type_id, failure_context, error_message)
                except Exception as notification_error:
                    logger.error(f"Failure notification failed (non-fatal): {notification_error}")

            return WorkflowRunResult(
                success=False,
                extraction_log_id=extraction_log_id,
                workflow_execution_log_id=exec_logger.workflow_execution_log_id,
                error=error_message,
            )

        await exec_logger.complete_run()
        logger.info(f"Workflow {workflow_id} completed successfully")

        if request.extraction_type_id:
            try:
                await notifier.send_success(request.extraction_type_id, context)
            except Exception as notification_error:
                logger.error(f"Success notification failed (non-fatal): {notification_error}")

        return WorkflowRunResult(
            success=True,
            extraction_log_id=extraction_log_id,
            workflow_execution_log_id=exec_logger.workflow_execution_log_id,
            final_context=context.data,
        )
