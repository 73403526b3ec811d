"""
Run notifications - success / failure emails sent after a workflow run.

Settings live on the extraction type:
    enable_{type}_notifications, {type}_notification_template_id,
    {type}_recipient_email_override
with the global default template for the type as fallback.

Every send attempt is written to ``notification_logs``. A failed send is
raised back to the caller, which treats it as non-fatal.
"""
import logging
import re
from typing import Any, Dict, Optional

import httpx

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.exceptions import ExternalCallError, WorkflowError
from docflow.flow_engine.variable_resolver import VariableResolver
from docflow.models.execution_log import NotificationLog, SendStatus
from docflow.models.notification import EmailMessage, NotificationTemplate, PdfAttachment
from docflow.services.config_store import ConfigStore
from docflow.services.email import EmailService
from docflow.services.execution_logger import ExecutionLogger

logger = logging.getLogger(__name__)

SUCCESS = 'success'
FAILURE = 'failure'

_NEWLINES = re.compile(r'\r?\n')


def format_html_body(body: str) -> str:
    """Real and literal (backslash-n) newlines become <br> inside an HTML wrapper."""
    formatted = _NEWLINES.sub('<br>', body or '').replace('\\n', '<br>')
    return f'<html><body style="font-family: Arial, sans-serif;">{formatted}</body></html>'


class NotificationSendError(WorkflowError):
    """A run notification was attempted and the email could not be sent"""
    pass


class RunNotifier:
    """
    Sends the run-level notification configured on an extraction type.

    Usage:
        notifier = RunNotifier(store, email_service, exec_logger)
        await notifier.send_failure(extraction_type_id, context, "boom")
    """

    def __init__(self, store: ConfigStore, email_service: EmailService, exec_logger: ExecutionLogger):
        self.store = store
        self.email_service = email_service
        self.exec_logger = exec_logger

    async def send_success(self, extraction_type_id: str, context: ExecutionContext) -> bool:
        return await self._send(SUCCESS, extraction_type_id, context)

    async def send_failure(self, extraction_type_id: str, context: ExecutionContext, error_message: str) -> bool:
        return await self._send(FAILURE, extraction_type_id, context, error_message)

    async def _load_template(self, notification_type: str, extraction_type: Dict[str, Any]) -> Optional[NotificationTemplate]:
        record = None
        template_id = extraction_type.get(f'{notification_type}_notification_template_id')
        if template_id:
            record = await self.store.get_notification_template(template_id)
        if not record:
            logger.info(f"Using global default {notification_type} template")
            record = await self.store.get_default_notification_template(notification_type)
        return NotificationTemplate.from_record(record) if record else None

    def _notification_context(
        self,
        context: ExecutionContext,
        extraction_type: Dict[str, Any],
        error_message: Optional[str],
    ) -> ExecutionContext:
        data = dict(context.data)
        if error_message is not None:
            data['error_message'] = error_message
        data['pdf_filename'] = context.get('originalPdfFilename') or context.get('pdfFilename') or 'unknown.pdf'
        data['extraction_type_name'] = extraction_type.get('name')
        data['sender_email'] = context.get('senderEmail') or context.get('submitterEmail') or 'unknown'
        data['submitter_email'] = context.get('submitterEmail') or context.get('senderEmail') or 'unknown'
        return ExecutionContext(data)

    async def _send(
        self,
        notification_type: str,
        extraction_type_id: str,
        context: ExecutionContext,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Returns:
            True if a notification was sent, False if none was configured

        Raises:
            NotificationSendError: If the email could not be sent
        """
        try:
            extraction_type = await self.store.get_extraction_type(extraction_type_id)
        except (ExternalCallError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch extraction type settings: {e}")
            return False
        if not extraction_type:
            logger.warning(f"Extraction type not found: {extraction_type_id}")
            return False

        if not extraction_type.get(f'enable_{notification_type}_notifications'):
            logger.info(f"{notification_type.capitalize()} notifications not enabled for this extraction type")
            return False

        template = await self._load_template(notification_type, extraction_type)
        if template is None:
            logger.warning(f"No {notification_type} notification template found")
            return False

        resolver = VariableResolver(self._notification_context(context, extraction_type, error_message))

        recipient = extraction_type.get(f'{notification_type}_recipient_email_override') or template.recipient_email
        if notification_type == SUCCESS and not recipient:
            recipient = context.get('senderEmail') or context.get('submitterEmail')
        if not recipient:
            logger.warning(f"No recipient email configured for {notification_type} notifications")
            return False

        recipient = resolver.substitute(recipient)
        subject = resolver.substitute(template.subject_template)
        body = resolver.substitute(template.body_template)

        attachment = None
        pdf_base64 = context.get('pdfBase64')
        if template.attach_pdf and pdf_base64:
            attachment = PdfAttachment(filename=resolver.lookup('pdf_filename'), content=pdf_base64)

        logger.info(f"Sending {notification_type} notification to {recipient}: {subject!r}")

        notification_log = NotificationLog(
            notification_type=notification_type,
            recipient_email=recipient,
            subject=subject,
            body=body,
            send_status=SendStatus.SENT,
            extraction_type_id=extraction_type_id,
            cc_emails=template.cc_emails,
            bcc_emails=template.bcc_emails,
            pdf_attached=template.attach_pdf,
            template_id=template.id,
        )

        send_error = None
        try:
            await self.email_service.send(EmailMessage(
                to=recipient,
                subject=subject,
                body=format_html_body(body),
                cc=template.cc_emails,
                bcc=template.bcc_emails,
                attachment=attachment,
            ))
        except (WorkflowError, httpx.HTTPError) as e:
            send_error = str(e)
            notification_log.send_status = SendStatus.FAILED
            notification_log.error_message = send_error
            logger.error(f"Failed to send {notification_type} notification: {send_error}")

        await self.exec_logger.log_notification(notification_log)

        if send_error is not None:
            raise NotificationSendError(f"Failed to send notification: {send_error}")

        await self.exec_logger.mark_notification_sent(notification_type)
        logger.info(f"{notification_type.capitalize()} notification sent successfully")
        return True
