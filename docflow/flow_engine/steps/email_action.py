"""
Email Action step.

Two modes:
- ad hoc: to/subject/body/from templates resolved against the context
- notification: a stored NotificationTemplate rendered with the context plus
  optional custom field mappings; every attempt is written to
  ``notification_logs``, sent or failed
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.exceptions import ConfigurationError, ExternalCallError, ValidationError, WorkflowError
from docflow.flow_engine.steps.base import StepRuntime
from docflow.flow_engine.variable_resolver import VariableResolver
from docflow.models.execution_log import NotificationLog, SendStatus
from docflow.models.notification import EmailMessage, NotificationTemplate, PdfAttachment
from docflow.models.workflow import EmailActionConfig, Step
from docflow.services.pdf_service import extract_page

logger = logging.getLogger(__name__)

FALLBACK_ATTACHMENT_NAME = 'attachment.pdf'


def html_line_breaks(text: str) -> str:
    return (text or '').replace('\r\n', '\n').replace('\n', '<br>')


def resolve_attachment_filename(
    source: Optional[str],
    context: ExecutionContext,
    resolver: VariableResolver,
    mappings: Dict[str, Any],
) -> str:
    """
    Pick the attachment name for an attachment source.

    Each source falls back to the original PDF filename when its preferred
    value is missing. With no source set the legacy chain applies: renamed
    filename, extraction type template, original filename.
    """
    original = context.get('originalPdfFilename') or FALLBACK_ATTACHMENT_NAME

    if source == 'renamed_pdf_step':
        return context.get('renamedFilename') or original

    if source == 'transform_setup_pdf':
        return context.get('transformSetupFilename') or context.get('pdfFilename') or original

    if source == 'original_pdf':
        return original

    if source == 'extraction_type_filename':
        template = context.get('extractionTypeFilename')
        if template:
            return resolver.tracked_substitute(template, mappings)
        return original

    if source:
        logger.warning(f"Unknown attachment source {source}, using legacy filename chain")

    if context.get('renamedFilename'):
        return context.get('renamedFilename')
    template = context.get('extractionTypeFilename')
    if template:
        return resolver.tracked_substitute(template, mappings)
    return original


def attachment_content(config: EmailActionConfig, pdf_base64: str) -> str:
    """Whole grouped PDF, or one page of it for specific_page_in_group."""
    if config.pdf_email_strategy == 'specific_page_in_group' and config.specific_page_to_email:
        page = config.specific_page_to_email
        try:
            return extract_page(pdf_base64, page)
        except ValidationError as e:
            raise ValidationError(f"Failed to extract page {page} from PDF: {e.message}")
    return pdf_base64


async def lookup_cc_email(context: ExecutionContext, runtime: StepRuntime) -> Optional[str]:
    """User directory lookup for ccUser; failures only warn."""
    user_id = context.get('userId')
    if not user_id:
        return None
    try:
        email = await runtime.store.get_user_email(str(user_id))
    except (ExternalCallError, httpx.HTTPError) as e:
        logger.warning(f"Could not fetch CC email for user {user_id}: {e}")
        return None
    if not email:
        logger.warning(f"User email not found for userId {user_id}")
    return email


async def execute_email_action(step: Step, context: ExecutionContext, runtime: StepRuntime) -> Dict[str, Any]:
    config: EmailActionConfig = step.config
    if config.notification_mode:
        return await execute_notification_email(step, context, runtime)

    resolver = VariableResolver(context)
    mappings: Dict[str, Any] = {}

    to = resolver.tracked_substitute(config.to, mappings)
    subject = resolver.tracked_substitute(config.subject, mappings)
    body = resolver.tracked_substitute(config.body, mappings)
    from_address = resolver.tracked_substitute(config.from_address, mappings) if config.from_address else None

    if not to:
        raise ConfigurationError("Email action has no recipient", step_name=step.step_name)

    attachment = None
    pdf_base64 = context.get('pdfBase64')
    if config.include_attachment and pdf_base64:
        filename = resolve_attachment_filename(
            config.attachment_source or 'transform_setup_pdf', context, resolver, mappings
        )
        attachment = PdfAttachment(filename=filename, content=attachment_content(config, pdf_base64))
        logger.info(f"PDF attachment prepared with filename: {filename}")

    cc = await lookup_cc_email(context, runtime) if config.cc_user else None

    email_result = await runtime.email_service.send(EmailMessage(
        to=to,
        subject=subject,
        body=body,
        from_address=from_address,
        cc=cc,
        attachment=attachment,
    ))

    return {
        'success': True,
        'message': 'Email sent successfully',
        'emailResult': email_result,
        'processedConfig': {
            'to': to,
            'subject': subject,
            'body': body,
            'from': from_address,
            'cc': cc,
        },
        'fieldMappings': mappings,
        'attachmentIncluded': attachment is not None,
        'attachmentFilename': attachment.filename if attachment else None,
    }


def build_notification_context(
    config: EmailActionConfig,
    context: ExecutionContext,
) -> ExecutionContext:
    data = dict(context.data)
    data['timestamp'] = context.get('timestamp') or datetime.now(timezone.utc).isoformat()
    data['pdf_filename'] = context.get('originalPdfFilename') or context.get('pdfFilename') or 'unknown.pdf'
    data['sender_email'] = context.get('senderEmail') or context.get('sender_email')

    resolver = VariableResolver(context)
    for field_name, template_value in config.custom_field_mappings.items():
        if isinstance(template_value, str) and template_value.strip():
            data[field_name] = resolver.substitute(template_value)
            logger.debug(f"Custom field mapping: {field_name} = {data[field_name]!r}")

    return ExecutionContext(data)


async def execute_notification_email(step: Step, context: ExecutionContext, runtime: StepRuntime) -> Dict[str, Any]:
    config: EmailActionConfig = step.config

    record = await runtime.store.get_notification_template(config.notification_template_id)
    if not record:
        raise ConfigurationError(
            f"Notification template not found: {config.notification_template_id}",
            step_name=step.step_name,
        )
    template = NotificationTemplate.from_record(record)
    logger.info(f"Loaded notification template: {template.template_name or template.id}")

    resolver = VariableResolver(build_notification_context(config, context))

    recipient_template = config.recipient_email_override or template.recipient_email
    if not recipient_template:
        raise ConfigurationError("Notification template has no recipient", step_name=step.step_name)

    recipient = resolver.substitute(recipient_template)
    subject = resolver.substitute(template.subject_template)
    body = resolver.substitute(template.body_template)
    cc = resolver.substitute(template.cc_emails) if template.cc_emails else None
    bcc = resolver.substitute(template.bcc_emails) if template.bcc_emails else None

    attach = config.include_attachment if config.include_attachment is not None else template.attach_pdf
    attachment = None
    pdf_base64 = context.get('pdfBase64')

    notification_log = NotificationLog(
        notification_type=template.template_type,
        recipient_email=recipient,
        subject=subject,
        body=body,
        send_status=SendStatus.SENT,
        extraction_type_id=runtime.state.extraction_type_id,
        cc_emails=template.cc_emails,
        bcc_emails=template.bcc_emails,
        template_id=template.id,
    )

    try:
        if attach and pdf_base64:
            filename = context.get('pdfFilename') or context.get('originalPdfFilename') or FALLBACK_ATTACHMENT_NAME
            attachment = PdfAttachment(filename=filename, content=attachment_content(config, pdf_base64))
            notification_log.pdf_attached = True
        email_result = await runtime.email_service.send(EmailMessage(
            to=recipient,
            subject=subject,
            body=html_line_breaks(body),
            cc=cc,
            bcc=bcc,
            attachment=attachment,
        ))
    except (WorkflowError, httpx.HTTPError) as e:
        notification_log.send_status = SendStatus.FAILED
        notification_log.error_message = str(e)
        await runtime.exec_logger.log_notification(notification_log)
        raise

    await runtime.exec_logger.log_notification(notification_log)
    await runtime.exec_logger.mark_notification_sent(template.template_type)
    logger.info("Notification email sent and logged")

    applied = [k for k, v in config.custom_field_mappings.items() if isinstance(v, str) and v.strip()]
    return {
        'success': True,
        'message': 'Notification email sent successfully',
        'emailResult': email_result,
        'notificationMode': True,
        'templateUsed': template.template_name,
        'processedConfig': {
            'to': recipient,
            'subject': subject,
            'body': body,
            'cc': template.cc_emails,
        },
        'customFieldsApplied': applied or None,
        'attachmentIncluded': attachment is not None,
        'attachmentFilename': attachment.filename if attachment else None,
    }
