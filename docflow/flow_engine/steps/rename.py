"""
Rename step - computes output filenames from a template.

Template precedence:
    step filenameTemplate / template
    -> page group template (pageGroupFilenameTemplate in the context)
    -> extraction type template (extractionTypeFilename in the context)
    -> Remit_{{pdfFilename}}

Placeholders missing from the context are looked up in the last API
response. One filename is produced per enabled output type, and a single
primary filename is chosen: format type match, then pdf, json, csv, xml.
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.steps.base import StepRuntime
from docflow.flow_engine.variable_resolver import VariableResolver
from docflow.models.workflow import RenameConfig, Step

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = 'Remit_{{pdfFilename}}'

EXTENSION_PATTERN = re.compile(r'\.(pdf|csv|json|xml)$', re.IGNORECASE)

TIMESTAMP_FORMATS = {
    'YYYYMMDD': '%Y%m%d',
    'YYYY-MM-DD': '%Y-%m-%d',
    'YYYYMMDD_HHMMSS': '%Y%m%d_%H%M%S',
    'YYYY-MM-DD_HH-MM-SS': '%Y-%m-%d_%H-%M-%S',
}

# (file type, config flag, context key), in primary-filename precedence order
OUTPUT_TYPES = (
    ('pdf', 'rename_pdf', 'renamedPdfFilename'),
    ('json', 'rename_json', 'renamedJsonFilename'),
    ('csv', 'rename_csv', 'renamedCsvFilename'),
    ('xml', 'rename_xml', 'renamedXmlFilename'),
)


def select_template(config: RenameConfig, context: ExecutionContext) -> str:
    return (
        config.filename_template
        or config.legacy_template
        or context.get('pageGroupFilenameTemplate')
        or context.get('extractionTypeFilename')
        or DEFAULT_TEMPLATE
    )


def format_timestamp(now: datetime, timestamp_format: str) -> str:
    pattern = TIMESTAMP_FORMATS.get(timestamp_format)
    if pattern is None:
        logger.warning(f"Unknown timestamp format {timestamp_format}, using YYYYMMDD")
        pattern = TIMESTAMP_FORMATS['YYYYMMDD']
    return now.strftime(pattern)


def build_base_filename(
    config: RenameConfig,
    context: ExecutionContext,
    last_api_response: Any = None,
    now: Optional[datetime] = None,
) -> str:
    """Resolve the template, drop any known extension, add the timestamp."""
    template = select_template(config, context)
    resolver = VariableResolver(context, fallback=last_api_response)
    resolved = resolver.substitute(template)

    base = EXTENSION_PATTERN.sub('', resolved)
    if config.append_timestamp:
        base = f"{base}_{format_timestamp(now or datetime.now(), config.timestamp_format)}"
    return base


async def execute_rename(step: Step, context: ExecutionContext, runtime: StepRuntime) -> Dict[str, Any]:
    config: RenameConfig = step.config
    base_filename = build_base_filename(
        config,
        context,
        last_api_response=runtime.state.last_api_response,
        now=runtime.clock(),
    )

    renamed: Dict[str, str] = {}
    for file_type, flag, context_key in OUTPUT_TYPES:
        if getattr(config, flag):
            filename = f"{base_filename}.{file_type}"
            context.set(context_key, filename)
            renamed[file_type] = filename

    format_type = (runtime.state.format_type or '').lower()
    if format_type in renamed:
        primary = renamed[format_type]
    else:
        primary = next((renamed[t] for t, _, _ in OUTPUT_TYPES if t in renamed), base_filename)

    context.set('renamedFilename', primary)
    context.set('actualFilename', primary)
    logger.info(f"Primary renamed filename: {primary}")

    return {
        'renamedFilenames': renamed,
        'primaryFilename': primary,
        'baseFilename': base_filename,
    }
