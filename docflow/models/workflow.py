"""
Workflow step definitions.

Steps are loaded from the configuration store as raw records and parsed once,
up front, into a ``Step`` carrying a ``StepType`` and a typed config object.
An unknown step type fails the run before any step executes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from docflow.flow_engine.exceptions import ConfigurationError


class StepType(str, Enum):
    """Step kinds understood by the engine"""
    API_CALL = "api_call"
    API_ENDPOINT = "api_endpoint"
    EMAIL_ACTION = "email_action"
    CONDITIONAL_CHECK = "conditional_check"
    JSON_TRANSFORM = "json_transform"
    RENAME_FILE = "rename_file"
    RENAME_PDF = "rename_pdf"
    SFTP_UPLOAD = "sftp_upload"
    CSV_UPLOAD = "csv_upload"
    JSON_UPLOAD = "json_upload"

    @classmethod
    def parse(cls, value: str) -> 'StepType':
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"Unknown step type: {value}")


@dataclass
class ResponseMapping:
    """Copies one value out of an API response into the context"""
    response_path: str
    update_path: str


def parse_response_mappings(config: Dict[str, Any]) -> List[ResponseMapping]:
    """
    Read ``responseDataMappings``, or the legacy single
    ``responseDataPath`` + ``updateJsonPath`` pair.

    Entries missing either side are dropped.
    """
    raw = config.get('responseDataMappings')
    if not isinstance(raw, list):
        if config.get('responseDataPath') and config.get('updateJsonPath'):
            raw = [{
                'responsePath': config['responseDataPath'],
                'updatePath': config['updateJsonPath'],
            }]
        else:
            raw = []

    mappings = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        response_path = entry.get('responsePath')
        update_path = entry.get('updatePath') or entry.get('fieldName')
        if response_path and update_path:
            mappings.append(ResponseMapping(response_path, update_path))
    return mappings


@dataclass
class ApiCallConfig:
    url: str = ''
    method: str = 'POST'
    headers: Dict[str, str] = field(default_factory=dict)
    request_body: str = ''
    escape_single_quotes_in_body: bool = False
    response_mappings: List[ResponseMapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ApiCallConfig':
        return cls(
            url=config.get('url') or '',
            method=(config.get('method') or 'POST').upper(),
            headers=dict(config.get('headers') or {}),
            request_body=config.get('requestBody') or '',
            escape_single_quotes_in_body=config.get('escapeSingleQuotesInBody') is True,
            response_mappings=parse_response_mappings(config),
        )


@dataclass
class BodyFieldMapping:
    """
    One field written into an endpoint request body.

    type is 'hardcoded' (value used literally) or 'variable' (value is a
    context path, optionally wrapped in {{ }}).
    """
    field_name: str
    type: str
    value: Any
    data_type: str = 'string'

    @classmethod
    def from_dict(cls, entry: Dict[str, Any]) -> 'BodyFieldMapping':
        return cls(
            field_name=entry.get('fieldName') or '',
            type=entry.get('type') or '',
            value=entry.get('value'),
            data_type=entry.get('dataType') or 'string',
        )


@dataclass
class ApiEndpointConfig:
    api_source_type: str = 'main'
    secondary_api_id: Optional[str] = None
    api_path: str = ''
    http_method: str = 'GET'
    path_variable_config: Dict[str, Union[str, Dict[str, Any]]] = field(default_factory=dict)
    query_parameter_config: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    request_body_template: str = ''
    request_body_field_mappings: List[BodyFieldMapping] = field(default_factory=list)
    response_mappings: List[ResponseMapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ApiEndpointConfig':
        return cls(
            api_source_type=config.get('apiSourceType') or 'main',
            secondary_api_id=config.get('secondaryApiId'),
            api_path=config.get('apiPath') or '',
            http_method=(config.get('httpMethod') or 'GET').upper(),
            path_variable_config=dict(config.get('pathVariableConfig') or {}),
            query_parameter_config=dict(config.get('queryParameterConfig') or {}),
            request_body_template=config.get('requestBodyTemplate') or '',
            request_body_field_mappings=[
                BodyFieldMapping.from_dict(m)
                for m in (config.get('requestBodyFieldMappings') or [])
                if isinstance(m, dict)
            ],
            response_mappings=parse_response_mappings(config),
        )


@dataclass
class ConditionalCheckConfig:
    field_path: str = ''
    operator: str = 'exists'
    expected_value: Any = None
    store_result_as: Optional[str] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ConditionalCheckConfig':
        raw_path = config.get('fieldPath') or config.get('checkField') or ''
        field_path = raw_path.strip()
        if field_path.startswith('{{'):
            field_path = field_path[2:]
        if field_path.endswith('}}'):
            field_path = field_path[:-2]
        return cls(
            field_path=field_path.strip(),
            operator=config.get('operator') or 'exists',
            expected_value=config.get('expectedValue'),
            store_result_as=config.get('storeResultAs') or None,
        )


@dataclass
class OutputField:
    field_name: str
    is_workflow_only: bool = False


@dataclass
class JsonTransformConfig:
    # None when no field list is configured
    output_fields: Optional[List[OutputField]] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'JsonTransformConfig':
        raw = config.get('outputFields')
        if not isinstance(raw, list):
            return cls()
        return cls(output_fields=[
            OutputField(f.get('fieldName') or '', f.get('isWorkflowOnly') is True)
            for f in raw
            if isinstance(f, dict)
        ])


@dataclass
class RenameConfig:
    filename_template: Optional[str] = None
    legacy_template: Optional[str] = None
    append_timestamp: bool = False
    timestamp_format: str = 'YYYYMMDD'
    rename_pdf: bool = False
    rename_csv: bool = False
    rename_json: bool = False
    rename_xml: bool = False

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'RenameConfig':
        toggles = ('renamePdf', 'renameCsv', 'renameJson', 'renameXml')
        # Older steps carry no toggles at all and only ever renamed the PDF
        any_toggle = any(key in config for key in toggles)
        return cls(
            filename_template=config.get('filenameTemplate') or None,
            legacy_template=config.get('template') or None,
            append_timestamp=config.get('appendTimestamp') is True,
            timestamp_format=config.get('timestampFormat') or 'YYYYMMDD',
            rename_pdf=config.get('renamePdf') is True if any_toggle else True,
            rename_csv=config.get('renameCsv') is True,
            rename_json=config.get('renameJson') is True,
            rename_xml=config.get('renameXml') is True,
        )


def _page_number(value: Any) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"specificPageToEmail must be a page number, got {value!r}")


@dataclass
class EmailActionConfig:
    to: str = ''
    subject: str = ''
    body: str = ''
    from_address: Optional[str] = None
    include_attachment: Optional[bool] = None
    attachment_source: Optional[str] = None
    pdf_email_strategy: str = 'all_pages_in_group'
    specific_page_to_email: Optional[int] = None
    cc_user: bool = False
    is_notification_email: bool = False
    notification_template_id: Optional[str] = None
    custom_field_mappings: Dict[str, str] = field(default_factory=dict)
    recipient_email_override: Optional[str] = None

    @property
    def notification_mode(self) -> bool:
        return self.is_notification_email and bool(self.notification_template_id)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'EmailActionConfig':
        page = config.get('specificPageToEmail')
        include = config.get('includeAttachment')
        return cls(
            to=config.get('to') or '',
            subject=config.get('subject') or '',
            body=config.get('body') or '',
            from_address=config.get('from') or None,
            include_attachment=None if include is None else bool(include),
            attachment_source=config.get('attachmentSource') or None,
            pdf_email_strategy=config.get('pdfEmailStrategy') or 'all_pages_in_group',
            specific_page_to_email=_page_number(page),
            cc_user=config.get('ccUser') is True,
            is_notification_email=config.get('isNotificationEmail') is True,
            notification_template_id=config.get('notificationTemplateId') or None,
            custom_field_mappings=dict(config.get('customFieldMappings') or {}),
            recipient_email_override=config.get('recipientEmailOverride') or None,
        )


@dataclass
class UploadConfig:
    upload_type: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'UploadConfig':
        return cls(upload_type=config.get('uploadType'), raw=dict(config))


StepConfig = Union[
    ApiCallConfig,
    ApiEndpointConfig,
    ConditionalCheckConfig,
    JsonTransformConfig,
    RenameConfig,
    EmailActionConfig,
    UploadConfig,
]

CONFIG_TYPES = {
    StepType.API_CALL: ApiCallConfig,
    StepType.API_ENDPOINT: ApiEndpointConfig,
    StepType.EMAIL_ACTION: EmailActionConfig,
    StepType.CONDITIONAL_CHECK: ConditionalCheckConfig,
    StepType.JSON_TRANSFORM: JsonTransformConfig,
    StepType.RENAME_FILE: RenameConfig,
    StepType.RENAME_PDF: RenameConfig,
    StepType.SFTP_UPLOAD: UploadConfig,
    StepType.CSV_UPLOAD: UploadConfig,
    StepType.JSON_UPLOAD: UploadConfig,
}


@dataclass(frozen=True)
class Step:
    """A configured unit of work, immutable during a run"""
    id: str
    workflow_id: str
    step_name: str
    step_order: int
    step_type: StepType
    config: StepConfig
    raw_config: Dict[str, Any] = field(default_factory=dict)
    user_response_template: Optional[str] = None

    @property
    def skip_if(self) -> Optional[str]:
        return self.raw_config.get('skipIf') or None

    @property
    def run_if(self) -> Optional[str]:
        return self.raw_config.get('runIf') or None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Step':
        """Build a Step from a ``workflow_steps`` row."""
        step_type = StepType.parse(record.get('step_type') or '')
        raw_config = record.get('config_json') or {}
        if not isinstance(raw_config, dict):
            raise ConfigurationError(
                f"Step config must be an object, got {type(raw_config).__name__}",
                step_name=record.get('step_name'),
            )
        return cls(
            id=str(record.get('id') or ''),
            workflow_id=str(record.get('workflow_id') or ''),
            step_name=record.get('step_name') or f"step_{record.get('step_order')}",
            step_order=int(record.get('step_order') or 0),
            step_type=step_type,
            config=CONFIG_TYPES[step_type].from_dict(raw_config),
            raw_config=raw_config,
            user_response_template=record.get('user_response_template'),
        )


def load_steps(records: List[Dict[str, Any]]) -> List[Step]:
    """Parse step records and order them by ``step_order``."""
    steps = sorted((Step.from_record(r) for r in records), key=lambda s: s.step_order)
    seen = set()
    for step in steps:
        if step.step_order in seen:
            raise ConfigurationError(f"Duplicate step_order {step.step_order}", step_name=step.step_name)
        seen.add(step.step_order)
    return steps
