"""
API Endpoint step - calls a catalogued endpoint on a configured API.

The base URL and bearer token come from the store: ``api_settings`` for the
main API, ``secondary_api_configs`` (by id) for a secondary one.

Query parameters use two encodings. OData system parameters ($filter,
$select, ...) keep their expression text and only encode spaces and '#';
everything else is fully percent-encoded.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from docflow.flow_engine.context import ExecutionContext, set_path
from docflow.flow_engine.exceptions import ConfigurationError, ExternalCallError
from docflow.flow_engine.steps.base import StepRuntime, apply_response_mappings
from docflow.flow_engine.variable_resolver import (
    VariableResolver,
    encode_uri_component,
    escape_odata,
    stringify,
)
from docflow.models.workflow import ApiEndpointConfig, BodyFieldMapping, Step

logger = logging.getLogger(__name__)

ODATA_PARAMS = {'$filter', '$select', '$orderby', '$expand', '$top', '$skip', '$count', '$search'}


async def load_api_source(config: ApiEndpointConfig, runtime: StepRuntime) -> Tuple[str, str]:
    """
    Returns:
        (base_url, auth_token)

    Raises:
        ConfigurationError: If the resolved base URL is empty
    """
    base_url = ''
    auth_token = ''

    if config.api_source_type == 'main':
        settings = await runtime.store.get_main_api_settings()
        if settings:
            base_url = settings.get('path') or ''
            auth_token = settings.get('password') or ''
    elif config.api_source_type == 'secondary':
        if not config.secondary_api_id:
            raise ConfigurationError("Secondary API source selected but no secondaryApiId configured")
        settings = await runtime.store.get_secondary_api_config(config.secondary_api_id)
        if settings:
            base_url = settings.get('base_url') or ''
            auth_token = settings.get('auth_token') or ''
            logger.info(f"Loaded secondary API config: {settings.get('name')}")
    else:
        raise ConfigurationError(f"Unknown apiSourceType: {config.api_source_type}")

    if not base_url.strip():
        raise ConfigurationError(
            f"Base URL is empty after loading {config.api_source_type} API config"
        )
    return base_url.strip(), auth_token


def build_path(config: ApiEndpointConfig, resolver: VariableResolver) -> str:
    """Fill {var} / ${var} slots in apiPath."""
    api_path = config.api_path

    for var_name, var_config in config.path_variable_config.items():
        if isinstance(var_config, str):
            enabled, template = True, var_config
        elif isinstance(var_config, dict):
            enabled = var_config.get('enabled', True) is not False
            template = var_config.get('value') or ''
        else:
            continue

        if not enabled or not template:
            continue

        value = resolver.substitute_template_values(template)
        for slot in (f'${{{var_name}}}', f'{{{var_name}}}'):
            if slot in api_path:
                api_path = api_path.replace(slot, value, 1)
                break

    # Slots without explicit config resolve straight from the context
    return resolver.substitute_path_variables(api_path)


def build_query_string(config: ApiEndpointConfig, resolver: VariableResolver) -> str:
    regular_params: List[str] = []
    odata_params: List[str] = []

    for param_name, param_config in config.query_parameter_config.items():
        if not isinstance(param_config, dict):
            continue
        if not param_config.get('enabled') or not param_config.get('value'):
            continue

        is_filter = param_name.lower() == '$filter'
        value = resolver.substitute_template_values(
            str(param_config['value']),
            transform=escape_odata if is_filter else None,
        )

        if param_name.lower() in ODATA_PARAMS:
            encoded = value.replace(' ', '%20').replace('#', '%23')
            odata_params.append(f'{param_name}={encoded}')
        else:
            regular_params.append(f'{encode_uri_component(param_name)}={encode_uri_component(value)}')

    return '&'.join(regular_params + odata_params)


def coerce_value(value: Any, data_type: str) -> Any:
    """Convert a mapped value to the requested JSON type (None if it cannot be)."""
    text = stringify(value).strip()
    if data_type == 'integer':
        try:
            return int(text)
        except ValueError:
            try:
                return int(float(text))
            except ValueError:
                logger.warning(f"Cannot convert {value!r} to integer")
                return None
    elif data_type == 'number':
        try:
            number = float(text)
        except ValueError:
            logger.warning(f"Cannot convert {value!r} to number")
            return None
        return int(number) if number.is_integer() else number
    elif data_type == 'boolean':
        return text.lower() == 'true'
    return stringify(value)


def _mapping_value(mapping: BodyFieldMapping, context: ExecutionContext) -> Optional[Any]:
    if mapping.type == 'hardcoded':
        return mapping.value
    if mapping.type == 'variable':
        path = str(mapping.value or '').strip()
        if path.startswith('{{') and path.endswith('}}'):
            path = path[2:-2].strip()
        return context.get(path)
    logger.warning(f"Unknown body field mapping type: {mapping.type}")
    return None


def build_body(config: ApiEndpointConfig, context: ExecutionContext) -> str:
    template = config.request_body_template
    if not template or not config.request_body_field_mappings:
        return template

    # Mapping errors leave the template untouched and it is sent as written
    try:
        body_data = json.loads(template)
    except ValueError as e:
        logger.error(f"Error processing field mappings, requestBodyTemplate is not valid JSON: {e}")
        return template
    if not isinstance(body_data, dict):
        logger.error("Error processing field mappings, requestBodyTemplate is not a JSON object")
        return template

    for mapping in config.request_body_field_mappings:
        if not mapping.field_name:
            continue
        value = _mapping_value(mapping, context)
        if value is None:
            continue
        try:
            set_path(body_data, mapping.field_name, coerce_value(value, mapping.data_type))
        except ValueError as e:
            logger.error(f"Error processing field mappings, cannot set '{mapping.field_name}': {e}")
            return template

    return json.dumps(body_data)


async def execute_api_endpoint(step: Step, context: ExecutionContext, runtime: StepRuntime) -> Any:
    """
    Execute an api_endpoint step.

    Returns:
        Parsed JSON response, {'success': True, 'emptyResponse': True} for an
        empty body, or {'rawResponse': text} when the body is not JSON
    """
    config: ApiEndpointConfig = step.config
    base_url, auth_token = await load_api_source(config, runtime)

    resolver = VariableResolver(context)
    api_path = build_path(config, resolver)
    query_string = build_query_string(config, resolver)
    url = f"{base_url}{api_path}{'?' + query_string if query_string else ''}"

    headers = {'Content-Type': 'application/json'}
    if auth_token:
        headers['Authorization'] = f'Bearer {auth_token}'
    else:
        logger.warning(f"No auth token configured for {config.api_source_type} API")

    request: Dict[str, Any] = {'method': config.http_method, 'url': url, 'headers': headers}
    body = build_body(config, context)
    if config.http_method != 'GET' and body and body.strip():
        request['content'] = body

    logger.info(f"API endpoint call: {config.http_method} {url}")
    response = await runtime.http_client.request(**request)
    logger.info(f"API endpoint response status: {response.status_code}")

    if response.status_code < 200 or response.status_code >= 300:
        raise ExternalCallError(
            f"API endpoint call failed with status {response.status_code}: {response.text}",
            status_code=response.status_code,
            response_text=response.text,
            step_name=step.step_name,
        )

    response_text = response.text
    if not response_text or not response_text.strip():
        logger.info("API endpoint returned empty response")
        response_data: Any = {'success': True, 'emptyResponse': True}
    else:
        try:
            response_data = json.loads(response_text)
        except ValueError:
            logger.warning("Could not parse API endpoint response as JSON")
            response_data = {'rawResponse': response_text}

    if config.response_mappings:
        apply_response_mappings(response_data, config.response_mappings, context)

    runtime.state.last_api_response = response_data
    return response_data
