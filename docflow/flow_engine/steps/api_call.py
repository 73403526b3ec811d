"""
API Call step - calls an arbitrary REST URL built from templates.

Config:
    {
        "url": "https://api.example.com/orders/{{orderId}}",
        "method": "POST",
        "headers": {"Authorization": "Bearer ..."},
        "requestBody": "{\"ref\": \"{{reference}}\", \"data\": {{extractedData}}}",
        "escapeSingleQuotesInBody": false,
        "responseDataMappings": [{"responsePath": "id", "updatePath": "orderId"}]
    }
"""
import json
import logging
from typing import Any, Dict

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.exceptions import ExternalCallError
from docflow.flow_engine.steps.base import StepRuntime, apply_response_mappings
from docflow.flow_engine.variable_resolver import VariableResolver
from docflow.models.workflow import ApiCallConfig, Step

logger = logging.getLogger(__name__)


def build_request(config: ApiCallConfig, context: ExecutionContext) -> Dict[str, Any]:
    """
    Resolve URL and body templates.

    URL values are OData-escaped (when enabled) then percent-encoded; body
    values are OData-escaped (when enabled) then JSON-string escaped.
    """
    resolver = VariableResolver(context)
    escape = config.escape_single_quotes_in_body

    url = resolver.substitute_url(config.url, odata_escape=escape)
    body = resolver.substitute_json_body(config.request_body, odata_escape=escape)

    request: Dict[str, Any] = {
        'method': config.method,
        'url': url,
        'headers': config.headers,
    }
    if config.method != 'GET' and body and body.strip():
        request['content'] = body
    return request


async def execute_api_call(step: Step, context: ExecutionContext, runtime: StepRuntime) -> Any:
    """
    Execute an api_call step.

    Returns:
        The parsed JSON response

    Raises:
        ExternalCallError: Non-2xx status, empty body, or non-JSON body
    """
    config: ApiCallConfig = step.config
    request = build_request(config, context)
    logger.info(f"API call: {request['method']} {request['url']}")

    response = await runtime.http_client.request(**request)
    logger.info(f"API response status: {response.status_code}")

    if response.status_code < 200 or response.status_code >= 300:
        raise ExternalCallError(
            f"API call failed with status {response.status_code}: {response.text}",
            status_code=response.status_code,
            response_text=response.text,
            step_name=step.step_name,
        )

    response_text = response.text
    if not response_text or not response_text.strip():
        raise ExternalCallError(
            "API returned empty response body",
            status_code=response.status_code,
            step_name=step.step_name,
        )

    try:
        response_data = json.loads(response_text)
    except ValueError as e:
        raise ExternalCallError(
            f"API response is not valid JSON: {e}",
            status_code=response.status_code,
            response_text=response_text,
            step_name=step.step_name,
        )

    if config.response_mappings:
        apply_response_mappings(response_data, config.response_mappings, context)
    else:
        logger.info("No response data mappings configured for this API call")

    runtime.state.last_api_response = response_data
    return response_data
