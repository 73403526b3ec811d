"""
JSON Transform step - strips workflow-only fields from the extracted data.
"""
import logging
from typing import Any, Dict, List, Optional

from docflow.flow_engine.context import EXTRACTED_DATA_KEY, ExecutionContext
from docflow.models.workflow import JsonTransformConfig, OutputField, Step

logger = logging.getLogger(__name__)


def filter_workflow_only_fields(data: Any, fields: Optional[List[OutputField]]) -> Any:
    """
    Keep only non-workflow-only field names, at every nesting depth.

    Data is returned unchanged when no field list is given or when none of
    the fields is workflow-only.

        fields [a, b (workflow only)], data {a: 1, b: 2, c: 3} -> {a: 1}
    """
    if data is None or not fields:
        return data

    keep = {f.field_name for f in fields if not f.is_workflow_only}
    workflow_only_count = len(fields) - sum(1 for f in fields if not f.is_workflow_only)
    logger.info(f"JSON filtering: keeping {len(keep)} fields, excluding {workflow_only_count} workflow-only fields")

    if workflow_only_count == 0:
        return data

    def filter_value(value):
        if isinstance(value, list):
            return [filter_value(item) for item in value]
        if isinstance(value, dict):
            return {k: filter_value(v) for k, v in value.items() if k in keep}
        return value

    return filter_value(data)


async def execute_json_transform(step: Step, context: ExecutionContext, runtime=None) -> Dict[str, Any]:
    config: JsonTransformConfig = step.config

    if config.output_fields is None:
        logger.info("No output fields configured, skipping transform")
        return {'transformed': False, 'reason': 'no output fields configured'}

    context[EXTRACTED_DATA_KEY] = filter_workflow_only_fields(
        context.extracted_data, config.output_fields
    )
    return {
        'transformed': True,
        'fieldCount': sum(1 for f in config.output_fields if not f.is_workflow_only),
    }
