"""
Workflows API - runs a workflow against an extraction result

Endpoints:
- POST /api/v1/workflows/:workflow_id/execute - Execute workflow
"""

import asyncio
import logging
from typing import Any, Dict

import httpx
from flask import Blueprint, current_app, jsonify, request

from docflow.flow_engine.exceptions import ValidationError
from docflow.flow_engine.executor import WorkflowExecutor, WorkflowRequest, WorkflowRunResult
from docflow.services.config_store import ConfigStore

logger = logging.getLogger(__name__)

workflows_bp = Blueprint('workflows', __name__, url_prefix='/api/v1/workflows')


async def run_workflow(workflow_id: str, workflow_request: WorkflowRequest, config: Dict[str, Any]) -> WorkflowRunResult:
    # No client timeout: a step waits for its call to finish
    async with httpx.AsyncClient(timeout=None) as client:
        store = ConfigStore(config['CONFIG_STORE_URL'], config['CONFIG_STORE_SERVICE_KEY'], client)
        executor = WorkflowExecutor(store, client, timezone=config['WORKFLOW_TIMEZONE'])
        return await executor.execute(workflow_id, workflow_request)


@workflows_bp.route('/<workflow_id>/execute', methods=['POST'])
def execute_workflow(workflow_id):
    """
    Execute a workflow.

    Body: extractedData, workflowOnlyData, pdfFilename, originalPdfFilename,
    pdfBase64, pdfPages, userId, senderEmail, extractionTypeId,
    transformationTypeId, extractionLogId, extractionTypeFilename,
    pageGroupFilenameTemplate, triggerSource

    Returns:
        200 {success, extractionLogId, workflowExecutionLogId, finalContext}
        400 {error, details} for an invalid body
        500 {success: false, error, extractionLogId, workflowExecutionLogId}
    """
    data = request.get_json(silent=True)
    try:
        workflow_request = WorkflowRequest.from_dict(data)
    except ValidationError as e:
        logger.warning(f"Rejected execute request for workflow {workflow_id}: {e}")
        return jsonify({'error': 'Invalid request format', 'details': e.message}), 400

    result = asyncio.run(run_workflow(workflow_id, workflow_request, current_app.config))
    return jsonify(result.to_dict()), 200 if result.success else 500
