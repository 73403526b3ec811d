"""
Tests for the HTTP routes
"""

import pytest

from docflow import create_app
from docflow.config import Config
from docflow.flow_engine.executor import WorkflowRunResult
from docflow.routes import workflows


class RouteTestConfig(Config):
    TESTING = True
    CONFIG_STORE_URL = 'https://store.test'
    CONFIG_STORE_SERVICE_KEY = 'k'
    WORKFLOW_TIMEZONE = 'UTC'


@pytest.fixture
def client():
    return create_app(RouteTestConfig).test_client()


class TestExecuteEndpoint:
    """POST /api/v1/workflows/<id>/execute"""

    def test_success(self, client, monkeypatch):
        seen = []

        async def fake_run(workflow_id, workflow_request, config):
            seen.append((workflow_id, workflow_request))
            return WorkflowRunResult(success=True, extraction_log_id='ex-1',
                                     workflow_execution_log_id='run-1', final_context={'a': 1})

        monkeypatch.setattr(workflows, 'run_workflow', fake_run)

        response = client.post('/api/v1/workflows/wf-1/execute', json={
            'extractedData': '{"a": 1}',
            'triggerSource': 'email_monitoring',
        })

        assert response.status_code == 200
        assert response.get_json() == {
            'success': True,
            'extractionLogId': 'ex-1',
            'workflowExecutionLogId': 'run-1',
            'finalContext': {'a': 1},
        }
        workflow_id, workflow_request = seen[0]
        assert workflow_id == 'wf-1'
        assert workflow_request.trigger_source == 'email_monitoring'

    def test_failed_run_returns_500(self, client, monkeypatch):
        async def fake_run(workflow_id, workflow_request, config):
            return WorkflowRunResult(success=False, extraction_log_id='ex-1', error='No steps found in workflow')

        monkeypatch.setattr(workflows, 'run_workflow', fake_run)

        response = client.post('/api/v1/workflows/wf-1/execute', json={})

        assert response.status_code == 500
        body = response.get_json()
        assert body['success'] is False
        assert body['error'] == 'No steps found in workflow'
        assert 'finalContext' not in body

    def test_invalid_body_returns_400(self, client):
        response = client.post('/api/v1/workflows/wf-1/execute', data='not json',
                               content_type='application/json')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid request format'

    def test_storage_path_rejected(self, client):
        response = client.post('/api/v1/workflows/wf-1/execute', json={'extractedDataStoragePath': 'x.json'})

        assert response.status_code == 400
        assert 'not supported' in response.get_json()['details']


class TestHealth:
    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'
