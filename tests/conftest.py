"""
Pytest fixtures shared by the engine tests
"""

import base64
import io
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from pypdf import PdfWriter

from docflow.flow_engine.context import ExecutionContext
from docflow.flow_engine.steps.base import RunState, StepRuntime
from docflow.models.workflow import Step
from docflow.services.config_store import ConfigStore
from docflow.services.execution_logger import ExecutionLogger

FIXED_NOW = datetime(2024, 3, 5, 14, 7, 9)


class FakeConfigStore(ConfigStore):
    """
    In-memory store understanding the ``eq.`` and ``order`` filters used by
    ConfigStore's domain methods.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        super().__init__('http://store.test', 'service-key', http_client=None)
        self.tables: Dict[str, List[Dict[str, Any]]] = {k: list(v) for k, v in (tables or {}).items()}
        self.inserts: List[tuple] = []
        self.updates: List[tuple] = []
        self.fail_writes = False
        self._next_id = 0

    def _matches(self, row: Dict[str, Any], filters: Dict[str, str]) -> bool:
        for key, condition in filters.items():
            if key in ('select', 'order', 'limit'):
                continue
            expected = condition[3:] if condition.startswith('eq.') else condition
            if str(row.get(key)).lower() != expected.lower():
                return False
        return True

    async def select(self, table, filters=None, limit=None):
        filters = filters or {}
        rows = [dict(r) for r in self.tables.get(table, []) if self._matches(r, filters)]
        order = filters.get('order')
        if order:
            column = order.split('.')[0]
            rows.sort(key=lambda r: r.get(column))
        return rows[:limit] if limit is not None else rows

    async def insert(self, table, record):
        if self.fail_writes:
            raise httpx.ConnectError("store unavailable")
        self._next_id += 1
        row = dict(record, id=f"{table}-{self._next_id}")
        self.tables.setdefault(table, []).append(row)
        self.inserts.append((table, row))
        return row

    async def update(self, table, filters, values):
        if self.fail_writes:
            raise httpx.ConnectError("store unavailable")
        self.updates.append((table, dict(filters), dict(values)))
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                row.update(values)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


class HttpRecorder:
    """MockTransport handler routing by method + URL prefix"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: List[tuple] = []

    def add(self, method: str, url_prefix: str, status: int = 200, json: Any = None, text: Optional[str] = None):
        def respond():
            if json is not None:
                return httpx.Response(status, json=json)
            return httpx.Response(status, text=text or '')
        self.routes.append((method.upper(), url_prefix, respond))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, prefix, respond in self.routes:
            if request.method == method and str(request.url).startswith(prefix):
                return respond()
        return httpx.Response(404, text=f"no route for {request.method} {request.url}")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class FakeEmailService:
    """Captures messages instead of delivering them"""

    def __init__(self, error: Optional[Exception] = None):
        self.sent = []
        self.error = error

    async def send(self, message):
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return {'success': True, 'provider': 'fake', 'status_code': 202}


def make_step(step_type: str, config: Dict[str, Any], step_order: int = 1, **record) -> Step:
    return Step.from_record({
        'id': record.pop('id', f'step-{step_order}'),
        'workflow_id': 'wf-1',
        'step_name': record.pop('step_name', f'{step_type} {step_order}'),
        'step_order': step_order,
        'step_type': step_type,
        'config_json': config,
        **record,
    })


def make_pdf(page_count: int) -> str:
    """Base64 PDF whose page N is 100 + N points tall"""
    writer = PdfWriter()
    for number in range(1, page_count + 1):
        writer.add_blank_page(width=200, height=100 + number)
    output = io.BytesIO()
    writer.write(output)
    return base64.b64encode(output.getvalue()).decode('ascii')


@pytest.fixture
def store():
    return FakeConfigStore()


@pytest.fixture
def http():
    return HttpRecorder()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def make_runtime(store, http, email_service) -> Callable[..., StepRuntime]:
    """Build a StepRuntime wired to the fakes; keyword args go to RunState"""
    def _make(**state):
        exec_logger = ExecutionLogger(store, 'wf-1')
        exec_logger.workflow_execution_log_id = 'run-1'
        return StepRuntime(
            http_client=http.client(),
            store=store,
            email_service=email_service,
            exec_logger=exec_logger,
            state=RunState(workflow_id='wf-1', **state),
            clock=lambda: FIXED_NOW,
        )
    return _make


@pytest.fixture
def context():
    return ExecutionContext({
        'extractedData': {'invoiceNumber': 'INV-42', 'orders': [{'id': 7, 'total': 150}]},
        'invoiceNumber': 'INV-42',
        'orders': [{'id': 7, 'total': 150}],
        'pdfFilename': 'scan.pdf',
        'originalPdfFilename': 'original scan.pdf',
        'senderEmail': 'sender@example.com',
        'userId': 'user-1',
    })
