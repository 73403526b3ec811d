"""
Configuration/log store client.

The store is a PostgREST-style REST API exposing tables under
``/rest/v1/<table>``. Filters use PostgREST operators, e.g.
``{'id': 'eq.42', 'order': 'step_order.asc'}``.

Calls raise ExternalCallError on a non-2xx or non-JSON response. Callers
that treat a lookup as optional catch it themselves.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from docflow.flow_engine.exceptions import ExternalCallError

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    Async client for the configuration/log store.

    Usage:
        async with httpx.AsyncClient() as client:
            store = ConfigStore(url, service_key, client)
            steps = await store.get_workflow_steps(workflow_id)
    """

    def __init__(self, base_url: str, service_key: str, http_client: httpx.AsyncClient):
        self.base_url = (base_url or '').rstrip('/')
        self.service_key = service_key
        self.http_client = http_client

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            'Authorization': f'Bearer {self.service_key}',
            'Content-Type': 'application/json',
            'apikey': self.service_key,
        }
        if prefer:
            headers['Prefer'] = prefer
        return headers

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _json(self, response: httpx.Response, table: str) -> Any:
        try:
            return response.json()
        except ValueError:
            raise ExternalCallError(
                f"Invalid JSON from {table}: {response.text[:200]}",
                status_code=response.status_code,
                response_text=response.text,
            )

    # === Generic table access ===

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = dict(filters or {})
        params.setdefault('select', '*')
        if limit is not None:
            params['limit'] = str(limit)

        response = await self.http_client.get(self._url(table), params=params, headers=self._headers())
        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalCallError(
                f"Failed to read {table}: {response.status_code} {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )
        rows = self._json(response, table)
        return rows if isinstance(rows, list) else [rows]

    async def select_one(self, table: str, filters: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = await self.http_client.post(
            self._url(table),
            json=record,
            headers=self._headers(prefer='return=representation'),
        )
        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalCallError(
                f"Failed to insert into {table}: {response.status_code} {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )
        if not response.text.strip():
            return None
        rows = self._json(response, table)
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows

    async def update(self, table: str, filters: Dict[str, str], values: Dict[str, Any]) -> None:
        response = await self.http_client.patch(
            self._url(table),
            params=filters,
            json=values,
            headers=self._headers(),
        )
        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalCallError(
                f"Failed to update {table}: {response.status_code} {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )

    # === Configuration reads ===

    async def get_workflow_steps(self, workflow_id: str) -> List[Dict[str, Any]]:
        return await self.select('workflow_steps', {
            'workflow_id': f'eq.{workflow_id}',
            'order': 'step_order.asc',
        })

    async def get_extraction_type(self, extraction_type_id: str) -> Optional[Dict[str, Any]]:
        return await self.select_one('extraction_types', {'id': f'eq.{extraction_type_id}'})

    async def get_transformation_type(self, transformation_type_id: str) -> Optional[Dict[str, Any]]:
        return await self.select_one('transformation_types', {'id': f'eq.{transformation_type_id}'})

    async def get_main_api_settings(self) -> Optional[Dict[str, Any]]:
        return await self.select_one('api_settings')

    async def get_secondary_api_config(self, config_id: str) -> Optional[Dict[str, Any]]:
        return await self.select_one('secondary_api_configs', {'id': f'eq.{config_id}'})

    async def get_email_config(self) -> Optional[Dict[str, Any]]:
        return await self.select_one('email_monitoring_config')

    async def get_notification_template(self, template_id: str) -> Optional[Dict[str, Any]]:
        return await self.select_one('notification_templates', {'id': f'eq.{template_id}'})

    async def get_default_notification_template(self, template_type: str) -> Optional[Dict[str, Any]]:
        return await self.select_one('notification_templates', {
            'template_type': f'eq.{template_type}',
            'is_global_default': 'eq.true',
        })

    async def get_user_email(self, user_id: str) -> Optional[str]:
        rows = await self.select('users', {'id': f'eq.{user_id}', 'select': 'email'})
        if rows and rows[0].get('email'):
            return rows[0]['email']
        return None

    # === Log writes ===

    async def create_extraction_log(self, record: Dict[str, Any]) -> Optional[str]:
        row = await self.insert('extraction_logs', record)
        return row.get('id') if row else None

    async def create_workflow_execution_log(self, record: Dict[str, Any]) -> Optional[str]:
        row = await self.insert('workflow_execution_logs', record)
        return row.get('id') if row else None

    async def update_workflow_execution_log(self, log_id: str, values: Dict[str, Any]) -> None:
        await self.update('workflow_execution_logs', {'id': f'eq.{log_id}'}, values)

    async def create_step_log(self, record: Dict[str, Any]) -> Optional[str]:
        row = await self.insert('workflow_step_logs', record)
        return row.get('id') if row else None

    async def create_notification_log(self, record: Dict[str, Any]) -> Optional[str]:
        row = await self.insert('notification_logs', record)
        return row.get('id') if row else None
