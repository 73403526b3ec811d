"""
Base interface for email provider senders.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict
import logging

import httpx

from docflow.flow_engine.exceptions import ConfigurationError, ExternalCallError
from docflow.models.notification import EmailMessage, EmailProviderConfig

logger = logging.getLogger(__name__)


class EmailSender(ABC):
    """
    One email protocol behind a common send contract.

    Every send obtains a fresh access token; nothing is cached between calls.
    """

    provider_name = ''

    def __init__(self, config: EmailProviderConfig, http_client: httpx.AsyncClient):
        self.config = config
        self.http_client = http_client

    @abstractmethod
    async def get_access_token(self) -> str:
        """Exchange the stored credentials for an access token."""
        pass

    @abstractmethod
    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        """
        Deliver a message.

        Returns:
            {'success': True, 'provider': str, 'status_code': int}

        Raises:
            ExternalCallError: Token exchange or send returned non-2xx
        """
        pass

    def sender_address(self, message: EmailMessage) -> str:
        from_address = message.from_address or self.config.default_send_from_email
        if not from_address:
            raise ConfigurationError(f"No sender address configured for {self.provider_name}")
        return from_address

    def _token_from_response(self, response: httpx.Response, label: str) -> str:
        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalCallError(
                f"Failed to get {label} access token: {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )
        try:
            payload = response.json()
        except ValueError:
            raise ExternalCallError(
                f"Failed to get {label} access token: response is not JSON",
                status_code=response.status_code,
                response_text=response.text,
            )
        token = payload.get('access_token') if isinstance(payload, dict) else None
        if not token:
            raise ExternalCallError(f"Failed to get {label} access token: no access_token in response")
        return token

    def _check_send_response(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"{self.provider_name} send failed: {response.status_code} {response.text}")
            raise ExternalCallError(
                f"Email sending failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )
        return {
            'success': True,
            'provider': self.provider_name,
            'status_code': response.status_code,
        }
