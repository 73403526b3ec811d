"""
Email service - loads provider credentials and dispatches to a sender.
"""
import logging
from typing import Any, Dict

import httpx

from docflow.flow_engine.exceptions import ConfigurationError
from docflow.models.notification import EmailMessage, EmailProviderConfig
from docflow.services.config_store import ConfigStore
from docflow.services.email.factory import EmailSenderFactory

logger = logging.getLogger(__name__)


class EmailService:
    """
    Sends mail through whichever provider ``email_monitoring_config`` names.

    Credentials are read from the store on every send so a rotated secret is
    picked up without restarting.
    """

    def __init__(self, store: ConfigStore, http_client: httpx.AsyncClient):
        self.store = store
        self.http_client = http_client

    async def load_config(self) -> EmailProviderConfig:
        record = await self.store.get_email_config()
        if not record:
            raise ConfigurationError("Email configuration not found")
        return EmailProviderConfig.from_record(record)

    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        config = await self.load_config()
        sender = EmailSenderFactory.get_sender(config, self.http_client)
        logger.info(
            f"Sending email via {sender.provider_name}: to={message.to} "
            f"subject={message.subject!r} attachment={message.attachment.filename if message.attachment else None}"
        )
        return await sender.send(message)
