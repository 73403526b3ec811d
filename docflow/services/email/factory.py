"""
Factory selecting the email sender for the configured provider.
"""
import logging

import httpx

from docflow.flow_engine.exceptions import ConfigurationError
from docflow.models.notification import EmailProviderConfig
from docflow.services.email.base import EmailSender
from docflow.services.email.gmail import GmailSender
from docflow.services.email.office365 import Office365Sender

logger = logging.getLogger(__name__)


class EmailSenderFactory:
    """Factory for provider senders"""

    _senders = {
        'office365': Office365Sender,
        'gmail': GmailSender,
    }

    @classmethod
    def get_sender(cls, config: EmailProviderConfig, http_client: httpx.AsyncClient) -> EmailSender:
        """
        Create the sender for ``config.provider``.

        Raises:
            ConfigurationError: If the provider is not supported
        """
        provider = (config.provider or '').lower()

        if provider not in cls._senders:
            raise ConfigurationError(
                f"Email provider '{provider}' is not supported. "
                f"Available providers: {', '.join(cls._senders.keys())}"
            )

        return cls._senders[provider](config, http_client)
