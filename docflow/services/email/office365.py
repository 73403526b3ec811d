"""
Office365 sender - client-credentials OAuth, then Graph sendMail.
"""
from typing import Any, Dict, List
import logging

from docflow.flow_engine.exceptions import ConfigurationError
from docflow.models.notification import EmailMessage
from docflow.services.email.base import EmailSender

logger = logging.getLogger(__name__)

TOKEN_URL = 'https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token'
SEND_MAIL_URL = 'https://graph.microsoft.com/v1.0/users/{sender}/sendMail'
GRAPH_SCOPE = 'https://graph.microsoft.com/.default'


def _recipients(addresses: List[str]) -> List[Dict[str, Any]]:
    return [{'emailAddress': {'address': address}} for address in addresses]


class Office365Sender(EmailSender):
    provider_name = 'office365'

    async def get_access_token(self) -> str:
        config = self.config
        if not (config.tenant_id and config.client_id and config.client_secret):
            raise ConfigurationError("Office365 credentials are incomplete")

        response = await self.http_client.post(
            TOKEN_URL.format(tenant_id=config.tenant_id),
            data={
                'client_id': config.client_id,
                'client_secret': config.client_secret,
                'scope': GRAPH_SCOPE,
                'grant_type': 'client_credentials',
            },
        )
        return self._token_from_response(response, 'Office365')

    def build_payload(self, message: EmailMessage, sender: str) -> Dict[str, Any]:
        graph_message: Dict[str, Any] = {
            'subject': message.subject,
            'body': {'contentType': 'HTML', 'content': message.body},
            'toRecipients': _recipients(message.to_list),
            'from': {'emailAddress': {'address': sender}},
        }
        if message.cc_list:
            graph_message['ccRecipients'] = _recipients(message.cc_list)
        if message.bcc_list:
            graph_message['bccRecipients'] = _recipients(message.bcc_list)
        if message.attachment:
            graph_message['attachments'] = [{
                '@odata.type': '#microsoft.graph.fileAttachment',
                'name': message.attachment.filename,
                'contentType': message.attachment.content_type,
                'contentBytes': message.attachment.content,
            }]
        return {'message': graph_message, 'saveToSentItems': 'true'}

    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        sender = self.sender_address(message)
        access_token = await self.get_access_token()

        logger.info(f"Sending Office365 email from {sender} to {message.to}")
        response = await self.http_client.post(
            SEND_MAIL_URL.format(sender=sender),
            json=self.build_payload(message, sender),
            headers={
                'Authorization': f'Bearer {access_token}',
                'Content-Type': 'application/json',
            },
        )
        return self._check_send_response(response)
