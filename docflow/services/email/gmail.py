"""
Gmail sender - refresh-token OAuth, then messages.send with a raw MIME message.
"""
import base64
import binascii
import logging
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict

from docflow.flow_engine.exceptions import ConfigurationError, ValidationError
from docflow.models.notification import EmailMessage
from docflow.services.email.base import EmailSender

logger = logging.getLogger(__name__)

TOKEN_URL = 'https://oauth2.googleapis.com/token'
SEND_URL = 'https://gmail.googleapis.com/gmail/v1/users/me/messages/send'


def encode_raw_message(mime_message) -> str:
    """base64url without padding, as the Gmail API expects"""
    return base64.urlsafe_b64encode(mime_message.as_bytes()).decode('ascii').rstrip('=')


class GmailSender(EmailSender):
    provider_name = 'gmail'

    async def get_access_token(self) -> str:
        config = self.config
        if not (config.gmail_client_id and config.gmail_client_secret and config.gmail_refresh_token):
            raise ConfigurationError("Gmail credentials are incomplete")

        response = await self.http_client.post(
            TOKEN_URL,
            data={
                'client_id': config.gmail_client_id,
                'client_secret': config.gmail_client_secret,
                'refresh_token': config.gmail_refresh_token,
                'grant_type': 'refresh_token',
            },
        )
        return self._token_from_response(response, 'Gmail')

    def build_mime(self, message: EmailMessage, sender: str):
        """
        text/html alone, or multipart/mixed when a PDF is attached.

        Bcc stays in the headers; Gmail delivers to it and strips it.
        """
        html_part = MIMEText(message.body, 'html', 'utf-8')

        if message.attachment:
            try:
                pdf_bytes = base64.b64decode(message.attachment.content)
            except (binascii.Error, ValueError) as e:
                raise ValidationError(f"Attachment is not valid base64: {e}")

            mime = MIMEMultipart('mixed')
            mime.attach(html_part)
            pdf_part = MIMEApplication(pdf_bytes, _subtype='pdf')
            pdf_part.add_header('Content-Disposition', 'attachment', filename=message.attachment.filename)
            mime.attach(pdf_part)
        else:
            mime = html_part

        mime['To'] = ', '.join(message.to_list)
        mime['From'] = sender
        if message.cc_list:
            mime['Cc'] = ', '.join(message.cc_list)
        if message.bcc_list:
            mime['Bcc'] = ', '.join(message.bcc_list)
        mime['Subject'] = message.subject
        return mime

    async def send(self, message: EmailMessage) -> Dict[str, Any]:
        sender = self.sender_address(message)
        access_token = await self.get_access_token()

        raw = encode_raw_message(self.build_mime(message, sender))

        logger.info(f"Sending Gmail email from {sender} to {message.to}")
        response = await self.http_client.post(
            SEND_URL,
            json={'raw': raw},
            headers={
                'Authorization': f'Bearer {access_token}',
                'Content-Type': 'application/json',
            },
        )
        return self._check_send_response(response)
