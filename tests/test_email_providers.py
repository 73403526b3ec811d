"""
Tests for the email provider senders and EmailService
"""

import base64
import email
import json
from urllib.parse import parse_qs

import pytest

from docflow.flow_engine.exceptions import ConfigurationError, ExternalCallError
from docflow.models.notification import EmailMessage, EmailProviderConfig, PdfAttachment
from docflow.services.email import EmailSenderFactory, EmailService, GmailSender, Office365Sender

OFFICE365_CONFIG = {
    'provider': 'office365',
    'tenant_id': 'tenant-1',
    'client_id': 'client',
    'client_secret': 'secret',
    'default_send_from_email': 'noreply@example.com',
}

GMAIL_CONFIG = {
    'provider': 'gmail',
    'gmail_client_id': 'gid',
    'gmail_client_secret': 'gsecret',
    'gmail_refresh_token': 'refresh',
    'default_send_from_email': 'me@gmail.com',
}

OFFICE365_TOKEN_URL = 'https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token'
GRAPH_SEND_URL = 'https://graph.microsoft.com/v1.0/users/noreply@example.com/sendMail'
GMAIL_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GMAIL_SEND_URL = 'https://gmail.googleapis.com/gmail/v1/users/me/messages/send'


def message(**overrides):
    fields = dict(
        to='a@example.com; b@example.com',
        subject='Invoice INV-1',
        body='<p>Hello</p>',
        cc='c@example.com',
        bcc='d@example.com',
        attachment=PdfAttachment('INV-1.pdf', base64.b64encode(b'%PDF-1.4 test').decode()),
    )
    fields.update(overrides)
    return EmailMessage(**fields)


class TestFactory:
    """Provider selection"""

    def test_known_providers(self, http):
        client = http.client()
        assert isinstance(EmailSenderFactory.get_sender(EmailProviderConfig.from_record(OFFICE365_CONFIG), client), Office365Sender)
        assert isinstance(EmailSenderFactory.get_sender(EmailProviderConfig.from_record(GMAIL_CONFIG), client), GmailSender)

    def test_unknown_provider(self, http):
        config = EmailProviderConfig.from_record({'provider': 'smtp'})
        with pytest.raises(ConfigurationError, match="'smtp' is not supported"):
            EmailSenderFactory.get_sender(config, http.client())


class TestOffice365Sender:
    """Graph sendMail"""

    @pytest.mark.asyncio
    async def test_send(self, http):
        http.add('POST', OFFICE365_TOKEN_URL, json={'access_token': 'graph-token'})
        http.add('POST', GRAPH_SEND_URL, status=202)
        sender = Office365Sender(EmailProviderConfig.from_record(OFFICE365_CONFIG), http.client())

        result = await sender.send(message())

        assert result == {'success': True, 'provider': 'office365', 'status_code': 202}
        token_request, send_request = http.requests
        assert parse_qs(token_request.content.decode())['grant_type'] == ['client_credentials']
        assert send_request.headers['Authorization'] == 'Bearer graph-token'

        payload = json.loads(send_request.content)
        graph_message = payload['message']
        assert [r['emailAddress']['address'] for r in graph_message['toRecipients']] == ['a@example.com', 'b@example.com']
        assert graph_message['ccRecipients'] == [{'emailAddress': {'address': 'c@example.com'}}]
        assert graph_message['bccRecipients'] == [{'emailAddress': {'address': 'd@example.com'}}]
        assert graph_message['body'] == {'contentType': 'HTML', 'content': '<p>Hello</p>'}
        assert graph_message['attachments'][0]['name'] == 'INV-1.pdf'
        assert graph_message['attachments'][0]['contentType'] == 'application/pdf'

    @pytest.mark.asyncio
    async def test_token_failure(self, http):
        http.add('POST', OFFICE365_TOKEN_URL, status=401, text='invalid_client')
        sender = Office365Sender(EmailProviderConfig.from_record(OFFICE365_CONFIG), http.client())

        with pytest.raises(ExternalCallError, match='Failed to get Office365 access token: invalid_client'):
            await sender.send(message())

    @pytest.mark.asyncio
    async def test_send_failure_carries_provider_text(self, http):
        http.add('POST', OFFICE365_TOKEN_URL, json={'access_token': 'graph-token'})
        http.add('POST', GRAPH_SEND_URL, status=401, text='ErrorAccessDenied')
        sender = Office365Sender(EmailProviderConfig.from_record(OFFICE365_CONFIG), http.client())

        with pytest.raises(ExternalCallError) as exc:
            await sender.send(message())

        assert exc.value.status_code == 401
        assert 'ErrorAccessDenied' in str(exc.value)

    @pytest.mark.asyncio
    async def test_redirect_is_not_a_successful_send(self, http):
        http.add('POST', OFFICE365_TOKEN_URL, json={'access_token': 'graph-token'})
        http.add('POST', GRAPH_SEND_URL, status=302, text='moved')
        sender = Office365Sender(EmailProviderConfig.from_record(OFFICE365_CONFIG), http.client())

        with pytest.raises(ExternalCallError) as exc:
            await sender.send(message())

        assert exc.value.status_code == 302

    @pytest.mark.asyncio
    async def test_token_response_not_json(self, http):
        http.add('POST', OFFICE365_TOKEN_URL, text='<html>login</html>')
        sender = Office365Sender(EmailProviderConfig.from_record(OFFICE365_CONFIG), http.client())

        with pytest.raises(ExternalCallError, match='response is not JSON'):
            await sender.send(message())

        assert len(http.requests) == 1

    @pytest.mark.asyncio
    async def test_incomplete_credentials(self, http):
        config = EmailProviderConfig.from_record({'provider': 'office365', 'default_send_from_email': 'x@example.com'})
        with pytest.raises(ConfigurationError):
            await Office365Sender(config, http.client()).send(message())


class TestGmailSender:
    """Gmail messages.send"""

    def test_mime_with_attachment(self, http):
        sender = GmailSender(EmailProviderConfig.from_record(GMAIL_CONFIG), http.client())

        mime = sender.build_mime(message(), 'me@gmail.com')

        assert mime.get_content_type() == 'multipart/mixed'
        assert mime['To'] == 'a@example.com, b@example.com'
        assert mime['Cc'] == 'c@example.com'
        assert mime['Bcc'] == 'd@example.com'
        html_part, pdf_part = mime.get_payload()
        assert html_part.get_content_type() == 'text/html'
        assert pdf_part.get_filename() == 'INV-1.pdf'
        assert pdf_part.get_payload(decode=True) == b'%PDF-1.4 test'

    def test_mime_without_attachment(self, http):
        sender = GmailSender(EmailProviderConfig.from_record(GMAIL_CONFIG), http.client())
        mime = sender.build_mime(message(attachment=None, cc=None, bcc=None), 'me@gmail.com')
        assert mime.get_content_type() == 'text/html'
        assert mime['Cc'] is None

    @pytest.mark.asyncio
    async def test_send_raw_message(self, http):
        http.add('POST', GMAIL_TOKEN_URL, json={'access_token': 'g-token'})
        http.add('POST', GMAIL_SEND_URL, json={'id': 'msg-1'})
        sender = GmailSender(EmailProviderConfig.from_record(GMAIL_CONFIG), http.client())

        result = await sender.send(message())

        assert result['provider'] == 'gmail'
        token_request, send_request = http.requests
        assert parse_qs(token_request.content.decode())['grant_type'] == ['refresh_token']

        raw = json.loads(send_request.content)['raw']
        assert '=' not in raw
        decoded = base64.urlsafe_b64decode(raw + '=' * (-len(raw) % 4))
        parsed = email.message_from_bytes(decoded)
        assert parsed['Subject'] == 'Invoice INV-1'
        assert parsed['From'] == 'me@gmail.com'

    @pytest.mark.asyncio
    async def test_send_failure(self, http):
        http.add('POST', GMAIL_TOKEN_URL, json={'access_token': 'g-token'})
        http.add('POST', GMAIL_SEND_URL, status=400, text='invalid raw')
        sender = GmailSender(EmailProviderConfig.from_record(GMAIL_CONFIG), http.client())

        with pytest.raises(ExternalCallError, match='Email sending failed with status 400: invalid raw'):
            await sender.send(message())

    @pytest.mark.asyncio
    async def test_token_redirect_fails(self, http):
        http.add('POST', GMAIL_TOKEN_URL, status=307, text='redirect')
        sender = GmailSender(EmailProviderConfig.from_record(GMAIL_CONFIG), http.client())

        with pytest.raises(ExternalCallError, match='Failed to get Gmail access token'):
            await sender.send(message())

        assert len(http.requests) == 1


class TestEmailService:
    """Provider configuration loading"""

    @pytest.mark.asyncio
    async def test_sends_with_stored_provider(self, store, http):
        store.tables['email_monitoring_config'] = [OFFICE365_CONFIG]
        http.add('POST', OFFICE365_TOKEN_URL, json={'access_token': 'graph-token'})
        http.add('POST', GRAPH_SEND_URL, status=202)

        result = await EmailService(store, http.client()).send(message(bcc=None))

        assert result['provider'] == 'office365'

    @pytest.mark.asyncio
    async def test_missing_configuration(self, store, http):
        with pytest.raises(ConfigurationError, match='Email configuration not found'):
            await EmailService(store, http.client()).send(message())

    @pytest.mark.asyncio
    async def test_credentials_read_for_every_send(self, store, http):
        store.tables['email_monitoring_config'] = [OFFICE365_CONFIG]
        http.add('POST', OFFICE365_TOKEN_URL, json={'access_token': 'graph-token'})
        http.add('POST', GRAPH_SEND_URL, status=202)
        service = EmailService(store, http.client())

        await service.send(message())
        store.tables['email_monitoring_config'] = [GMAIL_CONFIG]
        http.add('POST', GMAIL_TOKEN_URL, json={'access_token': 'g-token'})
        http.add('POST', GMAIL_SEND_URL, json={'id': 'm'})
        result = await service.send(message())

        assert result['provider'] == 'gmail'
