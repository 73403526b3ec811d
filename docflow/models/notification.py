"""
Email and notification value objects.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class NotificationTemplate:
    id: Optional[str]
    template_type: str
    subject_template: str = ''
    body_template: str = ''
    recipient_email: Optional[str] = None
    cc_emails: Optional[str] = None
    bcc_emails: Optional[str] = None
    attach_pdf: bool = False
    is_global_default: bool = False
    template_name: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'NotificationTemplate':
        return cls(
            id=record.get('id'),
            template_type=record.get('template_type') or '',
            subject_template=record.get('subject_template') or '',
            body_template=record.get('body_template') or '',
            recipient_email=record.get('recipient_email') or None,
            cc_emails=record.get('cc_emails') or None,
            bcc_emails=record.get('bcc_emails') or None,
            attach_pdf=bool(record.get('attach_pdf')),
            is_global_default=bool(record.get('is_global_default')),
            template_name=record.get('template_name'),
        )


@dataclass
class PdfAttachment:
    filename: str
    content: str  # base64

    content_type = 'application/pdf'


def split_addresses(value: Optional[str]) -> List[str]:
    """Split a comma or semicolon separated address list."""
    if not value:
        return []
    parts = value.replace(';', ',').split(',')
    return [p.strip() for p in parts if p.strip()]


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str
    from_address: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    attachment: Optional[PdfAttachment] = None

    @property
    def to_list(self) -> List[str]:
        return split_addresses(self.to)

    @property
    def cc_list(self) -> List[str]:
        return split_addresses(self.cc)

    @property
    def bcc_list(self) -> List[str]:
        return split_addresses(self.bcc)


@dataclass
class EmailProviderConfig:
    """
    Row of ``email_monitoring_config``.

    Office365 uses tenant_id/client_id/client_secret; Gmail uses the gmail_*
    credentials with a long-lived refresh token.
    """
    provider: str = 'office365'
    default_send_from_email: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    gmail_client_id: Optional[str] = None
    gmail_client_secret: Optional[str] = None
    gmail_refresh_token: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'EmailProviderConfig':
        return cls(
            provider=(record.get('provider') or 'office365').lower(),
            default_send_from_email=record.get('default_send_from_email'),
            tenant_id=record.get('tenant_id'),
            client_id=record.get('client_id'),
            client_secret=record.get('client_secret'),
            gmail_client_id=record.get('gmail_client_id'),
            gmail_client_secret=record.get('gmail_client_secret'),
            gmail_refresh_token=record.get('gmail_refresh_token'),
        )
