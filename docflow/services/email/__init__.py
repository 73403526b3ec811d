"""
Email provider abstraction: Office365 (Microsoft Graph) and Gmail.
"""
from .base import EmailSender
from .office365 import Office365Sender
from .gmail import GmailSender
from .factory import EmailSenderFactory
from .service import EmailService

__all__ = [
    'EmailSender',
    'Office365Sender',
    'GmailSender',
    'EmailSenderFactory',
    'EmailService',
]
