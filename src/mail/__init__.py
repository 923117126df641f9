"""
Mailbox API integration package
"""
from .auth import get_mailbox_service, get_user_email
from .client import MailboxClient
from .folders import determine_folder_name

__all__ = ['get_mailbox_service', 'get_user_email', 'MailboxClient', 'determine_folder_name']
