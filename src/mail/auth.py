"""
Mailbox API authentication
"""
import logging
import os
from typing import Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from src.errors import MailboxError

logger = logging.getLogger(__name__)

# Changing the scopes invalidates the stored token
SCOPES = [
    'https://www.googleapis.com/auth/gmail.modify',  # Read messages and change their folders
    'https://www.googleapis.com/auth/gmail.labels',  # Create folders
]

DEFAULT_TOKEN_FILE = '.secrets/token.json'


def get_client_config() -> dict:
    """OAuth client configuration from MAILBOX_* environment variables"""
    client_id = os.getenv('MAILBOX_CLIENT_ID')
    client_secret = os.getenv('MAILBOX_CLIENT_SECRET')
    if not client_id or not client_secret:
        raise MailboxError('MAILBOX_CLIENT_ID and MAILBOX_CLIENT_SECRET must be set to authenticate')

    return {
        'installed': {
            'client_id': client_id,
            'client_secret': client_secret,
            'project_id': os.getenv('MAILBOX_PROJECT_ID'),
            'auth_uri': os.getenv('MAILBOX_AUTH_URI', 'https://accounts.google.com/o/oauth2/auth'),
            'token_uri': os.getenv('MAILBOX_TOKEN_URI', 'https://oauth2.googleapis.com/token'),
            'auth_provider_x509_cert_url': os.getenv(
                'MAILBOX_AUTH_PROVIDER_CERT_URL', 'https://www.googleapis.com/oauth2/v1/certs'
            ),
            'redirect_uris': ['http://localhost'],
        }
    }


def _load_credentials(token_file: str) -> Optional[Credentials]:
    if not os.path.exists(token_file):
        return None
    return Credentials.from_authorized_user_file(token_file, SCOPES)


def _save_credentials(creds: Credentials, token_file: str) -> None:
    token_dir = os.path.dirname(token_file)
    if token_dir:
        os.makedirs(token_dir, exist_ok=True)
    with open(token_file, 'w') as token:
        token.write(creds.to_json())


def get_mailbox_service(token_file: Optional[str] = None) -> Resource:
    """Authorized mailbox API resource; runs the browser consent flow when no usable token is stored"""
    token_file = token_file or os.getenv('MAILBOX_TOKEN_FILE', DEFAULT_TOKEN_FILE)
    creds = _load_credentials(token_file)

    if creds is None or not creds.valid:
        refreshed = False
        if creds is not None and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
                refreshed = True
                logger.info("Refreshed expired mailbox credentials")
            except RefreshError as e:
                logger.warning(f"Stored mailbox token was rejected, re-authenticating: {e}")

        if not refreshed:
            flow = InstalledAppFlow.from_client_config(get_client_config(), SCOPES)
            creds = flow.run_local_server(port=0)

        _save_credentials(creds, token_file)

    return build('gmail', 'v1', credentials=creds, cache_discovery=False)


def get_user_email(service: Resource) -> Optional[str]:
    """Address of the authenticated mailbox owner, None when the profile cannot be read"""
    try:
        profile = service.users().getProfile(userId='me').execute()
    except HttpError as e:
        logger.error(f"Error reading mailbox profile: {e.resp.status} - {e.reason}")
        return None
    return profile.get('emailAddress')
