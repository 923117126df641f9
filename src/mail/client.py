"""
Mailbox API client for filing threads into folders
"""
import logging
import os
from typing import Dict, List, Optional

from cachetools import TTLCache
from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from src.errors import MailboxError
from src.rules.schema import FilingResult, ThreadSnapshot

from .folders import determine_folder_name

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_CACHE_TTL = 300


def _status(error: HttpError) -> Optional[int]:
    return getattr(error.resp, 'status', None)


class MailboxClient:
    """Mailbox folders are labels; filing a message adds the folder label and keeps it in the inbox"""

    def __init__(self, service: Resource, folder_cache_ttl: Optional[int] = None):
        self.service = service
        self.user_id = 'me'
        if folder_cache_ttl is None:
            folder_cache_ttl = int(os.getenv('FOLDER_CACHE_TTL', DEFAULT_FOLDER_CACHE_TTL))
        self._folders: TTLCache = TTLCache(maxsize=1, ttl=folder_cache_ttl)

    def list_folders(self) -> List[Dict]:
        """All mailbox folders, served from the TTL cache when fresh"""
        cached = self._folders.get('all')
        if cached is not None:
            return cached

        try:
            response = self.service.users().labels().list(userId=self.user_id).execute()
        except HttpError as e:
            raise MailboxError(f"Error listing folders: {e}", status=_status(e)) from e

        folders = response.get('labels', [])
        self._folders['all'] = folders
        logger.debug(f"Cached {len(folders)} mailbox folders")
        return folders

    def invalidate_folders(self) -> None:
        self._folders.clear()

    def find_folder(self, name: str) -> Optional[Dict]:
        """Exact (case-insensitive) name match first, then a user folder containing or contained in the name"""
        wanted = name.lower()
        folders = self.list_folders()

        for folder in folders:
            if folder['name'].lower() == wanted:
                return folder

        for folder in folders:
            if folder.get('type') != 'user':
                continue
            existing = folder['name'].lower()
            if wanted in existing or existing in wanted:
                logger.debug(f"Found similar folder {folder['name']} for {name}")
                return folder
        return None

    def create_folder(self, name: str) -> str:
        """Create a folder and return its id"""
        body = {
            'name': name,
            'labelListVisibility': 'labelShow',
            'messageListVisibility': 'show'
        }
        try:
            result = self.service.users().labels().create(userId=self.user_id, body=body).execute()
        except HttpError as e:
            if _status(e) == 409:
                # Created concurrently, look it up again
                self.invalidate_folders()
                existing = self.find_folder(name)
                if existing:
                    return existing['id']
            raise MailboxError(f"Error creating folder {name}: {e}", status=_status(e)) from e

        self.invalidate_folders()
        logger.info(f"Created mailbox folder {name} ({result['id']})")
        return result['id']

    def ensure_folder(self, name: str) -> str:
        existing = self.find_folder(name)
        if existing:
            return existing['id']
        return self.create_folder(name)

    def file_message(self, msg_id: str, folder_id: str) -> bool:
        """Add the folder to a message; False when the message no longer exists"""
        try:
            self.service.users().messages().modify(
                userId=self.user_id,
                id=msg_id,
                body={'addLabelIds': [folder_id], 'removeLabelIds': []}
            ).execute()
            return True
        except HttpError as e:
            status = _status(e)
            if status == 404:
                logger.warning(f"Message {msg_id} not found, may have been deleted or moved")
                return False
            raise MailboxError(f"Error filing message {msg_id}: {e}", status=status) from e

    def file_thread(self, thread: ThreadSnapshot, folder_name: Optional[str] = None) -> FilingResult:
        """File every message of the thread that has a mailbox id"""
        try:
            if folder_name is None:
                folder_name = determine_folder_name(
                    thread, [folder['name'] for folder in self.list_folders()]
                )
            folder_id = self.ensure_folder(folder_name)

            messages = [m for m in thread.messages if m.message_id]
            filed = sum(1 for m in messages if self.file_message(m.message_id, folder_id))
        except MailboxError as e:
            logger.error(f"Error filing thread {thread.id}: {e.message}")
            return FilingResult(success=False, error=e.message, requires_sync=e.requires_sync)

        if filed == len(messages):
            message = f"Successfully filed {filed} emails to \"{folder_name}\" folder"
        else:
            message = (
                f"Filed {filed} of {len(messages)} emails to \"{folder_name}\" folder "
                f"(some messages may have been already moved or deleted)"
            )
        logger.info(message)

        return FilingResult(
            success=filed > 0,
            folder_id=folder_id,
            folder_name=folder_name,
            filed_count=filed,
            message=message,
            error=None if filed > 0 else 'No messages could be filed',
        )
