"""
Folder naming for filed threads
"""
import re
from typing import Iterable, Optional

from src.rules.parser import title_case
from src.rules.schema import ThreadSnapshot

DEFAULT_FOLDER = 'Processed Items'

SYSTEM_FOLDERS = frozenset([
    'inbox', 'sent', 'sent items', 'drafts', 'deleted items', 'trash', 'spam',
    'junk email', 'outbox', 'starred', 'important', 'unread', 'chat',
])

PUBLIC_DOMAINS = frozenset(['gmail', 'yahoo', 'hotmail', 'outlook', 'icloud'])

NOISE_WORDS = frozenset([
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'have', 'has', 'had',
    'do', 'does', 'did', 'will', 'would', 'could', 'should', 'can', 'may', 'might', 'must',
])

_REPLY_PREFIX = re.compile(r'^((re|fwd?|fw):\s*)+', re.IGNORECASE)
_PREFIX_TOPIC = re.compile(r'^(?:\[([^\]]+)\]|([^:]+):|([^-]+?)\s+-\s+)')
_PROJECT_CODE = re.compile(r'\b([A-Z]{2,10}-?\d{2,10}|\d{4}-[A-Z]{2,10})\b')
_CONNECTIVES = re.compile(r'\b(the|and|or|of|in|on|at|to|for|with|by)\b', re.IGNORECASE)
_ORG_LABEL = re.compile(r'@([^.]+)\.')


def _organization(address: Optional[str]) -> Optional[str]:
    match = _ORG_LABEL.search(address or '')
    if match and match.group(1).lower() not in PUBLIC_DOMAINS:
        return title_case(match.group(1))
    return None


def topic_from_subject(subject: str) -> Optional[str]:
    """Topic from a 'Topic: ...', '[Topic] ...' or 'Topic - ...' subject, a project code, or its first phrase"""
    cleaned = _REPLY_PREFIX.sub('', subject or '').strip()
    if not cleaned:
        return None

    match = _PREFIX_TOPIC.match(cleaned)
    if match:
        topic = next(group for group in match.groups() if group).strip()
        if 3 < len(topic) < 40 and not _CONNECTIVES.search(topic):
            return title_case(topic)

    match = _PROJECT_CODE.search(cleaned)
    if match:
        return f"Project: {match.group(1)}"

    first_phrase = re.split(r'[,.]', cleaned)[0][:40].strip()
    if len(first_phrase) > 8 and len(first_phrase.split()) > 1:
        return title_case(first_phrase)
    return None


def meaningful_topic(subject: str) -> Optional[str]:
    words = [
        word for word in _REPLY_PREFIX.sub('', subject or '').split()
        if len(word) > 2 and word.lower() not in NOISE_WORDS and not word.isdigit()
    ][:4]
    return ' '.join(words) if len(words) >= 2 else None


def determine_folder_name(thread: ThreadSnapshot, existing_folders: Iterable[str] = ()) -> str:
    """Pick a folder for the thread, preferring an existing user folder the subject mentions"""
    subject = (thread.subject or '').lower()
    for folder in existing_folders:
        name = folder.lower()
        if name in SYSTEM_FOLDERS or len(name) < 3:
            continue
        if name in subject:
            return folder

    sender = thread.first_message.from_email if thread.first_message else None
    participant_orgs = (_organization(p) for p in thread.participants)
    return (
        topic_from_subject(thread.subject or '')
        or _organization(sender)
        or next((org for org in participant_orgs if org), None)
        or meaningful_topic(thread.subject or '')
        or DEFAULT_FOLDER
    )
