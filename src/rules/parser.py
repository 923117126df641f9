"""
Instruction parser: turns a free-text user instruction into a structured rule
"""
import logging
import re
from typing import List, Optional

from .schema import SPAM, MatchingCriteria, ParsedRule, RuleActions, ThreadSnapshot

logger = logging.getLogger(__name__)

DEFAULT_RULE_NAME = 'Custom Rule'
DEFAULT_FOLDER = 'Processed Items'

CONFIDENCE_WITH_EXAMPLE = 0.9
CONFIDENCE_INSTRUCTION_ONLY = 0.8

MAX_SUBJECT_KEYWORDS = 3

STOPWORDS = frozenset([
    'the', 'and', 'or', 'but', 'for', 'with', 'from', 'this', 'that', 'your',
    'have', 'will', 'been', 'about', 'into', 'their', 'there', 'were', 'what',
    'when', 'which', 'would', 'could', 'should', 'please',
])

PUBLIC_PROVIDERS = frozenset(['gmail.com', 'yahoo.com', 'hotmail.com', 'outlook.com'])

# Subject keyword -> folder, used when the instruction names no folder
SUBJECT_FOLDERS = (
    ('admin', 'Admin Notifications'),
    ('resource', 'Resource Management'),
    ('internal', 'Internal Communications'),
)

_REPLY_PREFIX = re.compile(r'^(re:|fwd?:|fw:)\s*', re.IGNORECASE)
_MOVE_VERB = re.compile(r'\b(move|file|put)\b', re.IGNORECASE)
_ARTICLE = r"(?:(?:the|my|a|an|our|your)\s+)?"
# Greedy prefixes so the last preposition before the folder name wins
_QUOTED_FOLDER = re.compile(
    r"""\b(?:move|file|put)\b.*\b(?:to|into|in)\s+""" + _ARTICLE + r"""["']([^"'\n]+)["']""", re.IGNORECASE
)
_NAMED_FOLDER = re.compile(
    r"""\b(?:move|file|put)\b.*\b(?:to|into|in)\s+([^\n.,;!?"']+?)\s+folder\b""", re.IGNORECASE
)
_MOVE_TARGET = re.compile(r"""\bmove\b.*\b(?:to|into)\s+([^\n.,;!?"']+)""", re.IGNORECASE)
_ABOUT_TOPIC = re.compile(r'\babout\s+([\w\s]+?)(?:\s+topic\b|\s*[.!?]?\s*$)', re.IGNORECASE)
_QUOTED_TOPIC = re.compile(r'"([^"]+)"\s+topic', re.IGNORECASE)


def title_case(text: str) -> str:
    return re.sub(r'\w\S*', lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def _extend(existing: Optional[List[str]], values: List[str]) -> List[str]:
    """Append values to a criteria list, keeping order and dropping duplicates"""
    result = list(existing or [])
    for value in values:
        if value not in result:
            result.append(value)
    return result


def _clean_folder_name(raw: str) -> Optional[str]:
    name = re.split(r'\s+and\s+', raw.strip(), maxsplit=1, flags=re.IGNORECASE)[0]
    name = re.sub(r'\s*\bfolder$', '', name.strip(), flags=re.IGNORECASE)
    # A bare article ("to a folder") names nothing
    name = re.sub(r'^(?:the|my|a|an|our|your)\b\s*', '', name.strip(), flags=re.IGNORECASE)
    return name.strip() or None


class InstructionParser:
    """Heuristic parser. Deterministic and never raises on arbitrary text."""

    def parse(self, instruction: str, example_thread: Optional[ThreadSnapshot] = None) -> ParsedRule:
        instruction = instruction or ''
        lower = instruction.lower()
        criteria = MatchingCriteria()
        actions = RuleActions()
        name = DEFAULT_RULE_NAME

        if example_thread is not None:
            name = self._apply_example(example_thread, criteria)
            confidence = CONFIDENCE_WITH_EXAMPLE
        else:
            confidence = CONFIDENCE_INSTRUCTION_ONLY

        # Criteria triggers
        if 'admin' in lower or 'administrator' in lower:
            criteria.sender_contains = _extend(criteria.sender_contains, ['admin', 'noreply', 'no-reply'])
            if name == DEFAULT_RULE_NAME:
                name = 'Admin Notifications'

        if 'automated' in lower or 'notification' in lower:
            criteria.subject_contains = _extend(
                criteria.subject_contains, ['notification', 'automated', 'alert', 'reminder']
            )
            if name == DEFAULT_RULE_NAME:
                name = 'Automated Notifications'

        if 'internal' in lower and 'conversation' in lower:
            participants = example_thread.participants if example_thread is not None else []
            if participants:
                criteria.participants_include = _extend(criteria.participants_include, participants)
            if name == DEFAULT_RULE_NAME:
                name = 'Internal Conversations'

        if 'resource' in lower and 'admin' in lower:
            criteria.subject_contains = _extend(
                criteria.subject_contains, ['resource', 'admin', 'access', 'permission']
            )
            if name == DEFAULT_RULE_NAME:
                name = 'Resource Admin Messages'

        # Action triggers
        if 'no action' in lower:
            actions.auto_process = True
            actions.priority = 'low'
            actions.response_style = 'none'

        explicit_folder = self.extract_explicit_folder(instruction)
        if _MOVE_VERB.search(instruction) and 'folder' in lower:
            actions.move_to_folder = explicit_folder or self.folder_from_example(example_thread) or DEFAULT_FOLDER
            actions.auto_process = True
        elif explicit_folder:
            actions.move_to_folder = explicit_folder

        if 'mark as processed' in lower or 'mark as done' in lower:
            actions.auto_process = True

        if 'short' in lower and 'succinct' in lower:
            actions.response_style = 'brief'

        if "don't need to waste time" in lower or 'dont need to waste time' in lower:
            actions.auto_process = True
            actions.priority = 'low'
            actions.notify_user = False

        topic_match = _QUOTED_TOPIC.search(instruction) or _ABOUT_TOPIC.search(instruction)
        if topic_match:
            topic = re.sub(r'^(the|a|an)\s+', '', topic_match.group(1).strip(), flags=re.IGNORECASE)
            if topic:
                criteria.subject_contains = _extend(criteria.subject_contains, [topic.lower()])
                name = f"{topic} Topic"

        if criteria.is_empty() and actions.is_empty():
            logger.debug(f"No recognised patterns in instruction: {instruction!r}")

        return ParsedRule(name=name, criteria=criteria, actions=actions, confidence=confidence)

    def _apply_example(self, thread: ThreadSnapshot, criteria: MatchingCriteria) -> str:
        """Seed criteria from an example thread, return the derived rule name"""
        name = DEFAULT_RULE_NAME
        subject = (thread.subject or '').lower()
        domain = thread.sender_domain

        keywords = self.subject_keywords(subject)
        if keywords:
            criteria.subject_contains = keywords

        if domain and domain not in PUBLIC_PROVIDERS:
            criteria.sender_domain = [domain]

        if thread.category and thread.category != SPAM:
            criteria.category = [thread.category]

        if subject:
            cleaned = _REPLY_PREFIX.sub('', subject).strip()
            first_part = re.split(r'[:\-,]', cleaned)[0].strip()
            if 5 < len(first_part) < 40:
                name = title_case(first_part)

        if name == DEFAULT_RULE_NAME and domain:
            name = f"{title_case(domain.split('.')[0])} Emails"

        return name

    def subject_keywords(self, subject: str) -> List[str]:
        words = re.sub(r'[^\w\s-]', ' ', _REPLY_PREFIX.sub('', subject.lower())).split()
        keywords = []
        for word in words:
            if len(word) > 3 and word not in STOPWORDS and word not in keywords:
                keywords.append(word)
        return keywords[:MAX_SUBJECT_KEYWORDS]

    def extract_explicit_folder(self, instruction: str) -> Optional[str]:
        """Folder named in the instruction: quoted, "... X folder", or the target of "move ... to"."""
        match = _QUOTED_FOLDER.search(instruction)
        if match and match.group(1).strip():
            return match.group(1).strip()
        for pattern in (_NAMED_FOLDER, _MOVE_TARGET):
            match = pattern.search(instruction)
            folder = _clean_folder_name(match.group(1)) if match else None
            if folder:
                return folder
        return None

    def folder_from_example(self, thread: Optional[ThreadSnapshot]) -> Optional[str]:
        if thread is None or not thread.subject:
            return None
        subject = thread.subject.lower()
        for keyword, folder in SUBJECT_FOLDERS:
            if keyword in subject:
                return folder
        return None
