"""
Criteria matcher: evaluates a rule's matching criteria against a thread
"""
from functools import lru_cache
import logging
import re
from typing import Iterable, List, Optional, Pattern

from pydantic import ValidationError

from .schema import MatchingCriteria, ThreadSnapshot

logger = logging.getLogger(__name__)

PATTERN_FIELDS = ('subject_pattern', 'body_pattern')

# Fields that need the thread's first message to be evaluated
MESSAGE_FIELDS = (
    'sender_domain',
    'sender_email',
    'sender_contains',
    'subject_contains',
    'subject_pattern',
    'subject_exact',
    'body_contains',
    'body_pattern',
)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Optional[Pattern]:
    """Compile a case-insensitive criteria pattern, None if it is malformed"""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"Rejecting malformed pattern {pattern!r}: {e}")
        return None


def find_invalid_patterns(criteria: MatchingCriteria) -> List[str]:
    """Names of the regex fields in the criteria that do not compile"""
    invalid = []
    for field in PATTERN_FIELDS:
        pattern = getattr(criteria, field)
        if pattern is not None and compile_pattern(pattern) is None:
            invalid.append(field)
    return invalid


def criteria_of(rule) -> Optional[MatchingCriteria]:
    """Typed criteria of a stored rule or rule view, None when the stored JSON is malformed"""
    criteria = rule.matching_criteria
    if isinstance(criteria, MatchingCriteria):
        return criteria
    try:
        return MatchingCriteria.model_validate(criteria or {})
    except ValidationError as e:
        logger.warning(f"Rule {rule.name} ({rule.id}) has malformed criteria and never matches: {e}")
        return None


def _any_contains(needles: Iterable[str], haystack: str) -> bool:
    return any(needle.lower() in haystack for needle in needles)


def _any_equals(candidates: Iterable[str], value: str) -> bool:
    return any(candidate.lower() == value for candidate in candidates)


class CriteriaMatcher:
    """Pure predicate evaluator, no I/O"""

    def matches(self, rule, thread: ThreadSnapshot) -> bool:
        """True when every present criteria field holds for the thread"""
        criteria = criteria_of(rule)
        if criteria is None:
            return False
        rejected = set(getattr(rule, 'invalid_patterns', None) or [])
        present = criteria.model_dump(exclude_none=True)

        if not present:
            logger.debug(f"Rule {rule.name} has no criteria, matches every thread")
            return True

        first = thread.first_message
        if first is None and any(field in present for field in MESSAGE_FIELDS):
            logger.debug(f"Thread {thread.id} has no messages, rule {rule.name} needs message fields")
            return False

        result = (
            self._sender_matches(criteria, thread)
            and self._subject_matches(criteria, thread, rejected)
            and self._body_matches(criteria, thread, rejected)
            and self._thread_matches(criteria, thread)
        )
        logger.debug(f"Rule {rule.name} against thread {thread.id} -> {result}")
        return result

    def _sender_matches(self, criteria: MatchingCriteria, thread: ThreadSnapshot) -> bool:
        sender = thread.sender_email
        if criteria.sender_domain is not None and not _any_equals(criteria.sender_domain, thread.sender_domain):
            return False
        if criteria.sender_email is not None and not _any_equals(criteria.sender_email, sender):
            return False
        if criteria.sender_contains is not None and not _any_contains(criteria.sender_contains, sender):
            return False
        return True

    def _subject_matches(self, criteria: MatchingCriteria, thread: ThreadSnapshot, rejected: set) -> bool:
        subject = thread.subject
        if subject is None and thread.first_message is not None:
            subject = thread.first_message.subject
        subject = (subject or '').lower()

        if criteria.subject_contains is not None and not _any_contains(criteria.subject_contains, subject):
            return False
        if criteria.subject_pattern is not None and not self._pattern_matches(
            'subject_pattern', criteria.subject_pattern, subject, rejected
        ):
            return False
        if criteria.subject_exact is not None and not _any_equals(criteria.subject_exact, subject):
            return False
        return True

    def _body_matches(self, criteria: MatchingCriteria, thread: ThreadSnapshot, rejected: set) -> bool:
        first = thread.first_message
        body = ((first.body if first else None) or '').lower()

        if criteria.body_contains is not None and not _any_contains(criteria.body_contains, body):
            return False
        if criteria.body_pattern is not None and not self._pattern_matches(
            'body_pattern', criteria.body_pattern, body, rejected
        ):
            return False
        return True

    def _thread_matches(self, criteria: MatchingCriteria, thread: ThreadSnapshot) -> bool:
        participants = {p.lower() for p in thread.participants}

        if criteria.category is not None and thread.category not in criteria.category:
            return False
        if criteria.priority is not None and thread.priority not in criteria.priority:
            return False
        if criteria.participants_include is not None and not any(
            p.lower() in participants for p in criteria.participants_include
        ):
            return False
        if criteria.participants_exclude is not None and any(
            p.lower() in participants for p in criteria.participants_exclude
        ):
            return False
        return True

    def _pattern_matches(self, field: str, pattern: str, value: str, rejected: set) -> bool:
        # A rejected or malformed pattern never matches
        if field in rejected:
            return False
        compiled = compile_pattern(pattern)
        if compiled is None:
            return False
        return compiled.search(value) is not None
