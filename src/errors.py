"""
Exceptions raised by the inbox rules engine
"""
from typing import Any, Dict, Optional, Tuple


class InboxRulesError(Exception):
    """Base exception for all inbox rules engine errors"""

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class NotFoundError(InboxRulesError):
    """A record does not exist or belongs to another user"""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource} {resource_id} not found",
            code='not_found',
            details={'resource': resource, 'id': resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ThreadNotFoundError(NotFoundError):
    def __init__(self, thread_id: str):
        super().__init__('Thread', thread_id)


class RuleNotFoundError(NotFoundError):
    def __init__(self, rule_id: str):
        super().__init__('Rule', rule_id)


class ApplicationNotFoundError(NotFoundError):
    def __init__(self, application_id: str):
        super().__init__('Rule application', application_id)


class StoreError(InboxRulesError):
    """The relational store failed a read or write"""

    def __init__(self, operation: str, error: Exception):
        super().__init__(
            f"Store failure during {operation}: {error}",
            code='store_error',
            details={'operation': operation},
        )
        self.operation = operation


class MailboxError(InboxRulesError):
    """The remote mailbox service rejected a request"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message, code='mailbox_error', details={'status': status})
        self.status = status
        # An expired token means the user has to re-authenticate
        self.requires_sync = status == 401


class InvalidConfidenceError(InboxRulesError):
    def __init__(self, score: float):
        super().__init__(
            f"Confidence score must be between 0 and 1, got {score}",
            code='invalid_confidence',
            details={'score': score},
        )


class InvalidFeedbackError(InboxRulesError):
    def __init__(self, feedback: str, allowed: Tuple[str, ...]):
        super().__init__(
            f"Feedback must be one of {', '.join(allowed)}, got {feedback!r}",
            code='invalid_feedback',
            details={'feedback': feedback, 'allowed': list(allowed)},
        )
