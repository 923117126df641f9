"""
Completion evaluator: category-specific default logic used when no rule auto-processes a thread
"""
from datetime import datetime, timedelta
import logging
from typing import Optional

from src.timeutils import utcnow

from .schema import (
    ACTION_REQUIRED,
    FINANCIAL,
    FYI_ONLY,
    MEETING_REQUEST,
    SPAM,
    VIP_CRITICAL,
    ProcessingResult,
    ThreadSnapshot,
)

logger = logging.getLogger(__name__)

FYI_ARCHIVE_AGE = timedelta(days=7)


class CompletionEvaluator:
    """Decides whether a thread is done from its category, drafts and tasks"""

    def evaluate(self, thread: ThreadSnapshot, now: Optional[datetime] = None) -> ProcessingResult:
        now = now or utcnow()
        category = thread.category

        if category == SPAM:
            return ProcessingResult(is_processed=True, reason='spam_filtered')
        if category in (VIP_CRITICAL, ACTION_REQUIRED, FINANCIAL):
            return self._action_required(thread)
        if category == MEETING_REQUEST:
            return self._meeting(thread)
        if category == FYI_ONLY:
            return self._fyi(thread, now)
        return self._generic(thread, now)

    @staticmethod
    def _has_completed_draft(thread: ThreadSnapshot) -> bool:
        return any(
            draft.status == 'sent' or (draft.status == 'in_mailbox' and draft.mailbox_draft_id)
            for draft in thread.drafts
        )

    def _action_required(self, thread: ThreadSnapshot) -> ProcessingResult:
        if self._has_completed_draft(thread):
            return ProcessingResult(
                is_processed=True,
                reason='draft_completed',
                actions=['Draft reply created/sent'],
            )

        tasks = thread.tasks
        if tasks and all(task.status == 'completed' for task in tasks):
            return ProcessingResult(
                is_processed=True,
                reason='tasks_completed',
                actions=[f"All {len(tasks)} tasks completed"],
            )

        return ProcessingResult(is_processed=False)

    def _meeting(self, thread: ThreadSnapshot) -> ProcessingResult:
        if self._has_completed_draft(thread):
            return ProcessingResult(
                is_processed=True,
                reason='meeting_responded',
                actions=['Meeting response sent'],
            )
        return ProcessingResult(is_processed=False)

    def _fyi(self, thread: ThreadSnapshot, now: datetime) -> ProcessingResult:
        # Threads without a last message date never age out
        if thread.last_message_date is None or thread.has_unread:
            return ProcessingResult(is_processed=False)

        if now - thread.last_message_date >= FYI_ARCHIVE_AGE:
            return ProcessingResult(
                is_processed=True,
                reason='fyi_auto_archived',
                actions=['Auto-archived after 7 days'],
            )
        return ProcessingResult(is_processed=False)

    def _generic(self, thread: ThreadSnapshot, now: datetime) -> ProcessingResult:
        if thread.drafts or thread.tasks:
            return self._action_required(thread)
        return self._fyi(thread, now)
