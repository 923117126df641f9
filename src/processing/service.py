"""
Processing service: the operations request handlers and the command line call
"""
from collections import Counter
from datetime import datetime
import logging
from typing import List, Optional

from pydantic import ValidationError

from src.database.store import RuleStore
from src.errors import InboxRulesError, MailboxError, RuleNotFoundError, ThreadNotFoundError
from src.mail.client import MailboxClient
from src.rules.engine import RulesEngine
from src.rules.matcher import find_invalid_patterns
from src.rules.parser import InstructionParser
from src.rules.schema import (
    Feedback,
    FilingResult,
    ProcessingResult,
    ProcessingStats,
    RuleView,
    ThreadSnapshot,
)
from src.rules.tracker import RuleApplicationTracker
from src.timeutils import utcnow

logger = logging.getLogger(__name__)

FILED_AND_DONE = 'filed_and_done'


class EmailProcessingService:
    """Thread processing state, rule management and filing for one user at a time"""

    def __init__(
        self,
        store: RuleStore,
        mailbox: Optional[MailboxClient] = None,
        parser: Optional[InstructionParser] = None,
    ):
        self.store = store
        self.mailbox = mailbox
        self.parser = parser or InstructionParser()
        self.tracker = RuleApplicationTracker(store)
        self.engine = RulesEngine(store, tracker=self.tracker)

    def _snapshot(self, user_id: str, thread_id: str) -> ThreadSnapshot:
        thread = self.store.get_thread(user_id, thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return ThreadSnapshot.model_validate(thread)

    # Thread processing state

    def check_thread_processing_status(
        self, thread_id: str, user_id: str, now: Optional[datetime] = None
    ) -> ProcessingResult:
        """Decide whether the thread is fully processed; fires a matching auto-process rule"""
        thread = self._snapshot(user_id, thread_id)
        return self.engine.decide(user_id, thread, now=now)

    def mark_thread_as_processed(self, thread_id: str, user_id: str, reason: str, is_hidden: bool = True) -> bool:
        return self.store.update_thread_processing(
            user_id,
            thread_id,
            is_processed=True,
            is_hidden=is_hidden,
            processed_at=utcnow(),
            processing_reason=reason,
        )

    def unmark_thread_as_processed(self, thread_id: str, user_id: str) -> bool:
        """Bring the thread back to the active view"""
        return self.store.update_thread_processing(
            user_id,
            thread_id,
            is_processed=False,
            is_hidden=False,
            processed_at=None,
            processing_reason=None,
        )

    def auto_process_threads(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Mark every unprocessed thread that is done; one failing thread does not stop the batch"""
        processed_count = 0

        for thread_id in self.store.unprocessed_thread_ids(user_id):
            try:
                thread = self._snapshot(user_id, thread_id)
                result = self.engine.decide(user_id, thread, now=now)
                if not (result.is_processed and result.reason):
                    continue
                if not self.mark_thread_as_processed(thread_id, user_id, result.reason):
                    continue
            except InboxRulesError as e:
                logger.error(f"Auto-processing failed for thread {thread_id}: {e.message}")
                continue
            except ValidationError as e:
                logger.error(f"Thread {thread_id} has malformed data, skipped: {e}")
                continue

            processed_count += 1
            logger.info(f"Auto-processed thread {thread_id}: {result.reason}")

            if result.move_to_folder and self.mailbox is not None:
                filing = self.mailbox.file_thread(thread, result.move_to_folder)
                if not filing.success:
                    logger.warning(f"Thread {thread_id} processed but not filed: {filing.error}")

        return processed_count

    def get_processing_stats(self, user_id: str) -> ProcessingStats:
        rows = self.store.thread_processing_rows(user_id)
        processed = sum(1 for is_processed, _ in rows if is_processed)
        reasons = Counter(reason for is_processed, reason in rows if is_processed and reason)
        return ProcessingStats(
            total=len(rows),
            active=len(rows) - processed,
            processed=processed,
            processing_reasons=dict(reasons),
        )

    def file_and_done(self, thread_id: str, user_id: str) -> FilingResult:
        """File the thread's messages into a topic folder, then mark it processed"""
        if self.mailbox is None:
            raise MailboxError('Mailbox service is not configured')

        thread = self._snapshot(user_id, thread_id)
        filing = self.mailbox.file_thread(thread)
        if not filing.success:
            return filing

        if not self.mark_thread_as_processed(thread_id, user_id, FILED_AND_DONE):
            return filing.model_copy(update={
                'success': False,
                'error': 'Filed emails but failed to mark as processed',
            })
        return filing.model_copy(update={'message': f"{filing.message} and marked as done"})

    # Rules

    def create_rule_from_instruction(
        self, user_id: str, instruction: str, example_thread_id: Optional[str] = None
    ) -> RuleView:
        example = None
        if example_thread_id:
            thread = self.store.get_thread(user_id, example_thread_id)
            if thread is None:
                logger.warning(f"Example thread {example_thread_id} not found, parsing instruction alone")
            else:
                example = ThreadSnapshot.model_validate(thread)

        parsed = self.parser.parse(instruction, example)
        if parsed.criteria.is_empty():
            logger.warning(f"Rule {parsed.name!r} has no criteria and will match every thread")

        invalid = find_invalid_patterns(parsed.criteria)
        rule = self.store.add_rule(
            user_id=user_id,
            name=parsed.name,
            description=instruction,
            criteria=parsed.criteria.model_dump(exclude_none=True),
            actions=parsed.actions.model_dump(exclude_none=True),
            confidence=parsed.confidence,
            invalid_patterns=invalid,
        )
        logger.info(f"Created rule {rule.name} ({rule.id}) for user {user_id}")
        return RuleView.model_validate(rule)

    def get_user_rules(self, user_id: str) -> List[RuleView]:
        return [RuleView.model_validate(rule) for rule in self.store.user_rules(user_id)]

    def provide_feedback(
        self, user_id: str, application_id: str, feedback: Feedback, notes: Optional[str] = None
    ) -> None:
        self.tracker.provide_feedback(user_id, application_id, feedback, notes)

    def delete_rule(self, user_id: str, rule_id: str) -> None:
        rule = self.store.get_rule(user_id, rule_id)
        if rule is None:
            if self.store.rule_exists(rule_id):
                raise RuleNotFoundError(rule_id)
            logger.info(f"Rule {rule_id} already deleted")
            return
        self.store.delete_rule(rule)
        logger.info(f"Deleted rule {rule_id}")

    def toggle_rule(self, user_id: str, rule_id: str, is_active: bool) -> None:
        rule = self.store.get_rule(user_id, rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        self.store.set_rule_active(rule, is_active)

    def set_rule_confidence(self, user_id: str, rule_id: str, score: float) -> None:
        self.tracker.set_confidence(user_id, rule_id, score)

    def reconcile_rule_counters(self, user_id: str, rule_id: str) -> RuleView:
        return RuleView.model_validate(self.tracker.reconcile_counters(user_id, rule_id))
