"""
Rule application log and user feedback
"""
import copy
import logging
from typing import Optional, get_args

from src.database.models import ProcessingRule, RuleApplication
from src.database.store import RuleStore
from src.errors import (
    ApplicationNotFoundError,
    InvalidConfidenceError,
    InvalidFeedbackError,
    RuleNotFoundError,
)

from .schema import Feedback, RuleActions

logger = logging.getLogger(__name__)

FEEDBACK_VALUES = get_args(Feedback)


class RuleApplicationTracker:
    """Records rule firings, keeps usage counters and accepts correctness feedback"""

    def __init__(self, store: RuleStore):
        self.store = store

    def apply_rule(self, user_id: str, rule: ProcessingRule, thread_id: str) -> RuleApplication:
        """Log one firing of the rule; the counter moves only if the log write succeeds"""
        # Snapshot, later rule edits must not change the logged actions
        actions = RuleActions.model_validate(copy.deepcopy(rule.actions or {}))
        application = self.store.record_application(
            user_id, rule.id, thread_id, actions.model_dump(exclude_none=True)
        )
        logger.info(f"Applied rule {rule.name} ({rule.id}) to thread {thread_id}")
        return application

    def provide_feedback(
        self,
        user_id: str,
        application_id: str,
        feedback: Feedback,
        notes: Optional[str] = None,
    ) -> RuleApplication:
        if feedback not in FEEDBACK_VALUES:
            raise InvalidFeedbackError(feedback, FEEDBACK_VALUES)
        application = self.store.get_application(user_id, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)

        if application.user_feedback and application.user_feedback != feedback:
            logger.info(
                f"Overwriting feedback on application {application_id}: "
                f"{application.user_feedback} -> {feedback}"
            )
        self.store.set_feedback(application, feedback, notes)
        return application

    def reconcile_counters(self, user_id: str, rule_id: str) -> ProcessingRule:
        """Recompute the rule's counters from its application log"""
        rule = self.store.get_rule(user_id, rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        applied, correct, incorrect = self.store.application_counts(rule_id)
        if (applied, correct, incorrect) != (rule.times_applied, rule.times_correct, rule.times_incorrect):
            logger.warning(
                f"Counter drift on rule {rule_id}: stored "
                f"({rule.times_applied}, {rule.times_correct}, {rule.times_incorrect}), "
                f"log ({applied}, {correct}, {incorrect})"
            )
            self.store.write_rule_counters(rule, applied, correct, incorrect)
        return rule

    def set_confidence(self, user_id: str, rule_id: str, score: float) -> ProcessingRule:
        """Explicit confidence adjustment; feedback never changes confidence on its own"""
        if not 0.0 <= score <= 1.0:
            raise InvalidConfidenceError(score)
        rule = self.store.get_rule(user_id, rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        self.store.set_rule_confidence(rule, score)
        return rule
