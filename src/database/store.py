"""
Repository over the relational store. Every query is scoped to the owning user.
"""
from functools import wraps
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.errors import StoreError
from src.timeutils import utcnow

from .models import EmailThread, ProcessingRule, RuleApplication

logger = logging.getLogger(__name__)

FEEDBACK_COUNTERS = {
    'correct': 'times_correct',
    'incorrect': 'times_incorrect',
}


def store_operation(name: str):
    """Roll back and raise StoreError when the wrapped query fails"""
    def decorator(method):
        @wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except SQLAlchemyError as e:
                logger.error(f"Store operation {name} failed: {e}")
                self.db.rollback()
                raise StoreError(name, e) from e
        return wrapper
    return decorator


class RuleStore:
    """Rules, rule applications and thread processing fields"""

    def __init__(self, db: Session):
        self.db = db

    # Rules

    @store_operation('active_rules')
    def active_rules(self, user_id: str) -> List[ProcessingRule]:
        """Active rules ranked by confidence, most recently created first on ties"""
        stmt = (
            select(ProcessingRule)
            .where(ProcessingRule.user_id == user_id, ProcessingRule.is_active.is_(True))
            .order_by(
                ProcessingRule.confidence_score.desc(),
                ProcessingRule.created_at.desc(),
                ProcessingRule.id.desc(),
            )
        )
        return list(self.db.scalars(stmt))

    @store_operation('user_rules')
    def user_rules(self, user_id: str) -> List[ProcessingRule]:
        stmt = (
            select(ProcessingRule)
            .where(ProcessingRule.user_id == user_id)
            .order_by(ProcessingRule.created_at.desc(), ProcessingRule.id.desc())
        )
        return list(self.db.scalars(stmt))

    @store_operation('get_rule')
    def get_rule(self, user_id: str, rule_id: str) -> Optional[ProcessingRule]:
        rule = self.db.get(ProcessingRule, rule_id)
        if rule is None or rule.user_id != user_id:
            return None
        return rule

    @store_operation('rule_exists')
    def rule_exists(self, rule_id: str) -> bool:
        return self.db.get(ProcessingRule, rule_id) is not None

    @store_operation('add_rule')
    def add_rule(
        self,
        user_id: str,
        name: str,
        description: Optional[str],
        criteria: Dict,
        actions: Dict,
        confidence: float,
        invalid_patterns: List[str],
    ) -> ProcessingRule:
        rule = ProcessingRule(
            user_id=user_id,
            name=name,
            description=description,
            matching_criteria=criteria,
            actions=actions,
            confidence_score=confidence,
            invalid_patterns=invalid_patterns,
        )
        self.db.add(rule)
        self.db.commit()
        return rule

    @store_operation('delete_rule')
    def delete_rule(self, rule: ProcessingRule) -> None:
        # Applications go with the rule
        self.db.delete(rule)
        self.db.commit()

    @store_operation('set_rule_active')
    def set_rule_active(self, rule: ProcessingRule, is_active: bool) -> None:
        if rule.is_active == is_active:
            return
        rule.is_active = is_active
        self.db.commit()

    @store_operation('set_rule_confidence')
    def set_rule_confidence(self, rule: ProcessingRule, score: float) -> None:
        rule.confidence_score = score
        self.db.commit()

    # Applications

    @store_operation('record_application')
    def record_application(self, user_id: str, rule_id: str, thread_id: str, actions: Dict) -> RuleApplication:
        """Insert the application and bump the rule's counter in one transaction"""
        now = utcnow()
        application = RuleApplication(
            user_id=user_id,
            rule_id=rule_id,
            thread_id=thread_id,
            actions_taken=actions,
            applied_at=now,
        )
        self.db.add(application)
        self.db.flush()
        self.db.execute(
            update(ProcessingRule)
            .where(ProcessingRule.id == rule_id)
            .values(times_applied=ProcessingRule.times_applied + 1, last_applied_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return application

    @store_operation('get_application')
    def get_application(self, user_id: str, application_id: str) -> Optional[RuleApplication]:
        application = self.db.get(RuleApplication, application_id)
        if application is None or application.user_id != user_id:
            return None
        return application

    @store_operation('set_feedback')
    def set_feedback(self, application: RuleApplication, feedback: str, notes: Optional[str]) -> None:
        """Record feedback and move the rule's correctness counters with it"""
        deltas: Dict[str, int] = {}
        previous = FEEDBACK_COUNTERS.get(application.user_feedback)
        current = FEEDBACK_COUNTERS.get(feedback)
        if previous != current:
            if previous:
                deltas[previous] = -1
            if current:
                deltas[current] = 1

        application.user_feedback = feedback
        application.user_notes = notes
        application.feedback_at = utcnow()

        if deltas:
            values = {
                counter: getattr(ProcessingRule, counter) + delta
                for counter, delta in deltas.items()
            }
            self.db.execute(
                update(ProcessingRule)
                .where(ProcessingRule.id == application.rule_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        self.db.commit()

    @store_operation('application_counts')
    def application_counts(self, rule_id: str) -> Tuple[int, int, int]:
        """(applied, correct, incorrect) derived from the application log"""
        rows = self.db.execute(
            select(RuleApplication.user_feedback, func.count())
            .where(RuleApplication.rule_id == rule_id)
            .group_by(RuleApplication.user_feedback)
        ).all()
        by_feedback = {feedback: count for feedback, count in rows}
        applied = sum(by_feedback.values())
        return applied, by_feedback.get('correct', 0), by_feedback.get('incorrect', 0)

    @store_operation('write_rule_counters')
    def write_rule_counters(self, rule: ProcessingRule, applied: int, correct: int, incorrect: int) -> None:
        rule.times_applied = applied
        rule.times_correct = correct
        rule.times_incorrect = incorrect
        self.db.commit()

    # Threads

    @store_operation('get_thread')
    def get_thread(self, user_id: str, thread_id: str) -> Optional[EmailThread]:
        thread = self.db.get(EmailThread, thread_id)
        if thread is None or thread.user_id != user_id:
            return None
        return thread

    @store_operation('unprocessed_thread_ids')
    def unprocessed_thread_ids(self, user_id: str) -> List[str]:
        stmt = (
            select(EmailThread.id)
            .where(EmailThread.user_id == user_id, EmailThread.is_processed.is_(False))
            .order_by(EmailThread.last_message_date.desc(), EmailThread.id)
        )
        return list(self.db.scalars(stmt))

    @store_operation('update_thread_processing')
    def update_thread_processing(self, user_id: str, thread_id: str, **fields) -> bool:
        """Write the processing fields, False when the user owns no such thread"""
        result = self.db.execute(
            update(EmailThread)
            .where(EmailThread.id == thread_id, EmailThread.user_id == user_id)
            .values(updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0

    @store_operation('thread_processing_rows')
    def thread_processing_rows(self, user_id: str) -> List[Tuple[bool, Optional[str]]]:
        rows = self.db.execute(
            select(EmailThread.is_processed, EmailThread.processing_reason)
            .where(EmailThread.user_id == user_id)
        ).all()
        return [(bool(is_processed), reason) for is_processed, reason in rows]
