"""
Rules engine: decides whether a thread is processed, by user rule or by category default
"""
from datetime import datetime
import logging
from typing import List, Optional

from pydantic import ValidationError

from src.database.models import ProcessingRule
from src.database.store import RuleStore

from .completion import CompletionEvaluator
from .matcher import CriteriaMatcher
from .schema import ProcessingResult, RuleActions, RuleView, ThreadSnapshot
from .tracker import RuleApplicationTracker

logger = logging.getLogger(__name__)


def actions_of(rule: ProcessingRule) -> Optional[RuleActions]:
    """Typed actions of a stored rule, None when the stored JSON is malformed"""
    try:
        return RuleActions.model_validate(rule.actions or {})
    except ValidationError as e:
        logger.warning(f"Rule {rule.name} ({rule.id}) has malformed actions and is skipped: {e}")
        return None


def describe_actions(actions: RuleActions) -> List[str]:
    """Human-readable lines for the actions a rule took"""
    described = []
    if actions.auto_process:
        described.append('Auto-processed by rule')
    if actions.move_to_folder:
        described.append(f"Moved to folder: {actions.move_to_folder}")
    if actions.response_style:
        described.append(f"Response style: {actions.response_style}")
    if actions.priority:
        described.append(f"Priority set to: {actions.priority}")
    return described


class RulesEngine:
    """Engine for deciding the processing state of email threads"""

    def __init__(
        self,
        store: RuleStore,
        matcher: Optional[CriteriaMatcher] = None,
        evaluator: Optional[CompletionEvaluator] = None,
        tracker: Optional[RuleApplicationTracker] = None,
    ):
        self.store = store
        self.matcher = matcher or CriteriaMatcher()
        self.evaluator = evaluator or CompletionEvaluator()
        self.tracker = tracker or RuleApplicationTracker(store)

    def find_matching_rules(self, user_id: str, thread: ThreadSnapshot) -> List[ProcessingRule]:
        """Active rules matching the thread, best first"""
        rules = self.store.active_rules(user_id)
        matching = [
            rule for rule in rules
            if self.matcher.matches(rule, thread) and actions_of(rule) is not None
        ]
        logger.debug(f"Thread {thread.id}: {len(matching)} of {len(rules)} active rules match")
        return matching

    def decide(self, user_id: str, thread: ThreadSnapshot, now: Optional[datetime] = None) -> ProcessingResult:
        """Apply the best auto-processing rule, otherwise fall back to the category logic"""
        matching = self.find_matching_rules(user_id, thread)

        if matching:
            best = matching[0]
            actions = actions_of(best)
            if actions.auto_process:
                application = self.tracker.apply_rule(user_id, best, thread.id)
                return ProcessingResult(
                    is_processed=True,
                    reason=f"rule_applied: {best.name}",
                    actions=describe_actions(actions),
                    applied_rules=[RuleView.model_validate(best)],
                    rule_based_processing=True,
                    application_id=application.id,
                    move_to_folder=actions.move_to_folder,
                )
            logger.debug(f"Best rule {best.name} for thread {thread.id} does not auto-process")

        result = self.evaluator.evaluate(thread, now=now)
        logger.debug(f"Default evaluation for thread {thread.id} ({thread.category}): {result.reason}")
        return result
