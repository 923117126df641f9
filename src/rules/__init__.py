"""
Rules engine package for the inbox rules engine
"""
from .completion import CompletionEvaluator
from .engine import RulesEngine, actions_of, describe_actions
from .matcher import CriteriaMatcher, find_invalid_patterns
from .parser import InstructionParser
from .schema import (
    FilingResult,
    MatchingCriteria,
    ParsedRule,
    ProcessingResult,
    ProcessingStats,
    RuleActions,
    RuleView,
    ThreadSnapshot,
)
from .tracker import RuleApplicationTracker

__all__ = [
    'RulesEngine',
    'CriteriaMatcher',
    'InstructionParser',
    'CompletionEvaluator',
    'RuleApplicationTracker',
    'describe_actions',
    'actions_of',
    'find_invalid_patterns',
    'MatchingCriteria',
    'RuleActions',
    'ThreadSnapshot',
    'ParsedRule',
    'ProcessingResult',
    'ProcessingStats',
    'RuleView',
    'FilingResult',
]
