"""
Database package for the inbox rules engine
"""
from .connection import create_session_factory, get_db_session, init_db, session_scope
from .models import (
    Base,
    EmailDraft,
    EmailMessage,
    EmailThread,
    ExtractedTask,
    ProcessingRule,
    RuleApplication,
)
from .store import RuleStore

__all__ = [
    'Base',
    'EmailThread',
    'EmailMessage',
    'EmailDraft',
    'ExtractedTask',
    'ProcessingRule',
    'RuleApplication',
    'RuleStore',
    'init_db',
    'get_db_session',
    'session_scope',
    'create_session_factory',
]
