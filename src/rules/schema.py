"""
Typed shapes for rule criteria, rule actions, thread snapshots and engine results
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.timeutils import to_naive_utc

# Thread categories assigned by the classifier
SPAM = 'SPAM'
VIP_CRITICAL = 'VIP_CRITICAL'
ACTION_REQUIRED = 'ACTION_REQUIRED'
MEETING_REQUEST = 'MEETING_REQUEST'
FINANCIAL = 'FINANCIAL'
FYI_ONLY = 'FYI_ONLY'

Feedback = Literal['correct', 'incorrect', 'partially_correct']


class TimeWindow(BaseModel):
    """Time-of-day window, HH:MM strings"""
    start: str
    end: str


class MatchingCriteria(BaseModel):
    """Predicate over a thread. Every present field must hold; list fields match on any entry."""
    model_config = ConfigDict(extra='ignore')

    # Sender-based
    sender_domain: Optional[List[str]] = None
    sender_email: Optional[List[str]] = None
    sender_contains: Optional[List[str]] = None

    # Subject-based
    subject_contains: Optional[List[str]] = None
    subject_pattern: Optional[str] = None
    subject_exact: Optional[List[str]] = None

    # Body-based
    body_contains: Optional[List[str]] = None
    body_pattern: Optional[str] = None

    # Thread characteristics
    category: Optional[List[str]] = None
    priority: Optional[List[int]] = None
    participants_include: Optional[List[str]] = None
    participants_exclude: Optional[List[str]] = None

    # Temporal, stored but not enforced
    is_recurring: Optional[bool] = None
    frequency_pattern: Optional[Literal['daily', 'weekly', 'monthly']] = None
    time_of_day: Optional[TimeWindow] = None
    day_of_week: Optional[List[int]] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class RuleActions(BaseModel):
    """Effects of a rule, all independent"""
    model_config = ConfigDict(extra='ignore')

    auto_process: Optional[bool] = None
    move_to_folder: Optional[str] = None
    priority: Optional[Literal['low', 'normal', 'high']] = None

    response_style: Optional[Literal['none', 'brief', 'detailed', 'formal', 'casual']] = None
    response_template: Optional[str] = None
    auto_respond: Optional[bool] = None

    create_task: Optional[bool] = None
    notify_user: Optional[bool] = None
    forward_to: Optional[List[str]] = None

    learning_note: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class MessageSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message_id: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    received_at: Optional[datetime] = None


class DraftSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    mailbox_draft_id: Optional[str] = None
    draft_type: Optional[str] = None


class TaskSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    task_description: Optional[str] = None


class ThreadSnapshot(BaseModel):
    """Read-only view of a thread and its messages, drafts and tasks"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    subject: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[int] = None
    participants: List[str] = Field(default_factory=list)
    has_unread: bool = False
    last_message_date: Optional[datetime] = None
    messages: List[MessageSnapshot] = Field(default_factory=list)
    drafts: List[DraftSnapshot] = Field(default_factory=list)
    tasks: List[TaskSnapshot] = Field(default_factory=list)

    @field_validator('participants', 'messages', 'drafts', 'tasks', mode='before')
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value

    @field_validator('has_unread', mode='before')
    @classmethod
    def _none_as_read(cls, value):
        return bool(value)

    @field_validator('last_message_date', mode='before')
    @classmethod
    def _naive_utc(cls, value):
        return to_naive_utc(value)

    @property
    def first_message(self) -> Optional[MessageSnapshot]:
        return self.messages[0] if self.messages else None

    @property
    def sender_email(self) -> str:
        first = self.first_message
        return (first.from_email or '').lower() if first else ''

    @property
    def sender_domain(self) -> str:
        return self.sender_email.split('@')[1] if '@' in self.sender_email else ''


class ParsedRule(BaseModel):
    """Output of the instruction parser"""
    name: str
    criteria: MatchingCriteria = Field(default_factory=MatchingCriteria)
    actions: RuleActions = Field(default_factory=RuleActions)
    confidence: float


class RuleView(BaseModel):
    """Serialisable view of a stored rule"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    is_active: bool
    matching_criteria: MatchingCriteria
    actions: RuleActions
    invalid_patterns: List[str] = Field(default_factory=list)
    confidence_score: float
    times_applied: int = 0
    times_correct: int = 0
    times_incorrect: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_applied_at: Optional[datetime] = None

    @field_validator('matching_criteria', 'actions', mode='before')
    @classmethod
    def _none_as_empty_dict(cls, value):
        return {} if value is None else value

    @field_validator('invalid_patterns', mode='before')
    @classmethod
    def _none_as_empty_list(cls, value):
        return [] if value is None else value

    @field_validator('times_applied', 'times_correct', 'times_incorrect', mode='before')
    @classmethod
    def _none_as_zero(cls, value):
        # Unflushed rows have no column defaults yet
        return 0 if value is None else value


class ProcessingResult(BaseModel):
    """Decision for one thread"""
    is_processed: bool
    reason: Optional[str] = None
    actions: List[str] = Field(default_factory=list)
    applied_rules: List[RuleView] = Field(default_factory=list)
    rule_based_processing: bool = False
    application_id: Optional[str] = None
    move_to_folder: Optional[str] = None


class ProcessingStats(BaseModel):
    total: int
    active: int
    processed: int
    processing_reasons: Dict[str, int] = Field(default_factory=dict)


class FilingResult(BaseModel):
    """Outcome of filing a thread's messages into a mailbox folder"""
    success: bool
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None
    filed_count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    requires_sync: bool = False
