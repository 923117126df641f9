"""
Database models for the inbox rules engine
"""
import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

from src.timeutils import utcnow

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class EmailThread(Base):
    """Email conversation, the unit of triage"""
    __tablename__ = 'email_threads'

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    subject = Column(String(998))
    category = Column(String(50))  # SPAM, VIP_CRITICAL, ACTION_REQUIRED, ...
    priority = Column(Integer)
    participants = Column(JSON, default=list)
    has_unread = Column(Boolean, default=True)
    last_message_date = Column(DateTime)

    # The only fields the rules engine writes back
    is_processed = Column(Boolean, default=False, nullable=False)
    is_hidden = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime)
    processing_reason = Column(String(255))

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    messages = relationship(
        'EmailMessage',
        back_populates='thread',
        cascade='all, delete-orphan',
        order_by='EmailMessage.received_at',
    )
    drafts = relationship('EmailDraft', back_populates='thread', cascade='all, delete-orphan')
    tasks = relationship('ExtractedTask', back_populates='thread', cascade='all, delete-orphan')


class EmailMessage(Base):
    """Single message inside a thread"""
    __tablename__ = 'email_messages'

    id = Column(String(36), primary_key=True, default=_new_id)
    thread_id = Column(String(36), ForeignKey('email_threads.id'), nullable=False)
    message_id = Column(String(255))  # Mailbox-side id, used for filing
    subject = Column(String(998))
    body = Column(Text)
    from_email = Column(String(255))
    from_name = Column(String(255))
    received_at = Column(DateTime, default=utcnow)

    thread = relationship('EmailThread', back_populates='messages')


class EmailDraft(Base):
    """Reply draft generated for a thread"""
    __tablename__ = 'email_drafts'

    id = Column(String(36), primary_key=True, default=_new_id)
    thread_id = Column(String(36), ForeignKey('email_threads.id'), nullable=False)
    status = Column(String(50), nullable=False, default='draft')  # draft, approved, in_mailbox, sent
    mailbox_draft_id = Column(String(255))
    draft_type = Column(String(50))

    thread = relationship('EmailThread', back_populates='drafts')


class ExtractedTask(Base):
    """Task extracted from a thread"""
    __tablename__ = 'extracted_tasks'

    id = Column(String(36), primary_key=True, default=_new_id)
    thread_id = Column(String(36), ForeignKey('email_threads.id'), nullable=False)
    status = Column(String(50), nullable=False, default='pending')  # pending, in_progress, completed
    task_description = Column(Text)

    thread = relationship('EmailThread', back_populates='tasks')


class ProcessingRule(Base):
    """User-defined rule for automating triage"""
    __tablename__ = 'email_processing_rules'

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)  # Original free-text instruction
    is_active = Column(Boolean, default=True, nullable=False)
    matching_criteria = Column(JSON, nullable=False, default=dict)
    actions = Column(JSON, nullable=False, default=dict)
    invalid_patterns = Column(JSON, nullable=False, default=list)  # Regex fields rejected at save time
    confidence_score = Column(Float, nullable=False, default=0.8)
    times_applied = Column(Integer, nullable=False, default=0)
    times_correct = Column(Integer, nullable=False, default=0)
    times_incorrect = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_applied_at = Column(DateTime)

    applications = relationship('RuleApplication', back_populates='rule', cascade='all, delete-orphan')


class RuleApplication(Base):
    """Log entry for one firing of a rule against one thread"""
    __tablename__ = 'email_rule_applications'

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    rule_id = Column(String(36), ForeignKey('email_processing_rules.id'), nullable=False)
    thread_id = Column(String(36), nullable=False)
    actions_taken = Column(JSON, nullable=False, default=dict)
    user_feedback = Column(String(50))  # correct, incorrect, partially_correct
    user_notes = Column(Text)
    applied_at = Column(DateTime, default=utcnow)
    feedback_at = Column(DateTime)

    rule = relationship('ProcessingRule', back_populates='applications')
