"""
SQLAlchemy ORM models for the assessment engine.

This module defines the persisted layout:
- AssessmentDefinitionRecord: definitions, with a live-title uniqueness index
- QuestionRefRecord: ordered question references of a definition
- QuestionContentRecord: question bodies keyed by (kind, question id)
- SessionRecord: sessions, indexed by (user_id, definition_id)
- AnswerRecord: one row per answered question of a session
- ResultRecord: the single result of a completed session

Structured fields (option lists, test cases, snapshots, breakdowns) are
stored as JSON text and only decoded at the repository boundary.
"""

import datetime
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, false
)
from sqlalchemy.schema import UniqueConstraint

from examcore.database.base import ModelBase


class AssessmentDefinitionRecord(ModelBase):
    """Stored assessment definition."""
    __tablename__ = 'assessment_definitions'

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    kind = Column(String(20), nullable=False)
    category = Column(String(100), nullable=False, default="general")
    duration_minutes = Column(Integer, nullable=True)
    passing_score_percent = Column(Float, nullable=False, default=60.0)
    total_questions = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_public = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)

    # Titles are unique among non-deleted definitions
    __table_args__ = (
        Index(
            'uq_assessment_definitions_live_title',
            title,
            unique=True,
            sqlite_where=is_deleted == false(),
            postgresql_where=is_deleted == false()
        ),
    )


class QuestionRefRecord(ModelBase):
    """A definition's reference to a question in the content catalog."""
    __tablename__ = 'assessment_question_refs'

    id = Column(String(36), primary_key=True)
    definition_id = Column(
        String(36), ForeignKey('assessment_definitions.id', ondelete='CASCADE'), nullable=False
    )
    question_id = Column(String(255), nullable=False)
    kind = Column(String(20), nullable=False)
    points = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    time_limit_seconds = Column(Integer, nullable=True)
    category = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'definition_id', 'question_id', 'kind', name='uq_assessment_question_refs_identity'
        ),
        Index('idx_question_refs_definition_position', 'definition_id', 'position'),
    )


class QuestionContentRecord(ModelBase):
    """Question body as JSON, keyed by kind and question id."""
    __tablename__ = 'question_contents'

    kind = Column(String(20), primary_key=True)
    question_id = Column(String(255), primary_key=True)
    payload = Column(Text, nullable=False)


class SessionRecord(ModelBase):
    """A user's attempt at a definition, with its frozen question snapshot."""
    __tablename__ = 'assessment_sessions'

    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False)
    definition_id = Column(String(36), ForeignKey('assessment_definitions.id'), nullable=False)
    state = Column(String(20), nullable=False, index=True)
    scheduled_at = Column(DateTime, nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    elapsed_seconds = Column(Integer, nullable=False, default=0)
    segment_started_at = Column(DateTime, nullable=True)
    last_question_index = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False)
    passing_score_percent = Column(Float, nullable=False)
    default_category = Column(String(100), nullable=False, default="general")
    questions = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_sessions_user_definition', 'user_id', 'definition_id'),
    )


class AnswerRecord(ModelBase):
    """One recorded answer."""
    __tablename__ = 'session_answers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String(36), ForeignKey('assessment_sessions.id', ondelete='CASCADE'), nullable=False
    )
    question_ref_id = Column(String(36), nullable=False)
    raw_answer = Column(Text, nullable=True)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    answered_at = Column(DateTime, nullable=False)
    grading_status = Column(String(20), nullable=False)
    is_correct = Column(Boolean, nullable=True)
    points_earned = Column(Integer, nullable=False, default=0)
    feedback = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint('session_id', 'question_ref_id', name='uq_session_answers_question'),
    )


class ResultRecord(ModelBase):
    """Immutable result of a completed session."""
    __tablename__ = 'assessment_results'

    id = Column(String(36), primary_key=True)
    session_id = Column(
        String(36), ForeignKey('assessment_sessions.id'), nullable=False, unique=True
    )
    user_id = Column(String(255), nullable=False, index=True)
    definition_id = Column(String(36), nullable=False)
    total_score = Column(Integer, nullable=False)
    max_score = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    graded_percentage = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    time_spent_seconds = Column(Integer, nullable=False)
    time_clamped = Column(Boolean, nullable=False, default=False)
    has_pending_grading = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=False)
    category_scores = Column(Text, nullable=False)
    question_results = Column(Text, nullable=False)
