"""
SQLAlchemy ORM models for placement tests.

This module defines the database models for placement tests, including:
- PlacementQuestionModel: Question bank entries
- PlacementSessionModel: Timed sessions with their assigned question ids
- PlacementAnswerModel: One answer per (session, question)
- PlacementLevelAttemptModel: Append-only history of completed sessions
- PlacementUserProgressModel: Per-user progression cursor
"""

import datetime
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, Float, ForeignKey, JSON, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.schema import UniqueConstraint

from placement.database.base import ModelBase

ACTIVE_SESSION_CONDITION = text("status = 'in_progress'")


class PlacementQuestionModel(ModelBase):
    """Question bank entry."""
    __tablename__ = 'placement_question'

    id = Column(String(64), primary_key=True)
    level = Column(Integer, nullable=False, index=True)
    type = Column(String(32), nullable=False)
    content = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)
    correct_answer = Column(Text, nullable=True)
    rubric = Column(Text, nullable=True)
    points = Column(Integer, nullable=False, default=10)
    category = Column(String(100), nullable=True)
    difficulty = Column(String(20), nullable=False, default="medium")
    sort_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index('idx_placement_question_level_order', level, sort_order),
    )


class PlacementSessionModel(ModelBase):
    """
    Timed placement test session.

    At most one in-progress row may exist per (user_id, level); the partial
    unique index enforces it on SQLite and PostgreSQL.
    """
    __tablename__ = 'placement_test_session'

    id = Column(String(64), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="in_progress", index=True)
    question_ids = Column(JSON, nullable=False, default=list)
    started_at = Column(DateTime, nullable=False, default=datetime.datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    score = Column(Float, nullable=True)
    passed = Column(Boolean, nullable=True)
    earned_points = Column(Integer, nullable=True)
    max_score = Column(Integer, nullable=True)
    time_spent_seconds = Column(Integer, nullable=True)

    answers = relationship(
        "PlacementAnswerModel",
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        Index('idx_placement_session_user_level', user_id, level),
        Index(
            'uq_placement_session_active',
            user_id, level,
            unique=True,
            sqlite_where=ACTIVE_SESSION_CONDITION,
            postgresql_where=ACTIVE_SESSION_CONDITION,
        ),
    )


class PlacementAnswerModel(ModelBase):
    """Answer to one question of a session."""
    __tablename__ = 'placement_test_answer'

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String(64),
        ForeignKey('placement_test_session.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    question_id = Column(String(64), nullable=False)
    answer = Column(Text, nullable=False)
    answered_at = Column(DateTime, nullable=False, default=datetime.datetime.utcnow)

    session = relationship("PlacementSessionModel", back_populates="answers")

    __table_args__ = (
        UniqueConstraint('session_id', 'question_id', name='uq_placement_answer_session_question'),
    )


class PlacementLevelAttemptModel(ModelBase):
    """Completed attempt at a level."""
    __tablename__ = 'placement_level_attempt'

    id = Column(String(80), primary_key=True)
    user_id = Column(String(255), nullable=False)
    level = Column(Integer, nullable=False)
    session_id = Column(String(64), ForeignKey('placement_test_session.id'), nullable=False, unique=True)
    attempt_number = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    earned_points = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False, default=0)
    percentage = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    attempted_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_placement_attempt_user_level', user_id, level),
        UniqueConstraint('user_id', 'level', 'attempt_number', name='uq_placement_attempt_number'),
    )


class PlacementUserProgressModel(ModelBase):
    """Per-user progression cursor."""
    __tablename__ = 'placement_user_progress'

    user_id = Column(String(255), primary_key=True)
    current_level = Column(Integer, nullable=False, default=1)
    highest_passed_level = Column(Integer, nullable=False, default=0)
    total_attempts = Column(Integer, nullable=False, default=0)
    total_passed = Column(Integer, nullable=False, default=0)
    total_failed = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=True)
    last_attempt_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.datetime.utcnow)
