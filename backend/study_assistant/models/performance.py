"""
SQLAlchemy ORM Models — Review Records

  FlashcardPerformance  upsert per (user, flashcard)
  QuizPerformance       upsert per (user, quiz question)
  WrongAnswer           append-only, snapshots the missed question
  StudySession          append-only

document_id here is a plain column, not a foreign key: review history
outlives the Document it was recorded against.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from study_assistant.models.base import Base, JSONType, utcnow

ACTIVITY_TYPES = ("reading", "flashcards", "quiz", "notes", "qa")


class FlashcardPerformance(Base):
    __tablename__ = "flashcard_performances"
    __table_args__ = (
        UniqueConstraint("user_id", "flashcard_id", name="uq_flashcard_perf_user_card"),
        Index("idx_flashcard_perf_user_known", "user_id", "is_known"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    document_id:  Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    flashcard_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    is_known:     Mapped[bool]      = mapped_column(Boolean, nullable=False)
    time_spent:   Mapped[int]       = mapped_column(Integer, nullable=False, default=0)  # seconds
    reviewed_at:  Mapped[datetime]  = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )


class QuizPerformance(Base):
    __tablename__ = "quiz_performances"
    __table_args__ = (
        UniqueConstraint("user_id", "quiz_question_id", name="uq_quiz_perf_user_question"),
        Index("idx_quiz_perf_user_attempted", "user_id", "attempted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    document_id:      Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    quiz_question_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    selected_answer:  Mapped[int]  = mapped_column(Integer, nullable=False)
    correct_answer:   Mapped[int]  = mapped_column(Integer, nullable=False)
    is_correct:       Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_spent:       Mapped[int]  = mapped_column(Integer, nullable=False, default=0)  # seconds
    attempted_at:     Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )


class WrongAnswer(Base):
    """A missed quiz question, copied at the moment it was missed."""

    __tablename__ = "wrong_answers"
    __table_args__ = (
        Index("idx_wrong_answers_user_doc", "user_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    document_id:      Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quiz_question_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    question:        Mapped[str]  = mapped_column(Text, nullable=False)
    options:         Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    selected_answer: Mapped[int]  = mapped_column(Integer, nullable=False)
    correct_answer:  Mapped[int]  = mapped_column(Integer, nullable=False)
    explanation:     Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )


class StudySession(Base):
    __tablename__ = "study_sessions"
    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('reading', 'flashcards', 'quiz', 'notes', 'qa')",
            name="study_sessions_activity_check",
        ),
        Index("idx_study_sessions_user_start", "user_id", "start_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    document_id:   Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    activity_type: Mapped[str] = mapped_column(String(16), nullable=False, default="reading")
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minutes
