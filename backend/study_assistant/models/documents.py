"""
SQLAlchemy ORM Models — Documents, Folders, Generated Artifacts, Jobs

Document.status state machine:
    processing — stored, artifacts being generated (initial state)
    completed  — the generation run finished
    failed     — extraction or a required generator failed

The status column is written once at creation and once more by the
pipeline's terminal step. No other value is ever stored.

Artifacts (Summary, Note, Flashcard, QuizQuestion) are owned by a Document
and by a user. Summary and Note are singletons per document (unique index
on document_id). Deleting a Document deletes its artifacts and jobs.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
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

DOCUMENT_STATUSES = ("processing", "completed", "failed")
DOCUMENT_KINDS    = ("pdf", "docx", "youtube")
JOB_STATUSES      = ("queued", "running", "completed", "failed")


# ---------------------------------------------------------------------------
# Folder model: folders
# ---------------------------------------------------------------------------

class Folder(Base):
    __tablename__ = "folders"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_folders_user_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name:  Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#8B5CF6")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )


# ---------------------------------------------------------------------------
# Document model: documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One uploaded source: a PDF / DOCX file in S3, or a YouTube video
    reference. Exactly one Document per upload; a failed upload is never
    retried in place.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'completed', 'failed')",
            name="documents_status_check",
        ),
        CheckConstraint(
            "file_type IN ('pdf', 'docx', 'youtube')",
            name="documents_file_type_check",
        ),
        Index("idx_documents_user_uploaded", "user_id", "uploaded_at"),
        Index("idx_documents_user_video", "user_id", "youtube_video_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    folder_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    file_name:     Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_type:     Mapped[str] = mapped_column(String(16), nullable=False)
    file_size:     Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # S3 reference (file documents only)
    s3_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    s3_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # YouTube reference (youtube documents only)
    youtube_url:       Mapped[Optional[str]]  = mapped_column(Text, nullable=True)
    youtube_video_id:  Mapped[Optional[str]]  = mapped_column(String(16), nullable=True)
    youtube_thumbnail: Mapped[Optional[str]]  = mapped_column(Text, nullable=True)
    youtube_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_duration:    Mapped[Optional[int]]  = mapped_column(Integer, nullable=True)
    youtube_category:  Mapped[Optional[str]]  = mapped_column(String(16), nullable=True)
    is_educational:    Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="processing")

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    @property
    def is_youtube(self) -> bool:
        return self.file_type == "youtube"

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} user={self.user_id} "
            f"status={self.status} file={self.file_name!r}>"
        )


# ---------------------------------------------------------------------------
# Generated artifacts
# ---------------------------------------------------------------------------

class Summary(Base):
    __tablename__ = "summaries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )


class Note(Base):
    """Generated study notes; the only artifact a user may edit."""

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title:   Mapped[str] = mapped_column(String(255), nullable=False, default="Study Notes")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )


class Flashcard(Base):
    __tablename__ = "flashcards"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id:  Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer:   Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )


class QuizQuestion(Base):
    """Multiple-choice question; correct_answer indexes into options."""

    __tablename__ = "quiz_questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id:        Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    question:       Mapped[str]       = mapped_column(Text, nullable=False)
    options:        Mapped[list]      = mapped_column(JSONType, nullable=False, default=list)
    correct_answer: Mapped[int]       = mapped_column(Integer, nullable=False)
    explanation:    Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )


# ---------------------------------------------------------------------------
# GenerationJob model: generation_jobs
# ---------------------------------------------------------------------------

class GenerationJob(Base):
    """
    Durable record of one background generation run for a Document.

    Transitions: queued → running → completed | failed
    attempts counts worker pickups (Celery retries and orphan requeues).
    error holds the server-side failure detail; it is never returned to
    clients verbatim.
    """

    __tablename__ = "generation_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed')",
            name="generation_jobs_status_check",
        ),
        Index("idx_generation_jobs_document", "document_id", "created_at"),
        Index("idx_generation_jobs_status", "status", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False,
    )
    status:   Mapped[str] = mapped_column(String(16), nullable=False, default="queued")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error:    Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )
    started_at:  Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
