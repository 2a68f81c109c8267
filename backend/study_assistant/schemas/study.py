"""
Study Tools — Pydantic Request/Response Schemas

Covers /api/folders, /api/qa, /api/flashcards, /api/analytics and
/api/error-book.

Review history (performance rows, wrong answers) may outlive its Document;
views that join back to documents carry a "[Document Deleted]" fallback.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from study_assistant.schemas.common import CamelModel

DELETED_DOCUMENT_NAME = "[Document Deleted]"


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------

class FolderRequest(CamelModel):
    name:  str | None = None
    color: str | None = None


class FolderOut(CamelModel):
    id:         UUID
    name:       str
    color:      str
    created_at: datetime
    updated_at: datetime


class FolderResponse(CamelModel):
    success: bool = True
    folder:  FolderOut


class FolderListResponse(CamelModel):
    success: bool = True
    folders: list[FolderOut]


# ---------------------------------------------------------------------------
# Q&A
# ---------------------------------------------------------------------------

class QuestionRequest(CamelModel):
    document_id: UUID | None = None
    question:    str | None = None


class AnswerResponse(CamelModel):
    answer:   str
    question: str


# ---------------------------------------------------------------------------
# Flashcard answer checking
# ---------------------------------------------------------------------------

class VerifyAnswerRequest(CamelModel):
    flashcard_id: UUID | None = None
    user_answer:  str | None = None


class VerifyAnswerResponse(CamelModel):
    success:    bool = True
    is_correct: bool
    feedback:   str


# ---------------------------------------------------------------------------
# Analytics: writes
# ---------------------------------------------------------------------------

class FlashcardReviewRequest(CamelModel):
    document_id:  UUID | None = None
    flashcard_id: UUID | None = None
    is_known:     bool | None = None
    time_spent:   int | None = None


class QuizAttemptRequest(CamelModel):
    document_id:      UUID | None = None
    quiz_question_id: UUID | None = None
    selected_answer:  int | None = None
    correct_answer:   int | None = None
    time_spent:       int | None = None


class PerformanceRecorded(CamelModel):
    success:        bool = True
    performance_id: UUID
    is_correct:     bool | None = None


class StudySessionRequest(CamelModel):
    action:        str | None = None
    document_id:   UUID | None = None
    activity_type: Literal["reading", "flashcards", "quiz", "notes", "qa"] | None = None
    session_id:    UUID | None = None
    duration:      int | None = None  # minutes


class StudySessionResponse(CamelModel):
    message:    str
    session_id: UUID | None = None
    duration:   int | None = None


# ---------------------------------------------------------------------------
# Analytics: overview
# ---------------------------------------------------------------------------

class DailyStudyTime(CamelModel):
    date:          str  # YYYY-MM-DD
    total_minutes: int


class StudyTimeOut(CamelModel):
    total:       int
    by_activity: dict[str, int]
    daily:       list[DailyStudyTime]


class StreaksOut(CamelModel):
    current: int


class DocumentAccuracy(CamelModel):
    document_id: UUID
    total:       int
    correct:     int
    accuracy:    float


class QuizStatsOut(CamelModel):
    total:       int
    correct:     int
    accuracy:    float
    by_document: list[DocumentAccuracy]


class FlashcardStatsOut(CamelModel):
    total:    int
    known:    int
    accuracy: float


class PeriodReport(CamelModel):
    total_minutes:  int
    days_studied:   int
    sessions_count: int
    average_per_day: int | None = None


class ReportsOut(CamelModel):
    weekly:  PeriodReport
    monthly: PeriodReport


class AnalyticsResponse(CamelModel):
    period:     str
    study_time: StudyTimeOut
    streaks:    StreaksOut
    quiz:       QuizStatsOut
    flashcards: FlashcardStatsOut
    reports:    ReportsOut


# ---------------------------------------------------------------------------
# Analytics: quiz history and mastered cards
# ---------------------------------------------------------------------------

class HistoryDocument(CamelModel):
    id:        UUID
    file_name: str
    file_type: str


class HistoryAttempt(CamelModel):
    id:           UUID
    is_correct:   bool
    time_spent:   int
    attempted_at: datetime


class HistoryDay(CamelModel):
    date:      str
    total:     int = 0
    correct:   int = 0
    score:     int = 0
    questions: list[HistoryAttempt] = Field(default_factory=list)


class DocumentHistory(CamelModel):
    document:         HistoryDocument
    sessions:         list[HistoryDay] = Field(default_factory=list)
    total_attempts:   int = 0
    total_correct:    int = 0
    overall_accuracy: int = 0


class QuizHistoryResponse(CamelModel):
    success:          bool = True
    documents:        list[DocumentHistory]
    total_documents:  int
    total_attempts:   int
    total_correct:    int
    overall_accuracy: int


class MasteredFlashcard(CamelModel):
    performance_id: UUID
    flashcard_id:   UUID
    question:       str
    answer:         str
    document_id:    UUID
    document_name:  str
    mastered_at:    datetime


class MasteredFlashcardsResponse(CamelModel):
    total:      int
    flashcards: list[MasteredFlashcard]


class MasteryRemovedResponse(CamelModel):
    success:       bool = True
    message:       str = "Flashcard mastery removed successfully"
    deleted_count: int


# ---------------------------------------------------------------------------
# Error book
# ---------------------------------------------------------------------------

class ErrorBookDocument(CamelModel):
    id:          UUID
    file_name:   str
    file_type:   str
    uploaded_at: datetime | None = None
    is_deleted:  bool = False


class WrongAnswerOut(CamelModel):
    id:               UUID
    quiz_question_id: UUID
    question:         str
    options:          list[str]
    selected_answer:  int
    correct_answer:   int
    explanation:      str | None = None
    attempted_at:     datetime
    miss_count:       int = 1


class ErrorBookEntry(CamelModel):
    document:      ErrorBookDocument
    wrong_answers: list[WrongAnswerOut]


class ErrorBookResponse(CamelModel):
    success:             bool = True
    error_books:         list[ErrorBookEntry]
    total_documents:     int
    total_wrong_answers: int


class DocumentErrorBookResponse(CamelModel):
    success:       bool = True
    document:      ErrorBookDocument
    wrong_answers: list[WrongAnswerOut]
    count:         int
