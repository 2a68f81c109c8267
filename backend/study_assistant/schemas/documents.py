"""
Documents & Artifacts — Pydantic Request/Response Schemas

Covers /api/documents, /api/youtube and /api/notes.

Design decisions:
  - Document ids are server-generated UUIDs; never client-supplied.
  - File kind is decided from the extension (.pdf / .docx only).
  - status is the generation state (processing | completed | failed), read
    by clients polling for completion.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field

from study_assistant.schemas.common import CamelModel

# ---------------------------------------------------------------------------
# Upload limits: enforced before touching S3
# ---------------------------------------------------------------------------

ALLOWED_EXTENSIONS: dict[str, str] = {
    ".pdf":  "pdf",
    ".docx": "docx",
}

CONTENT_TYPES: dict[str, str] = {
    "pdf":  "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

MAX_FILE_SIZE_BYTES: int = 50 * 1024 * 1024  # 50 MB


class ProcessingStatus(str, Enum):
    """
    Maps to documents.status.
    Transitions: processing → completed | failed
    """
    PROCESSING = "processing"
    COMPLETED  = "completed"
    FAILED     = "failed"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class DocumentRef(CamelModel):
    id:        UUID
    file_name: str
    status:    ProcessingStatus


class DocumentUploadResponse(CamelModel):
    """HTTP 201 — stored; generation continues in the background."""
    message:  str = "File uploaded successfully"
    document: DocumentRef


class DocumentListItem(CamelModel):
    id:          UUID
    file_name:   str
    file_type:   str
    status:      ProcessingStatus
    folder_id:   UUID | None = None
    uploaded_at: datetime
    youtube_url:       str | None = None
    youtube_thumbnail: str | None = None
    video_duration:    int | None = None


class DocumentListResponse(CamelModel):
    documents: list[DocumentListItem]


class SummaryOut(CamelModel):
    id:      UUID
    content: str


class NoteOut(CamelModel):
    id:      UUID
    title:   str
    content: str


class FlashcardOut(CamelModel):
    id:       UUID
    question: str
    answer:   str


class QuizQuestionOut(CamelModel):
    id:             UUID
    question:       str
    options:        list[str]
    correct_answer: int
    explanation:    str | None = None


class DocumentDetailResponse(CamelModel):
    document:       DocumentListItem
    summary:        SummaryOut | None = None
    notes:          NoteOut | None = None
    flashcards:     list[FlashcardOut] = Field(default_factory=list)
    quiz_questions: list[QuizQuestionOut] = Field(default_factory=list)


class JobStatusOut(CamelModel):
    status:   str
    attempts: int


class DocumentStatusResponse(CamelModel):
    """Polled by clients to track generation progress."""
    id:     UUID
    status: ProcessingStatus
    job:    JobStatusOut | None = None


class MoveDocumentRequest(CamelModel):
    folder_id: UUID | None = None


class RenameDocumentRequest(CamelModel):
    file_name: str = ""


class DocumentMutationResponse(CamelModel):
    success:  bool = True
    document: DocumentListItem


class RegenerateQuizResponse(CamelModel):
    success:        bool = True
    quiz_questions: list[QuizQuestionOut]


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

class UpdateNoteRequest(CamelModel):
    title:   str | None = None
    content: str | None = None


class NoteUpdateResponse(CamelModel):
    success: bool = True
    note:    NoteOut


# ---------------------------------------------------------------------------
# YouTube
# ---------------------------------------------------------------------------

class YouTubeValidateRequest(CamelModel):
    url: str | None = None


class YouTubeValidateResponse(CamelModel):
    valid:              bool = True
    video_id:           str
    title:              str
    channel_title:      str | None = None
    description:        str = ""
    thumbnail:          str | None = None
    duration:           int
    duration_formatted: str
    category_id:        str | None = None
    published_at:       str | None = None
    view_count:         str | None = None

    is_educational:         bool
    educational_confidence: int
    educational_reason:     str

    daily_limit:            int
    remaining:              int
    max_duration:           int
    max_duration_formatted: str


class YouTubeSubmitRequest(CamelModel):
    video_id:       str | None = None
    url:            str | None = None
    title:          str | None = None
    description:    str | None = None
    thumbnail:      str | None = None
    duration:       int | None = None
    category_id:    str | None = None
    is_educational: bool | None = None


class YouTubeDocumentOut(CamelModel):
    id:                UUID
    file_name:         str
    file_type:         str
    youtube_url:       str | None
    youtube_thumbnail: str | None
    video_duration:    int | None
    status:            ProcessingStatus


class YouTubeSubmitResponse(CamelModel):
    success:   bool = True
    message:   str = "YouTube video added successfully. Processing will begin shortly."
    document:  YouTubeDocumentOut
    remaining: int
