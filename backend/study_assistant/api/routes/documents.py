"""
Documents API Router — /api/documents

Request lifecycle for an upload:
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Session token → User (cookie or Bearer)              │
  │ 2. Rate limit (documents preset)                        │
  │ 3. Extension + size validation                          │
  │ 4. S3 upload under documents/<uuid>-<name>              │
  │ 5. Text extraction as an admission check (400 if empty) │
  │ 6. Document(processing) + GenerationJob, commit         │
  │ 7. Celery task published → 201                          │
  └─────────────────────────────────────────────────────────┘

Clients poll GET /{id}/status (or GET /{id}) until status leaves
`processing`.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import select

from study_assistant.auth.dependencies import DB, CurrentUser, Gateway, Publisher, Storage
from study_assistant.core.errors import NotFound, ValidationFailed
from study_assistant.core.ratelimit import documents_rate_limit
from study_assistant.models import (
    Document,
    Flashcard,
    Folder,
    GenerationJob,
    Note,
    QuizQuestion,
    Summary,
)
from study_assistant.schemas.common import ERROR_RESPONSES, MessageResponse
from study_assistant.schemas.documents import (
    DocumentDetailResponse,
    DocumentListItem,
    DocumentListResponse,
    DocumentMutationResponse,
    DocumentStatusResponse,
    DocumentUploadResponse,
    FlashcardOut,
    JobStatusOut,
    MoveDocumentRequest,
    NoteOut,
    QuizQuestionOut,
    RegenerateQuizResponse,
    RenameDocumentRequest,
    SummaryOut,
)
from study_assistant.services.documents import (
    delete_document,
    get_owned_document,
    regenerate_quiz,
)
from study_assistant.services.ingestion import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"], responses=ERROR_RESPONSES)

ROOT_FOLDER = "root"


def _parse_folder_id(raw: str | None) -> UUID | None:
    if raw in (None, "", "null", ROOT_FOLDER):
        return None
    try:
        return UUID(raw)
    except ValueError as exc:
        raise ValidationFailed("Invalid folder id", field="folderId") from exc


# ---------------------------------------------------------------------------
# POST /documents
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(documents_rate_limit)],
    summary="Upload a PDF or DOCX for study material generation",
)
async def upload_document(
    user:      CurrentUser,
    db:        DB,
    storage:   Storage,
    publisher: Publisher,
    file:      UploadFile | None = File(None),
    folder_id: str | None = Form(None, alias="folderId"),
) -> DocumentUploadResponse:
    service = IngestionService(db=db, storage=storage, user=user, publisher=publisher)
    return await service.upload_file(file, _parse_folder_id(folder_id))


# ---------------------------------------------------------------------------
# GET /documents
# ---------------------------------------------------------------------------

@router.get("", response_model=DocumentListResponse)
async def list_documents(
    user: CurrentUser,
    db:   DB,
    folder_id: str | None = None,
    folderId:  str | None = None,
) -> DocumentListResponse:
    stmt = select(Document).where(Document.user_id == user.id)

    raw_folder = folderId if folderId is not None else folder_id
    if raw_folder is not None:
        if raw_folder == ROOT_FOLDER:
            stmt = stmt.where(Document.folder_id.is_(None))
        else:
            stmt = stmt.where(Document.folder_id == _parse_folder_id(raw_folder))

    docs = (await db.scalars(stmt.order_by(Document.uploaded_at.desc()))).all()
    return DocumentListResponse(documents=[DocumentListItem.model_validate(d) for d in docs])


# ---------------------------------------------------------------------------
# GET /documents/{id}
# ---------------------------------------------------------------------------

@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(document_id: UUID, user: CurrentUser, db: DB) -> DocumentDetailResponse:
    doc = await get_owned_document(db, user.id, document_id)

    summary = await db.scalar(select(Summary).where(Summary.document_id == doc.id))
    notes   = await db.scalar(select(Note).where(Note.document_id == doc.id))
    cards = (await db.scalars(
        select(Flashcard).where(Flashcard.document_id == doc.id).order_by(Flashcard.created_at)
    )).all()
    questions = (await db.scalars(
        select(QuizQuestion).where(QuizQuestion.document_id == doc.id).order_by(QuizQuestion.created_at)
    )).all()

    return DocumentDetailResponse(
        document=DocumentListItem.model_validate(doc),
        summary=SummaryOut.model_validate(summary) if summary else None,
        notes=NoteOut.model_validate(notes) if notes else None,
        flashcards=[FlashcardOut.model_validate(c) for c in cards],
        quiz_questions=[QuizQuestionOut.model_validate(q) for q in questions],
    )


@router.get("/{document_id}/status", response_model=DocumentStatusResponse)
async def get_document_status(document_id: UUID, user: CurrentUser, db: DB) -> DocumentStatusResponse:
    doc = await get_owned_document(db, user.id, document_id)
    job = await db.scalar(
        select(GenerationJob)
        .where(GenerationJob.document_id == doc.id)
        .order_by(GenerationJob.created_at.desc())
        .limit(1)
    )
    return DocumentStatusResponse(
        id=doc.id,
        status=doc.status,
        job=JobStatusOut(status=job.status, attempts=job.attempts) if job else None,
    )


# ---------------------------------------------------------------------------
# DELETE /documents/{id}
# ---------------------------------------------------------------------------

@router.delete("/{document_id}", response_model=MessageResponse)
async def remove_document(document_id: UUID, user: CurrentUser, db: DB, storage: Storage) -> MessageResponse:
    doc = await get_owned_document(db, user.id, document_id)
    await delete_document(db, storage, doc)
    return MessageResponse(message="Document deleted successfully")


# ---------------------------------------------------------------------------
# PUT /documents/{id}/move, /rename
# ---------------------------------------------------------------------------

@router.put("/{document_id}/move", response_model=DocumentMutationResponse)
async def move_document(
    document_id: UUID,
    body: MoveDocumentRequest,
    user: CurrentUser,
    db:   DB,
) -> DocumentMutationResponse:
    doc = await get_owned_document(db, user.id, document_id)

    if body.folder_id is not None:
        folder = await db.scalar(
            select(Folder.id).where(Folder.id == body.folder_id, Folder.user_id == user.id)
        )
        if folder is None:
            raise NotFound("Folder not found")

    doc.folder_id = body.folder_id
    await db.flush()
    logger.info("Document moved | doc=%s folder=%s", doc.id, body.folder_id)
    return DocumentMutationResponse(document=DocumentListItem.model_validate(doc))


@router.put("/{document_id}/rename", response_model=DocumentMutationResponse)
async def rename_document(
    document_id: UUID,
    body: RenameDocumentRequest,
    user: CurrentUser,
    db:   DB,
) -> DocumentMutationResponse:
    name = (body.file_name or "").strip()
    if not name:
        raise ValidationFailed("File name is required", field="fileName")

    doc = await get_owned_document(db, user.id, document_id)
    doc.file_name = name
    await db.flush()
    return DocumentMutationResponse(document=DocumentListItem.model_validate(doc))


# ---------------------------------------------------------------------------
# POST /documents/{id}/regenerate-quiz
# ---------------------------------------------------------------------------

@router.post("/{document_id}/regenerate-quiz", response_model=RegenerateQuizResponse)
async def regenerate_document_quiz(
    document_id: UUID,
    user:    CurrentUser,
    db:      DB,
    storage: Storage,
    gateway: Gateway,
) -> RegenerateQuizResponse:
    doc = await get_owned_document(db, user.id, document_id)
    questions = await regenerate_quiz(db, storage, gateway, doc)
    return RegenerateQuizResponse(
        quiz_questions=[QuizQuestionOut.model_validate(q) for q in questions],
    )
