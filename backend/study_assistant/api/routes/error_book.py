"""
Error Book API Router — /api/error-book

Missed quiz questions, grouped by document. Entries are snapshots, so
they stay readable after their document is deleted (isDeleted: true).
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter
from sqlalchemy import delete, select

from study_assistant.auth.dependencies import DB, CurrentUser
from study_assistant.core.errors import NotFound, ValidationFailed
from study_assistant.models import WrongAnswer
from study_assistant.schemas.common import ERROR_RESPONSES, MessageResponse
from study_assistant.schemas.study import DocumentErrorBookResponse, ErrorBookResponse
from study_assistant.services import analytics
from study_assistant.services.documents import get_owned_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/error-book", tags=["Error Book"], responses=ERROR_RESPONSES)


@router.get("", response_model=ErrorBookResponse)
async def get_error_book(user: CurrentUser, db: DB) -> ErrorBookResponse:
    rows = await analytics.wrong_answers_for(db, user.id)
    documents = await analytics.documents_by_id(db, user.id, (r.document_id for r in rows))
    entries = analytics.group_wrong_answers(rows, documents)
    return ErrorBookResponse(
        error_books=entries,
        total_documents=len(entries),
        total_wrong_answers=sum(len(e.wrong_answers) for e in entries),
    )


@router.get("/{document_id}", response_model=DocumentErrorBookResponse)
async def get_document_error_book(document_id: UUID, user: CurrentUser, db: DB) -> DocumentErrorBookResponse:
    doc = await get_owned_document(db, user.id, document_id)
    wrong = analytics.collapse_wrong_answers(
        await analytics.wrong_answers_for(db, user.id, doc.id)
    )
    return DocumentErrorBookResponse(
        document=analytics.error_book_document(doc.id, doc),
        wrong_answers=wrong,
        count=len(wrong),
    )


@router.delete("", response_model=MessageResponse)
async def delete_wrong_answer(
    user: CurrentUser,
    db:   DB,
    wrongAnswerId: UUID | None = None,
) -> MessageResponse:
    """Removes the entry and the earlier misses it was collapsed with."""
    if wrongAnswerId is None:
        raise ValidationFailed("wrongAnswerId is required", field="wrongAnswerId")

    entry = await db.scalar(
        select(WrongAnswer).where(WrongAnswer.id == wrongAnswerId, WrongAnswer.user_id == user.id)
    )
    if entry is None:
        raise NotFound("Wrong answer not found or you don't have permission to delete it")

    result = await db.execute(
        delete(WrongAnswer).where(
            WrongAnswer.user_id == user.id,
            WrongAnswer.quiz_question_id == entry.quiz_question_id,
        )
    )
    logger.info(
        "Wrong answer removed | user=%s entry=%s rows=%d", user.id, wrongAnswerId, result.rowcount,
    )
    return MessageResponse(message="Wrong answer removed from error book")
