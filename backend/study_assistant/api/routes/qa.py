"""
Q&A API Router — /api/qa

Answers a question about one of the caller's documents. Text is not
cached: files are re-read from S3 and re-extracted per question; YouTube
documents answer from their generated notes (or summary).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from study_assistant.auth.dependencies import DB, CurrentUser, Gateway, Storage
from study_assistant.core.errors import UpstreamFailure, ValidationFailed
from study_assistant.core.ratelimit import qa_rate_limit
from study_assistant.llm.gateway import UsageContext
from study_assistant.llm.generators import answer_question
from study_assistant.llm.selector import ProviderError
from study_assistant.schemas.common import ERROR_RESPONSES
from study_assistant.schemas.study import AnswerResponse, QuestionRequest
from study_assistant.services.documents import get_owned_document, load_source_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qa", tags=["Q&A"], responses=ERROR_RESPONSES)


@router.post("", response_model=AnswerResponse, dependencies=[Depends(qa_rate_limit)])
async def ask_question(
    body:    QuestionRequest,
    user:    CurrentUser,
    db:      DB,
    storage: Storage,
    gateway: Gateway,
) -> AnswerResponse:
    question = (body.question or "").strip()
    if body.document_id is None or not question:
        raise ValidationFailed("Document ID and question are required")

    doc  = await get_owned_document(db, user.id, body.document_id)
    text = await load_source_text(db, storage, doc)
    if not text.strip():
        raise ValidationFailed("Could not extract text from document")

    try:
        answer = await answer_question(
            gateway, text, question,
            usage=UsageContext(user_id=user.id, document_id=doc.id),
        )
    except ProviderError as exc:
        logger.error("Q&A generation failed | doc=%s error=%s", doc.id, exc)
        raise UpstreamFailure("Failed to generate an answer. Please try again.") from exc

    return AnswerResponse(answer=answer, question=question)
