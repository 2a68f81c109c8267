"""
Document lookups and maintenance shared by the documents, qa and profile
routes.

  get_owned_document   owner-scoped fetch, NotFound otherwise
  load_source_text     text a document's study material is built from
  regenerate_quiz      replace a document's quiz with fresh questions
  delete_document      S3 object (best effort) + artifacts + jobs + row
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.errors import NotFound, UpstreamFailure, ValidationFailed
from study_assistant.llm.gateway import LLMGateway, UsageContext
from study_assistant.llm.generators import generate_quiz
from study_assistant.llm.selector import ProviderError
from study_assistant.models import (
    Document,
    Flashcard,
    GenerationJob,
    Note,
    QuizQuestion,
    Summary,
)
from study_assistant.processing.extractor import ExtractionError, extract_text
from study_assistant.storage.s3 import S3StorageService

logger = logging.getLogger(__name__)

ARTIFACT_MODELS = (Summary, Note, Flashcard, QuizQuestion)


async def get_owned_document(
    db: AsyncSession,
    user_id: uuid.UUID,
    document_id: uuid.UUID,
) -> Document:
    doc = await db.scalar(
        select(Document).where(Document.id == document_id, Document.user_id == user_id)
    )
    if doc is None:
        raise NotFound("Document not found")
    return doc


async def load_source_text(
    db: AsyncSession,
    storage: S3StorageService,
    doc: Document,
    *,
    youtube_fallback_to_summary: bool = True,
) -> str:
    """
    File documents are re-downloaded and re-extracted. YouTube documents
    have no file; their generated notes (then summary) stand in.

    Raises ValidationFailed when there is no usable text.
    """
    if doc.is_youtube:
        note = await db.scalar(select(Note.content).where(Note.document_id == doc.id))
        if note:
            return note
        if youtube_fallback_to_summary:
            summary = await db.scalar(select(Summary.content).where(Summary.document_id == doc.id))
            if summary:
                return summary
        raise ValidationFailed(
            "Notes not found for this YouTube video. Please wait for processing to complete.",
        )

    if not doc.s3_key:
        raise ValidationFailed("Document file not found")

    try:
        data = await storage.get_object(doc.s3_key)
    except FileNotFoundError as exc:
        logger.error("Stored file missing | doc=%s key=%s", doc.id, doc.s3_key)
        raise ValidationFailed("Document file not found") from exc

    try:
        result = await extract_text(data, doc.file_type)
    except ExtractionError as exc:
        raise ValidationFailed("Could not extract text from document") from exc
    return result.text


async def regenerate_quiz(
    db: AsyncSession,
    storage: S3StorageService,
    gateway: LLMGateway,
    doc: Document,
    count: int = 5,
) -> list[QuizQuestion]:
    """
    Generate `count` new questions, told to avoid the current ones, and
    swap them in. The existing quiz is kept if generation fails.
    """
    text = await load_source_text(db, storage, doc, youtube_fallback_to_summary=False)

    previous = list(
        (await db.scalars(
            select(QuizQuestion.question)
            .where(QuizQuestion.document_id == doc.id, QuizQuestion.user_id == doc.user_id)
            .order_by(QuizQuestion.created_at)
        )).all()
    )

    usage = UsageContext(user_id=doc.user_id, document_id=doc.id, metadata={"regenerate": True})
    try:
        drafts = await generate_quiz(gateway, text, count, previous or None, usage=usage)
    except ProviderError as exc:
        logger.error("Quiz regeneration failed | doc=%s error=%s", doc.id, exc)
        raise UpstreamFailure("Failed to generate quiz questions. Please try again.") from exc

    if not drafts:
        raise UpstreamFailure("Failed to generate quiz questions. Please try again.")

    await db.execute(
        delete(QuizQuestion).where(
            QuizQuestion.document_id == doc.id, QuizQuestion.user_id == doc.user_id,
        )
    )
    questions = [
        QuizQuestion(
            document_id=doc.id,
            user_id=doc.user_id,
            question=d.question,
            options=d.options,
            correct_answer=d.correct_answer,
            explanation=d.explanation,
        )
        for d in drafts
    ]
    db.add_all(questions)
    await db.flush()

    logger.info("Quiz regenerated | doc=%s questions=%d", doc.id, len(questions))
    return questions


async def delete_document(db: AsyncSession, storage: S3StorageService, doc: Document) -> None:
    """
    Remove a document and everything generated from it. Review history
    (performance, wrong answers, study sessions) is left in place.
    """
    if doc.s3_key:
        try:
            await storage.delete_object(doc.s3_key)
        except Exception as exc:
            logger.warning("S3 delete failed, continuing | doc=%s error=%s", doc.id, exc)

    for model in ARTIFACT_MODELS:
        await db.execute(delete(model).where(model.document_id == doc.id))
    await db.execute(delete(GenerationJob).where(GenerationJob.document_id == doc.id))
    await db.delete(doc)
    await db.flush()

    logger.info("Document deleted | doc=%s user=%s", doc.id, doc.user_id)
