"""
Analytics API Router — /api/analytics

  GET    /                     study overview for ?period=week|month|all
  POST   /flashcards           record a flashcard review   (upsert)
  POST   /quiz                 record a quiz attempt       (upsert + error book)
  POST   /sessions             start | end a study session
  GET    /quiz/history         attempts grouped by document and day
  GET    /flashcards/mastered  cards currently marked known
  DELETE /flashcards/mastered  forget a mastered card
"""

from __future__ import annotations

import logging
from typing import Literal
from uuid import UUID

from fastapi import APIRouter
from sqlalchemy import and_, delete, select

from study_assistant.auth.dependencies import DB, CurrentUser
from study_assistant.core.errors import NotFound, ValidationFailed
from study_assistant.models import Flashcard, FlashcardPerformance, QuizQuestion
from study_assistant.models.base import ensure_utc
from study_assistant.schemas.common import ERROR_RESPONSES
from study_assistant.schemas.study import (
    AnalyticsResponse,
    FlashcardReviewRequest,
    MasteredFlashcard,
    MasteredFlashcardsResponse,
    MasteryRemovedResponse,
    PerformanceRecorded,
    QuizAttemptRequest,
    QuizHistoryResponse,
    StudySessionRequest,
    StudySessionResponse,
)
from study_assistant.services import analytics, performance
from study_assistant.services.documents import get_owned_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"], responses=ERROR_RESPONSES)

UNKNOWN_DOCUMENT_NAME = "Unknown Document"


@router.get("", response_model=AnalyticsResponse)
async def get_analytics(
    user: CurrentUser,
    db:   DB,
    period: Literal["week", "month", "all"] = "week",
) -> AnalyticsResponse:
    return await analytics.build_overview(db, user.id, period)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@router.post("/flashcards", response_model=PerformanceRecorded)
async def track_flashcard(body: FlashcardReviewRequest, user: CurrentUser, db: DB) -> PerformanceRecorded:
    if body.document_id is None or body.flashcard_id is None or body.is_known is None:
        raise ValidationFailed("documentId, flashcardId and isKnown are required")

    card = await db.scalar(
        select(Flashcard).where(
            Flashcard.id == body.flashcard_id,
            Flashcard.user_id == user.id,
            Flashcard.document_id == body.document_id,
        )
    )
    if card is None:
        raise NotFound("Flashcard not found")

    perf = await performance.record_flashcard_review(
        db,
        user_id=user.id,
        document_id=card.document_id,
        flashcard_id=card.id,
        is_known=body.is_known,
        time_spent=body.time_spent,
    )
    return PerformanceRecorded(performance_id=perf.id)


@router.post("/quiz", response_model=PerformanceRecorded)
async def track_quiz(body: QuizAttemptRequest, user: CurrentUser, db: DB) -> PerformanceRecorded:
    if (
        body.document_id is None
        or body.quiz_question_id is None
        or body.selected_answer is None
        or body.correct_answer is None
    ):
        raise ValidationFailed(
            "documentId, quizQuestionId, selectedAnswer and correctAnswer are required",
        )

    question = await db.scalar(
        select(QuizQuestion).where(
            QuizQuestion.id == body.quiz_question_id,
            QuizQuestion.user_id == user.id,
            QuizQuestion.document_id == body.document_id,
        )
    )
    if question is None:
        raise NotFound("Quiz question not found")

    perf = await performance.record_quiz_attempt(
        db,
        user_id=user.id,
        document_id=question.document_id,
        quiz_question_id=question.id,
        selected_answer=body.selected_answer,
        correct_answer=body.correct_answer,
        time_spent=body.time_spent,
    )
    return PerformanceRecorded(performance_id=perf.id, is_correct=perf.is_correct)


@router.post("/sessions", response_model=StudySessionResponse, response_model_exclude_none=True)
async def track_session(body: StudySessionRequest, user: CurrentUser, db: DB) -> StudySessionResponse:
    if body.action == "start":
        if body.document_id is not None:
            await get_owned_document(db, user.id, body.document_id)
        session = await performance.start_session(
            db, user_id=user.id, document_id=body.document_id, activity_type=body.activity_type,
        )
        return StudySessionResponse(message="Study session started", session_id=session.id)

    if body.action == "end":
        if body.session_id is None:
            raise ValidationFailed("Session ID is required", field="sessionId")
        session = await performance.end_session(
            db, user_id=user.id, session_id=body.session_id, duration=body.duration,
        )
        if session is None:
            raise NotFound("Session not found")
        return StudySessionResponse(message="Study session ended", duration=session.duration)

    raise ValidationFailed("Invalid action. Use 'start' or 'end'", field="action")


# ---------------------------------------------------------------------------
# History views
# ---------------------------------------------------------------------------

@router.get("/quiz/history", response_model=QuizHistoryResponse)
async def get_quiz_history(user: CurrentUser, db: DB) -> QuizHistoryResponse:
    return await analytics.quiz_history(db, user.id)


@router.get("/flashcards/mastered", response_model=MasteredFlashcardsResponse)
async def get_mastered_flashcards(user: CurrentUser, db: DB) -> MasteredFlashcardsResponse:
    rows = (await db.execute(
        select(FlashcardPerformance, Flashcard)
        .join(Flashcard, and_(Flashcard.id == FlashcardPerformance.flashcard_id, Flashcard.user_id == user.id))
        .where(FlashcardPerformance.user_id == user.id, FlashcardPerformance.is_known.is_(True))
        .order_by(FlashcardPerformance.reviewed_at.desc())
    )).all()

    documents = await analytics.documents_by_id(db, user.id, (card.document_id for _, card in rows))
    mastered = [
        MasteredFlashcard(
            performance_id=perf.id,
            flashcard_id=card.id,
            question=card.question,
            answer=card.answer,
            document_id=card.document_id,
            document_name=(
                documents[card.document_id].file_name
                if card.document_id in documents else UNKNOWN_DOCUMENT_NAME
            ),
            mastered_at=ensure_utc(perf.reviewed_at),
        )
        for perf, card in rows
    ]
    return MasteredFlashcardsResponse(total=len(mastered), flashcards=mastered)


@router.delete("/flashcards/mastered", response_model=MasteryRemovedResponse)
async def remove_mastery(
    user: CurrentUser,
    db:   DB,
    performanceId: UUID | None = None,
    flashcardId:   UUID | None = None,
) -> MasteryRemovedResponse:
    if performanceId is None and flashcardId is None:
        raise ValidationFailed("performanceId or flashcardId is required")

    stmt = delete(FlashcardPerformance).where(FlashcardPerformance.user_id == user.id)
    if flashcardId is not None:
        stmt = stmt.where(
            FlashcardPerformance.flashcard_id == flashcardId,
            FlashcardPerformance.is_known.is_(True),
        )
    else:
        stmt = stmt.where(FlashcardPerformance.id == performanceId)

    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise NotFound("Mastery record not found or already removed")

    logger.info("Flashcard mastery removed | user=%s count=%d", user.id, result.rowcount)
    return MasteryRemovedResponse(deleted_count=result.rowcount)
