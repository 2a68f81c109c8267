"""
Review-record writes.

FlashcardPerformance and QuizPerformance are upserted per (user, item): a
second review of the same card or question overwrites the first. Missed
quiz questions additionally append a WrongAnswer snapshot.

The (user, item) row is created with INSERT ... ON CONFLICT DO NOTHING and
then updated, so two concurrent first reviews of one item settle on a
single row instead of tripping the unique constraint.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.models import (
    FlashcardPerformance,
    QuizPerformance,
    QuizQuestion,
    StudySession,
    WrongAnswer,
)
from study_assistant.models.base import utcnow

logger = logging.getLogger(__name__)


async def _insert_if_absent(
    db: AsyncSession,
    model: type,
    conflict_columns: tuple[str, ...],
    values: dict[str, Any],
) -> None:
    """INSERT the row unless one with the same conflict_columns already exists."""
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    await db.execute(
        insert(model).values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    )


async def record_flashcard_review(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    document_id: uuid.UUID,
    flashcard_id: uuid.UUID,
    is_known: bool,
    time_spent: int | None = None,
) -> FlashcardPerformance:
    await _insert_if_absent(
        db, FlashcardPerformance, ("user_id", "flashcard_id"),
        dict(
            user_id=user_id, flashcard_id=flashcard_id, document_id=document_id,
            is_known=is_known, time_spent=time_spent or 0,
        ),
    )
    perf = await db.scalar(
        select(FlashcardPerformance).where(
            FlashcardPerformance.user_id == user_id,
            FlashcardPerformance.flashcard_id == flashcard_id,
        )
    )

    perf.document_id = document_id
    perf.is_known    = is_known
    perf.reviewed_at = utcnow()
    if time_spent is not None:
        perf.time_spent = time_spent
    await db.flush()
    return perf


async def record_quiz_attempt(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    document_id: uuid.UUID,
    quiz_question_id: uuid.UUID,
    selected_answer: int,
    correct_answer: int,
    time_spent: int | None = None,
) -> QuizPerformance:
    """
    Upsert the attempt. A wrong answer also snapshots the question into
    the error book when the question still exists.
    """
    is_correct = selected_answer == correct_answer

    await _insert_if_absent(
        db, QuizPerformance, ("user_id", "quiz_question_id"),
        dict(
            user_id=user_id, quiz_question_id=quiz_question_id, document_id=document_id,
            selected_answer=selected_answer, correct_answer=correct_answer,
            is_correct=is_correct, time_spent=time_spent or 0,
        ),
    )
    perf = await db.scalar(
        select(QuizPerformance).where(
            QuizPerformance.user_id == user_id,
            QuizPerformance.quiz_question_id == quiz_question_id,
        )
    )

    perf.document_id     = document_id
    perf.selected_answer = selected_answer
    perf.correct_answer  = correct_answer
    perf.is_correct      = is_correct
    perf.time_spent      = time_spent or 0
    perf.attempted_at    = utcnow()

    if not is_correct:
        question = await db.scalar(
            select(QuizQuestion).where(
                QuizQuestion.id == quiz_question_id, QuizQuestion.user_id == user_id,
            )
        )
        if question is not None:
            db.add(WrongAnswer(
                user_id=user_id,
                document_id=document_id,
                quiz_question_id=quiz_question_id,
                question=question.question,
                options=list(question.options or []),
                selected_answer=selected_answer,
                correct_answer=correct_answer,
                explanation=question.explanation,
            ))
        else:
            logger.warning(
                "Wrong answer not recorded, question missing | user=%s question=%s",
                user_id, quiz_question_id,
            )

    await db.flush()
    return perf


async def start_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    document_id: uuid.UUID | None,
    activity_type: str | None,
) -> StudySession:
    session = StudySession(
        user_id=user_id,
        document_id=document_id,
        activity_type=activity_type or "reading",
        start_time=utcnow(),
    )
    db.add(session)
    await db.flush()
    return session


async def end_session(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    duration: int | None,
) -> StudySession | None:
    session = await db.scalar(
        select(StudySession).where(StudySession.id == session_id, StudySession.user_id == user_id)
    )
    if session is None:
        return None
    session.end_time = utcnow()
    session.duration = duration or 0
    await db.flush()
    return session
