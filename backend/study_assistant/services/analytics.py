"""
Study analytics — read-side aggregation over review history.

The grouping helpers take plain rows and a document lookup so they can be
exercised without a database; the async functions fetch and delegate.

Day boundaries are UTC calendar days throughout. Study time is stored in
minutes (StudySession.duration), attempt time in seconds.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.models import (
    Document,
    FlashcardPerformance,
    QuizPerformance,
    StudySession,
    WrongAnswer,
)
from study_assistant.models.base import ensure_utc, utcnow
from study_assistant.schemas.study import (
    DELETED_DOCUMENT_NAME,
    AnalyticsResponse,
    DailyStudyTime,
    DocumentAccuracy,
    DocumentHistory,
    ErrorBookDocument,
    ErrorBookEntry,
    FlashcardStatsOut,
    HistoryAttempt,
    HistoryDay,
    HistoryDocument,
    PeriodReport,
    QuizHistoryResponse,
    QuizStatsOut,
    ReportsOut,
    StreaksOut,
    StudyTimeOut,
    WrongAnswerOut,
)

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"week": 7, "month": 30}
STREAK_SESSION_WINDOW = 30


def _day(value: datetime) -> date:
    return ensure_utc(value).date()


def _percent(part: int, whole: int, ndigits: int | None = 2) -> float:
    if whole == 0:
        return 0
    return round(part / whole * 100, ndigits)


def period_start(period: str, now: datetime | None = None) -> datetime | None:
    """Lower bound for `period`; None means all time."""
    days = PERIOD_DAYS.get(period)
    if days is None:
        return None
    return (now or utcnow()) - timedelta(days=days)


# ---------------------------------------------------------------------------
# Streaks and reports
# ---------------------------------------------------------------------------

def study_streak(study_days: Iterable[date], today: date) -> int:
    """Consecutive days with study activity, counted back from today."""
    days = set(study_days)
    streak = 0
    current = today
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


async def current_streak(db: AsyncSession, user_id: uuid.UUID, today: date | None = None) -> int:
    starts = (await db.scalars(
        select(StudySession.start_time)
        .where(StudySession.user_id == user_id)
        .order_by(StudySession.start_time.desc())
        .limit(STREAK_SESSION_WINDOW)
    )).all()
    return study_streak((_day(s) for s in starts), today or utcnow().date())


def summarize_sessions(sessions: Sequence[StudySession], *, with_average: bool = False) -> PeriodReport:
    total = sum(s.duration or 0 for s in sessions)
    days_studied = len({_day(s.start_time) for s in sessions})
    return PeriodReport(
        total_minutes=total,
        days_studied=days_studied,
        sessions_count=len(sessions),
        average_per_day=(round(total / days_studied) if days_studied else 0) if with_average else None,
    )


async def _sessions_since(db: AsyncSession, user_id: uuid.UUID, since: datetime | None) -> list[StudySession]:
    stmt = select(StudySession).where(StudySession.user_id == user_id)
    if since is not None:
        stmt = stmt.where(StudySession.start_time >= since)
    return list((await db.scalars(stmt.order_by(StudySession.start_time.desc()))).all())


def _report_start(days: int, now: datetime) -> datetime:
    start = now - timedelta(days=days)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


# ---------------------------------------------------------------------------
# GET /analytics
# ---------------------------------------------------------------------------

async def build_overview(
    db: AsyncSession,
    user_id: uuid.UUID,
    period: str,
    now: datetime | None = None,
) -> AnalyticsResponse:
    now = now or utcnow()
    since = period_start(period, now)

    sessions = await _sessions_since(db, user_id, since)
    by_activity: dict[str, int] = defaultdict(int)
    daily: dict[str, int] = defaultdict(int)
    for s in sessions:
        by_activity[s.activity_type] += s.duration or 0
        daily[_day(s.start_time).isoformat()] += s.duration or 0

    quiz_stmt = select(QuizPerformance).where(QuizPerformance.user_id == user_id)
    card_stmt = select(FlashcardPerformance).where(FlashcardPerformance.user_id == user_id)
    if since is not None:
        quiz_stmt = quiz_stmt.where(QuizPerformance.attempted_at >= since)
        card_stmt = card_stmt.where(FlashcardPerformance.reviewed_at >= since)
    quiz_rows = (await db.scalars(quiz_stmt)).all()
    card_rows = (await db.scalars(card_stmt)).all()

    per_doc: dict[uuid.UUID, list[int]] = defaultdict(lambda: [0, 0])
    for q in quiz_rows:
        per_doc[q.document_id][0] += 1
        per_doc[q.document_id][1] += int(q.is_correct)
    quiz_correct = sum(1 for q in quiz_rows if q.is_correct)
    known = sum(1 for c in card_rows if c.is_known)

    weekly_sessions  = await _sessions_since(db, user_id, _report_start(7, now))
    monthly_sessions = await _sessions_since(db, user_id, _report_start(30, now))

    return AnalyticsResponse(
        period=period,
        study_time=StudyTimeOut(
            total=sum(s.duration or 0 for s in sessions),
            by_activity=dict(by_activity),
            daily=[DailyStudyTime(date=d, total_minutes=m) for d, m in sorted(daily.items())],
        ),
        streaks=StreaksOut(current=await current_streak(db, user_id, now.date())),
        quiz=QuizStatsOut(
            total=len(quiz_rows),
            correct=quiz_correct,
            accuracy=_percent(quiz_correct, len(quiz_rows)),
            by_document=[
                DocumentAccuracy(
                    document_id=doc_id, total=total, correct=correct,
                    accuracy=_percent(correct, total),
                )
                for doc_id, (total, correct) in per_doc.items()
            ],
        ),
        flashcards=FlashcardStatsOut(
            total=len(card_rows),
            known=known,
            accuracy=_percent(known, len(card_rows)),
        ),
        reports=ReportsOut(
            weekly=summarize_sessions(weekly_sessions),
            monthly=summarize_sessions(monthly_sessions, with_average=True),
        ),
    )


# ---------------------------------------------------------------------------
# Document lookups with a deleted-document fallback
# ---------------------------------------------------------------------------

async def documents_by_id(
    db: AsyncSession, user_id: uuid.UUID, ids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, Document]:
    """The caller's documents among ids; others (deleted or foreign) are absent."""
    ids = set(ids)
    if not ids:
        return {}
    docs = (await db.scalars(
        select(Document).where(Document.id.in_(ids), Document.user_id == user_id)
    )).all()
    return {d.id: d for d in docs}


# ---------------------------------------------------------------------------
# GET /analytics/quiz/history
# ---------------------------------------------------------------------------

def group_quiz_history(
    attempts: Sequence[QuizPerformance],
    documents: Mapping[uuid.UUID, Document],
) -> QuizHistoryResponse:
    """
    Attempts grouped by document, then by UTC day. Days are newest first;
    documents are ordered by their latest day.
    """
    grouped: dict[uuid.UUID, DocumentHistory] = {}
    days: dict[tuple[uuid.UUID, str], HistoryDay] = {}

    for attempt in attempts:
        doc = documents.get(attempt.document_id)
        entry = grouped.get(attempt.document_id)
        if entry is None:
            entry = grouped[attempt.document_id] = DocumentHistory(
                document=HistoryDocument(
                    id=attempt.document_id,
                    file_name=doc.file_name if doc else DELETED_DOCUMENT_NAME,
                    file_type=doc.file_type if doc else "unknown",
                ),
            )

        key = (attempt.document_id, _day(attempt.attempted_at).isoformat())
        day = days.get(key)
        if day is None:
            day = days[key] = HistoryDay(date=key[1])
            entry.sessions.append(day)

        day.questions.append(HistoryAttempt(
            id=attempt.id,
            is_correct=attempt.is_correct,
            time_spent=attempt.time_spent or 0,
            attempted_at=ensure_utc(attempt.attempted_at),
        ))
        day.total += 1
        day.correct += int(attempt.is_correct)
        entry.total_attempts += 1
        entry.total_correct += int(attempt.is_correct)

    for entry in grouped.values():
        entry.sessions.sort(key=lambda d: d.date, reverse=True)
        for day in entry.sessions:
            day.score = int(_percent(day.correct, day.total, None))
        entry.overall_accuracy = int(_percent(entry.total_correct, entry.total_attempts, None))

    result = sorted(
        grouped.values(),
        key=lambda e: e.sessions[0].date if e.sessions else "",
        reverse=True,
    )
    total_attempts = sum(e.total_attempts for e in result)
    total_correct  = sum(e.total_correct for e in result)
    return QuizHistoryResponse(
        documents=result,
        total_documents=len(result),
        total_attempts=total_attempts,
        total_correct=total_correct,
        overall_accuracy=int(_percent(total_correct, total_attempts, None)),
    )


async def quiz_history(db: AsyncSession, user_id: uuid.UUID) -> QuizHistoryResponse:
    attempts = (await db.scalars(
        select(QuizPerformance)
        .where(QuizPerformance.user_id == user_id)
        .order_by(QuizPerformance.attempted_at.desc())
    )).all()
    documents = await documents_by_id(db, user_id, (a.document_id for a in attempts))
    return group_quiz_history(attempts, documents)


# ---------------------------------------------------------------------------
# Error book
# ---------------------------------------------------------------------------

def error_book_document(document_id: uuid.UUID, doc: Document | None) -> ErrorBookDocument:
    if doc is None:
        return ErrorBookDocument(
            id=document_id, file_name=DELETED_DOCUMENT_NAME, file_type="unknown", is_deleted=True,
        )
    return ErrorBookDocument(
        id=doc.id,
        file_name=doc.file_name,
        file_type=doc.file_type,
        uploaded_at=ensure_utc(doc.uploaded_at),
    )


def collapse_wrong_answers(rows: Sequence[WrongAnswer]) -> list[WrongAnswerOut]:
    """
    One entry per missed question: the latest snapshot, with missCount
    holding how many times it was missed. `rows` must be newest first.
    """
    latest: dict[uuid.UUID, WrongAnswerOut] = {}
    for row in rows:
        existing = latest.get(row.quiz_question_id)
        if existing is not None:
            existing.miss_count += 1
            continue
        latest[row.quiz_question_id] = WrongAnswerOut(
            id=row.id,
            quiz_question_id=row.quiz_question_id,
            question=row.question,
            options=list(row.options or []),
            selected_answer=row.selected_answer,
            correct_answer=row.correct_answer,
            explanation=row.explanation,
            attempted_at=ensure_utc(row.attempted_at),
        )
    return list(latest.values())


def group_wrong_answers(
    rows: Sequence[WrongAnswer],
    documents: Mapping[uuid.UUID, Document],
) -> list[ErrorBookEntry]:
    by_doc: dict[uuid.UUID, list[WrongAnswer]] = {}
    for row in rows:
        by_doc.setdefault(row.document_id, []).append(row)

    return [
        ErrorBookEntry(
            document=error_book_document(doc_id, documents.get(doc_id)),
            wrong_answers=collapse_wrong_answers(doc_rows),
        )
        for doc_id, doc_rows in by_doc.items()
    ]


async def wrong_answers_for(
    db: AsyncSession,
    user_id: uuid.UUID,
    document_id: uuid.UUID | None = None,
) -> list[WrongAnswer]:
    stmt = select(WrongAnswer).where(WrongAnswer.user_id == user_id)
    if document_id is not None:
        stmt = stmt.where(WrongAnswer.document_id == document_id)
    return list((await db.scalars(stmt.order_by(WrongAnswer.attempted_at.desc()))).all())
