"""
Unit Tests — Study analytics and review records
═══════════════════════════════════════════════
Tests for:
  • study_streak / current_streak  — consecutive UTC days back from today
  • summarize_sessions             — minutes, distinct days, monthly average
  • period_start                   — week / month / all
  • group_quiz_history             — per document, per day, newest first
  • collapse_wrong_answers         — latest snapshot + missCount
  • record_quiz_attempt            — upsert, wrong-answer snapshot
  • record_flashcard_review        — upsert per (user, card)
  • _insert_if_absent             — duplicate (user, item) rows are ignored
  • build_overview                 — end-to-end aggregation on SQLite
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from study_assistant.models import (
    Document,
    FlashcardPerformance,
    QuizPerformance,
    QuizQuestion,
    StudySession,
    WrongAnswer,
)
from study_assistant.services.analytics import (
    build_overview,
    collapse_wrong_answers,
    current_streak,
    group_quiz_history,
    period_start,
    study_streak,
    summarize_sessions,
)
from study_assistant.services.performance import (
    _insert_if_absent,
    record_flashcard_review,
    record_quiz_attempt,
)

NOW = datetime(2024, 5, 10, 15, 0, tzinfo=timezone.utc)


def _session(start: datetime, duration: int, activity: str = "reading", user_id=None) -> StudySession:
    return StudySession(
        id=uuid.uuid4(),
        user_id=user_id or uuid.uuid4(),
        activity_type=activity,
        start_time=start,
        duration=duration,
    )


def _attempt(document_id, at: datetime, correct: bool, user_id=None) -> QuizPerformance:
    return QuizPerformance(
        id=uuid.uuid4(),
        user_id=user_id or uuid.uuid4(),
        document_id=document_id,
        quiz_question_id=uuid.uuid4(),
        selected_answer=1 if correct else 0,
        correct_answer=1,
        is_correct=correct,
        time_spent=12,
        attempted_at=at,
    )


def _wrong(question_id, at: datetime, selected: int = 0, document_id=None) -> WrongAnswer:
    return WrongAnswer(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        document_id=document_id or uuid.uuid4(),
        quiz_question_id=question_id,
        question="Which organelle runs photosynthesis?",
        options=["Nucleus", "Chloroplast"],
        selected_answer=selected,
        correct_answer=1,
        attempted_at=at,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Streaks and period reports
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.analytics
class TestStreaks:

    def test_consecutive_days(self):
        today = date(2024, 5, 10)
        days = [today, today - timedelta(days=1), today - timedelta(days=2), today - timedelta(days=4)]
        assert study_streak(days, today) == 3

    def test_duplicates_count_once(self):
        today = date(2024, 5, 10)
        assert study_streak([today, today, today], today) == 1

    def test_no_study_today_breaks_streak(self):
        today = date(2024, 5, 10)
        assert study_streak([today - timedelta(days=1)], today) == 0

    def test_empty(self):
        assert study_streak([], date(2024, 5, 10)) == 0

    async def test_current_streak_from_sessions(self, session_factory, seed, user):
        await seed(
            _session(NOW, 10, user_id=user.id),
            _session(NOW - timedelta(hours=20), 5, user_id=user.id),
            _session(NOW - timedelta(days=1, hours=20), 5, user_id=user.id),
        )
        async with session_factory() as db:
            assert await current_streak(db, user.id, NOW.date()) == 3


@pytest.mark.unit
@pytest.mark.analytics
class TestReports:

    def test_summarize_sessions(self):
        sessions = [
            _session(NOW, 30),
            _session(NOW - timedelta(hours=2), 15),
            _session(NOW - timedelta(days=2), 45),
        ]
        report = summarize_sessions(sessions)
        assert (report.total_minutes, report.days_studied, report.sessions_count) == (90, 2, 3)
        assert report.average_per_day is None

    def test_monthly_average(self):
        sessions = [_session(NOW, 30), _session(NOW - timedelta(days=1), 31)]
        assert summarize_sessions(sessions, with_average=True).average_per_day == 30

    def test_empty_average_is_zero(self):
        assert summarize_sessions([], with_average=True).average_per_day == 0

    @pytest.mark.parametrize("period,expected", [
        ("week", NOW - timedelta(days=7)),
        ("month", NOW - timedelta(days=30)),
        ("all", None),
    ])
    def test_period_start(self, period, expected):
        assert period_start(period, NOW) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Quiz history grouping
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.analytics
class TestQuizHistory:

    def test_grouped_by_document_and_day(self):
        bio, chem = uuid.uuid4(), uuid.uuid4()
        documents = {
            bio: Document(id=bio, user_id=uuid.uuid4(), file_name="biology.pdf", original_name="biology.pdf",
                          file_type="pdf", status="completed"),
        }
        attempts = [
            _attempt(chem, NOW, True),
            _attempt(bio, NOW - timedelta(days=1), True),
            _attempt(bio, NOW - timedelta(days=1, hours=1), False),
            _attempt(bio, NOW - timedelta(days=3), True),
        ]

        history = group_quiz_history(attempts, documents)

        assert history.total_documents == 2
        assert history.total_attempts == 4
        assert history.total_correct == 3
        assert history.overall_accuracy == 75

        # chem has the newest day, so it sorts first; it was deleted
        first, second = history.documents
        assert first.document.id == chem
        assert first.document.file_name == "[Document Deleted]"
        assert first.document.file_type == "unknown"

        assert second.document.file_name == "biology.pdf"
        assert [d.date for d in second.sessions] == ["2024-05-09", "2024-05-07"]
        assert (second.sessions[0].total, second.sessions[0].correct, second.sessions[0].score) == (2, 1, 50)
        assert second.overall_accuracy == 67

    def test_empty_history(self):
        history = group_quiz_history([], {})
        assert history.documents == []
        assert history.overall_accuracy == 0


# ─────────────────────────────────────────────────────────────────────────────
# Error book collapse
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.analytics
class TestCollapseWrongAnswers:

    def test_latest_snapshot_with_miss_count(self):
        q1, q2 = uuid.uuid4(), uuid.uuid4()
        rows = [
            _wrong(q1, NOW, selected=3),
            _wrong(q2, NOW - timedelta(hours=1)),
            _wrong(q1, NOW - timedelta(days=1), selected=0),
        ]

        collapsed = collapse_wrong_answers(rows)

        assert [w.quiz_question_id for w in collapsed] == [q1, q2]
        assert collapsed[0].miss_count == 2
        assert collapsed[0].selected_answer == 3
        assert collapsed[1].miss_count == 1

    def test_serialized_with_camel_case(self):
        out = collapse_wrong_answers([_wrong(uuid.uuid4(), NOW)])[0].model_dump(by_alias=True)
        assert {"quizQuestionId", "selectedAnswer", "correctAnswer", "missCount"} <= set(out)


# ─────────────────────────────────────────────────────────────────────────────
# Review record writes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.analytics
class TestReviewRecords:

    @pytest_asyncio.fixture
    async def question(self, seed, user):
        doc = Document(id=uuid.uuid4(), user_id=user.id, file_name="bio.pdf", original_name="bio.pdf",
                       file_type="pdf", status="completed")
        q = QuizQuestion(id=uuid.uuid4(), document_id=doc.id, user_id=user.id,
                         question="Which organelle?", options=["Nucleus", "Chloroplast"],
                         correct_answer=1, explanation="Chlorophyll lives there.")
        await seed(doc)
        await seed(q)
        return q

    async def test_wrong_attempt_snapshots_question(self, session_factory, user, question):
        async with session_factory() as db:
            perf = await record_quiz_attempt(
                db, user_id=user.id, document_id=question.document_id,
                quiz_question_id=question.id, selected_answer=0, correct_answer=1, time_spent=20,
            )
            await db.commit()
        assert perf.is_correct is False

        async with session_factory() as db:
            wrong = await db.scalar(select(WrongAnswer))
        assert wrong.question == "Which organelle?"
        assert wrong.options == ["Nucleus", "Chloroplast"]
        assert wrong.explanation == "Chlorophyll lives there."

    async def test_second_attempt_overwrites(self, session_factory, user, question):
        for selected in (0, 1):
            async with session_factory() as db:
                await record_quiz_attempt(
                    db, user_id=user.id, document_id=question.document_id,
                    quiz_question_id=question.id, selected_answer=selected, correct_answer=1,
                )
                await db.commit()

        async with session_factory() as db:
            rows = (await db.scalars(select(QuizPerformance))).all()
            wrong_count = await db.scalar(select(func.count()).select_from(WrongAnswer))
        assert len(rows) == 1
        assert rows[0].is_correct is True
        assert wrong_count == 1

    async def test_missing_question_records_attempt_only(self, session_factory, user):
        async with session_factory() as db:
            await record_quiz_attempt(
                db, user_id=user.id, document_id=uuid.uuid4(),
                quiz_question_id=uuid.uuid4(), selected_answer=2, correct_answer=1,
            )
            await db.commit()
            assert await db.scalar(select(func.count()).select_from(WrongAnswer)) == 0

    async def test_flashcard_review_upsert(self, session_factory, user):
        card_id, doc_id = uuid.uuid4(), uuid.uuid4()
        for is_known in (False, True):
            async with session_factory() as db:
                await record_flashcard_review(
                    db, user_id=user.id, document_id=doc_id, flashcard_id=card_id, is_known=is_known,
                )
                await db.commit()

        async with session_factory() as db:
            rows = (await db.scalars(select(FlashcardPerformance))).all()
        assert len(rows) == 1
        assert rows[0].is_known is True

    async def test_duplicate_insert_is_ignored(self, session_factory, user):
        card_id, doc_id = uuid.uuid4(), uuid.uuid4()
        values = dict(user_id=user.id, flashcard_id=card_id, document_id=doc_id, is_known=False, time_spent=0)

        async with session_factory() as db:
            await _insert_if_absent(db, FlashcardPerformance, ("user_id", "flashcard_id"), values)
            await _insert_if_absent(db, FlashcardPerformance, ("user_id", "flashcard_id"), values)
            await db.commit()
            assert await db.scalar(select(func.count()).select_from(FlashcardPerformance)) == 1

    async def test_row_created_by_concurrent_request_is_updated(self, session_factory, seed, user, question):
        async with session_factory() as db:
            await seed(QuizPerformance(
                user_id=user.id, document_id=question.document_id, quiz_question_id=question.id,
                selected_answer=0, correct_answer=1, is_correct=False,
            ))
            perf = await record_quiz_attempt(
                db, user_id=user.id, document_id=question.document_id,
                quiz_question_id=question.id, selected_answer=1, correct_answer=1,
            )
            await db.commit()
        assert perf.is_correct is True

        async with session_factory() as db:
            rows = (await db.scalars(select(QuizPerformance))).all()
        assert len(rows) == 1
        assert rows[0].selected_answer == 1


# ─────────────────────────────────────────────────────────────────────────────
# Overview
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.analytics
class TestBuildOverview:

    async def test_week_overview(self, session_factory, seed, user, other_user):
        doc_id = uuid.uuid4()
        await seed(
            _session(NOW - timedelta(hours=1), 30, "flashcards", user_id=user.id),
            _session(NOW - timedelta(days=1), 20, "quiz", user_id=user.id),
            _session(NOW - timedelta(days=20), 60, "reading", user_id=user.id),
            _session(NOW, 99, "reading", user_id=other_user.id),
            _attempt(doc_id, NOW - timedelta(days=1), True, user_id=user.id),
            _attempt(doc_id, NOW - timedelta(days=1), False, user_id=user.id),
            FlashcardPerformance(user_id=user.id, document_id=doc_id, flashcard_id=uuid.uuid4(),
                                 is_known=True, reviewed_at=NOW - timedelta(days=2)),
        )

        async with session_factory() as db:
            overview = await build_overview(db, user.id, "week", now=NOW)

        assert overview.period == "week"
        assert overview.study_time.total == 50
        assert overview.study_time.by_activity == {"flashcards": 30, "quiz": 20}
        assert [d.date for d in overview.study_time.daily] == ["2024-05-09", "2024-05-10"]
        assert overview.streaks.current == 2
        assert (overview.quiz.total, overview.quiz.correct, overview.quiz.accuracy) == (2, 1, 50.0)
        assert overview.quiz.by_document[0].document_id == doc_id
        assert (overview.flashcards.total, overview.flashcards.known) == (1, 1)
        assert overview.reports.weekly.total_minutes == 50
        assert overview.reports.monthly.total_minutes == 110
        assert overview.reports.monthly.average_per_day == 37

    async def test_all_time_with_no_data(self, session_factory, user):
        async with session_factory() as db:
            overview = await build_overview(db, user.id, "all", now=NOW)
        assert overview.study_time.total == 0
        assert overview.quiz.accuracy == 0
        assert overview.streaks.current == 0
