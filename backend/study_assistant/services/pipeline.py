"""
Document Generation Pipeline

Runs one GenerationJob for one Document:

  Phase 1  load job + document, job → running, attempts += 1     (commit)
  Phase 2  source text
             pdf / docx → S3 get_object → extract_text
             youtube    → build_video_context (no extraction)
  Phase 3  fan out the four generators concurrently
             summary, notes     required    (error fails the run)
             flashcards, quiz   best-effort (error → [])
  Phase 4  persist artifacts, document → completed, job → completed (commit)

Terminal status is written exactly once, and only while the document is
still `processing`: the UPDATE is guarded by status = 'processing', so a
redelivered task can never flip a finished document.

Failure policy
──────────────
  Permanent  (extraction failure, missing source object, required generator
              failure on the last attempt)
             → document failed, job failed with the error recorded. Artifacts
               from the generators that did succeed are still persisted.
  Transient  (storage errors, provider errors) while attempts remain
             → job back to queued, document stays processing, the caller
               (the Celery task) schedules a retry.

recover_orphaned_documents() is the Beat-driven counterpart: it finds
jobs that stopped making progress (worker crash, lost message, broker
outage at upload time) and requeues or fails them.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from study_assistant.core.config import settings
from study_assistant.db.session import session_scope
from study_assistant.llm.gateway import LLMGateway, UsageContext
from study_assistant.llm.generators import PIPELINE_GENERATORS, run_generator
from study_assistant.llm.parsing import FlashcardDraft, QuizDraft
from study_assistant.llm.selector import ProviderError
from study_assistant.models import (
    Document,
    Flashcard,
    GenerationJob,
    Note,
    QuizQuestion,
    Summary,
)
from study_assistant.models.base import utcnow
from study_assistant.processing.extractor import (
    ExtractionError,
    build_video_context,
    extract_text,
)
from study_assistant.storage.s3 import S3StorageService

logger = logging.getLogger(__name__)

NOTES_TITLE = "Study Notes"


class GenerationFailure(Exception):
    """
    Base for run failures. `partial` holds the generator results that did
    succeed before a required generator failed; they are persisted when
    the failure is terminal.
    """

    def __init__(self, message: str, partial: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.partial = partial or {}


class PermanentFailure(GenerationFailure):
    """The run cannot succeed on retry."""


class TransientFailure(GenerationFailure):
    """The run may succeed on a later attempt."""


@dataclass
class PipelineOutcome:
    status:      str                 # completed | failed | retry | skipped | not_found
    document_id: uuid.UUID | None = None
    attempts:    int = 0
    error:       str | None = None
    counts:      dict[str, int] = field(default_factory=dict)

    @property
    def should_retry(self) -> bool:
        return self.status == "retry"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class DocumentPipeline:
    """
    Usage::

        pipeline = DocumentPipeline()
        outcome = await pipeline.run(job_id)
        if outcome.should_retry:
            ...  # reschedule
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        storage:         S3StorageService | None = None,
        gateway:         LLMGateway | None = None,
        max_attempts:    int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._storage      = storage or S3StorageService()
        self._gateway      = gateway or LLMGateway()
        self._max_attempts = max_attempts or settings.pipeline_max_attempts

    async def run(self, job_id: uuid.UUID) -> PipelineOutcome:
        # --- Phase 1: claim the job ----------------------------------------
        async with session_scope(self._session_factory) as db:
            job = await db.get(GenerationJob, job_id)
            if job is None:
                logger.error("Generation job not found | job=%s", job_id)
                return PipelineOutcome(status="not_found")

            document = await db.get(Document, job.document_id)
            if document is None:
                logger.error("Document not found | job=%s doc=%s", job_id, job.document_id)
                return PipelineOutcome(status="not_found")

            if document.status != "processing" or job.status in ("completed", "failed"):
                logger.warning(
                    "Job already settled, skipping | job=%s job_status=%s doc_status=%s",
                    job_id, job.status, document.status,
                )
                return PipelineOutcome(
                    status="skipped", document_id=document.id, attempts=job.attempts,
                )

            job.status     = "running"
            job.attempts  += 1
            job.started_at = utcnow()
            attempts = job.attempts

            # Detached snapshot of what the later phases need
            doc_id      = document.id
            user_id     = document.user_id
            file_type   = document.file_type
            s3_key      = document.s3_key
            title       = document.file_name
            video_url   = document.youtube_url
            description = document.youtube_description

        logger.info(
            "Generation start | job=%s doc=%s type=%s attempt=%d",
            job_id, doc_id, file_type, attempts,
        )
        usage = UsageContext(user_id=user_id, document_id=doc_id)

        try:
            # --- Phase 2: source text ----------------------------------------
            if file_type == "youtube":
                text = build_video_context(title, video_url, description)
            else:
                text = await self._extract(s3_key, file_type)

            # --- Phase 3: fan out --------------------------------------------
            results = await self._generate(text, usage)

        except PermanentFailure as exc:
            return await self._fail(job_id, doc_id, user_id, attempts, str(exc), exc.partial)

        except TransientFailure as exc:
            if attempts >= self._max_attempts:
                return await self._fail(
                    job_id, doc_id, user_id, attempts,
                    f"{exc} (after {attempts} attempts)", exc.partial,
                )
            return await self._requeue(job_id, doc_id, attempts, str(exc))

        # --- Phase 4: persist + terminal status ----------------------------
        return await self._complete(job_id, doc_id, user_id, attempts, results)

    # -----------------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------------

    async def _extract(self, s3_key: str | None, file_type: str) -> str:
        if not s3_key:
            raise PermanentFailure("Document has no stored file")
        try:
            data = await self._storage.get_object(s3_key)
        except FileNotFoundError as exc:
            raise PermanentFailure(f"Stored file missing: {s3_key}") from exc
        except Exception as exc:
            raise TransientFailure(f"Storage download failed: {exc}") from exc

        try:
            result = await extract_text(data, file_type)
        except ExtractionError as exc:
            raise PermanentFailure(str(exc)) from exc
        return result.text

    async def _generate(self, text: str, usage: UsageContext) -> dict[str, Any]:
        """Run every generator concurrently; all settle before returning."""
        settled = await asyncio.gather(
            *(run_generator(policy, self._gateway, text, usage) for policy in PIPELINE_GENERATORS),
            return_exceptions=True,
        )

        results: dict[str, Any] = {}
        failures: list[tuple[str, BaseException]] = []
        for policy, outcome in zip(PIPELINE_GENERATORS, settled):
            # only required generators re-raise
            if isinstance(outcome, BaseException):
                failures.append((policy.name, outcome))
            else:
                results[policy.name] = outcome

        if failures:
            name, error = failures[0]
            message = f"{name} generation failed: {error}"
            if all(isinstance(e, ProviderError) for _, e in failures):
                raise TransientFailure(message, partial=results) from error
            raise PermanentFailure(message, partial=results) from error
        return results

    async def _complete(
        self,
        job_id:   uuid.UUID,
        doc_id:   uuid.UUID,
        user_id:  uuid.UUID,
        attempts: int,
        results:  dict[str, Any],
    ) -> PipelineOutcome:
        async with session_scope(self._session_factory) as db:
            claimed = await db.execute(
                update(Document)
                .where(Document.id == doc_id, Document.status == "processing")
                .values(status="completed", updated_at=utcnow())
            )
            if claimed.rowcount == 0:
                logger.warning("Document settled concurrently, discarding run | doc=%s", doc_id)
                await _settle_job(db, job_id, "completed", None)
                return PipelineOutcome(status="skipped", document_id=doc_id, attempts=attempts)

            counts = _add_artifacts(db, doc_id, user_id, results)
            await _settle_job(db, job_id, "completed", None)

        logger.info("Generation complete | job=%s doc=%s counts=%s", job_id, doc_id, counts)
        return PipelineOutcome(
            status="completed", document_id=doc_id, attempts=attempts, counts=counts,
        )

    async def _fail(
        self,
        job_id:   uuid.UUID,
        doc_id:   uuid.UUID,
        user_id:  uuid.UUID,
        attempts: int,
        error:    str,
        partial:  dict[str, Any] | None = None,
    ) -> PipelineOutcome:
        counts: dict[str, int] = {}
        async with session_scope(self._session_factory) as db:
            # artifacts that did generate are kept alongside the failed status
            if await mark_document_failed(db, doc_id) and partial:
                counts = _add_artifacts(db, doc_id, user_id, partial)
            await _settle_job(db, job_id, "failed", error)

        logger.error(
            "Generation failed | job=%s doc=%s attempt=%d kept=%s error=%s",
            job_id, doc_id, attempts, counts, error,
        )
        return PipelineOutcome(
            status="failed", document_id=doc_id, attempts=attempts, error=error, counts=counts,
        )

    async def _requeue(
        self,
        job_id:   uuid.UUID,
        doc_id:   uuid.UUID,
        attempts: int,
        error:    str,
    ) -> PipelineOutcome:
        async with session_scope(self._session_factory) as db:
            job = await db.get(GenerationJob, job_id)
            if job is not None:
                job.status = "queued"
                job.error  = error

        logger.warning(
            "Generation will retry | job=%s doc=%s attempt=%d/%d error=%s",
            job_id, doc_id, attempts, self._max_attempts, error,
        )
        return PipelineOutcome(status="retry", document_id=doc_id, attempts=attempts, error=error)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def mark_document_failed(db: AsyncSession, doc_id: uuid.UUID) -> bool:
    """processing → failed; a no-op for documents already settled."""
    result = await db.execute(
        update(Document)
        .where(Document.id == doc_id, Document.status == "processing")
        .values(status="failed", updated_at=utcnow())
    )
    return result.rowcount > 0


def _add_artifacts(
    db: AsyncSession,
    doc_id: uuid.UUID,
    user_id: uuid.UUID,
    results: dict[str, Any],
) -> dict[str, int]:
    """Stage artifact rows for whatever generators returned; empty text is skipped."""
    summary: str = results.get("summary") or ""
    notes:   str = results.get("notes") or ""
    cards:     list[FlashcardDraft] = results.get("flashcards") or []
    questions: list[QuizDraft]      = results.get("quiz") or []

    if summary:
        db.add(Summary(document_id=doc_id, user_id=user_id, content=summary))
    if notes:
        db.add(Note(document_id=doc_id, user_id=user_id, title=NOTES_TITLE, content=notes))
    db.add_all(
        Flashcard(document_id=doc_id, user_id=user_id, question=c.question, answer=c.answer)
        for c in cards
    )
    db.add_all(
        QuizQuestion(
            document_id=doc_id,
            user_id=user_id,
            question=q.question,
            options=q.options,
            correct_answer=q.correct_answer,
            explanation=q.explanation,
        )
        for q in questions
    )
    return {
        "summary":    int(bool(summary)),
        "notes":      int(bool(notes)),
        "flashcards": len(cards),
        "quiz":       len(questions),
    }


async def _settle_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    status: str,
    error: str | None,
) -> None:
    job = await db.get(GenerationJob, job_id)
    if job is None:
        return
    job.status      = status
    job.error       = error
    job.finished_at = utcnow()


# ---------------------------------------------------------------------------
# Orphan recovery
# ---------------------------------------------------------------------------

async def recover_orphaned_documents(
    publish: Callable[[uuid.UUID], Awaitable[None]],
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    stale_after:  timedelta | None = None,
    max_attempts: int | None = None,
    limit: int = 50,
) -> dict[str, int]:
    """
    Find `processing` documents whose job stopped progressing (queued or
    running, untouched for longer than stale_after). Requeue them while
    attempts remain, otherwise fail the document and the job.

    publish(job_id) is called only after the requeue has been committed.
    """
    stale_after  = stale_after or timedelta(seconds=settings.pipeline_stale_after_s)
    max_attempts = max_attempts or settings.pipeline_max_attempts
    cutoff = utcnow() - stale_after

    requeue_ids: list[uuid.UUID] = []
    failed = 0

    async with session_scope(session_factory) as db:
        rows = await db.execute(
            select(GenerationJob)
            .join(Document, Document.id == GenerationJob.document_id)
            .where(
                Document.status == "processing",
                GenerationJob.status.in_(("queued", "running")),
                GenerationJob.updated_at < cutoff,
            )
            .order_by(GenerationJob.updated_at)
            .limit(limit)
        )
        for job in rows.scalars().all():
            if job.attempts < max_attempts:
                job.status     = "queued"
                job.updated_at = utcnow()
                requeue_ids.append(job.id)
                logger.info(
                    "Requeueing orphaned job | job=%s doc=%s attempts=%d",
                    job.id, job.document_id, job.attempts,
                )
            else:
                await mark_document_failed(db, job.document_id)
                job.status      = "failed"
                job.error       = job.error or f"Abandoned after {job.attempts} attempts"
                job.finished_at = utcnow()
                failed += 1
                logger.warning(
                    "Failing orphaned job | job=%s doc=%s attempts=%d",
                    job.id, job.document_id, job.attempts,
                )

    for job_id in requeue_ids:
        await publish(job_id)

    return {"requeued": len(requeue_ids), "failed": failed}
