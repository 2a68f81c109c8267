"""
Celery Tasks — Study Material Generation

Task: generate_document_artifacts(job_id)
  Runs DocumentPipeline for one GenerationJob. A transient failure
  (storage or provider) with attempts remaining is retried with backoff;
  everything else settles the document inside the pipeline.

Task: recover_orphaned_documents()
  Beat task — requeues jobs that stopped progressing (worker crash, lost
  message, publish failure at upload time) or fails them once their
  attempts are used up.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from celery import Task

from study_assistant.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Generation task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="study_assistant.workers.tasks.generate_document_artifacts",
    bind=True,
    max_retries=None,          # bounded by GenerationJob.attempts instead
    default_retry_delay=30,
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=270,
    time_limit=330,
)
def generate_document_artifacts(self: Task, *, job_id: str) -> dict[str, Any]:
    outcome = run_async(_generate_async(uuid.UUID(job_id)))

    if outcome.should_retry:
        countdown = 30 * (2 ** max(outcome.attempts - 1, 0))
        logger.info(
            "Scheduling generation retry | job=%s attempt=%d countdown=%ds",
            job_id, outcome.attempts, countdown,
        )
        raise self.retry(countdown=countdown)

    return {
        "status":      outcome.status,
        "document_id": str(outcome.document_id) if outcome.document_id else None,
        "attempts":    outcome.attempts,
        "counts":      outcome.counts,
    }


async def _generate_async(job_id: uuid.UUID):
    from study_assistant.llm.selector import get_model_selector
    from study_assistant.services.pipeline import DocumentPipeline

    # One probe per worker process; later runs reuse the cached model
    selector = get_model_selector()
    if selector.selected_model is None:
        try:
            await selector.initialize()
        except Exception as exc:
            logger.warning("Model probe at task start failed | job=%s error=%s", job_id, exc)

    try:
        return await DocumentPipeline().run(job_id)
    finally:
        await _dispose_engine()


# ---------------------------------------------------------------------------
# Orphan scanner: runs every minute via Celery Beat
# ---------------------------------------------------------------------------

@celery_app.task(
    name="study_assistant.workers.tasks.recover_orphaned_documents",
    bind=False,
    acks_late=True,
    soft_time_limit=55,
    time_limit=60,
)
def recover_orphaned_documents() -> dict[str, int]:
    return run_async(_recover_async())


async def _recover_async() -> dict[str, int]:
    from study_assistant.services import pipeline

    async def publish(job_id: uuid.UUID) -> None:
        generate_document_artifacts.apply_async(kwargs={"job_id": str(job_id)}, countdown=5)

    try:
        result = await pipeline.recover_orphaned_documents(publish)
    finally:
        await _dispose_engine()
    if result["requeued"] or result["failed"]:
        logger.info(
            "Orphan scan | requeued=%d failed=%d", result["requeued"], result["failed"],
        )
    return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _dispose_engine() -> None:
    """Pooled connections belong to this task's event loop; drop them."""
    from study_assistant.db.session import engine

    await engine.dispose()
