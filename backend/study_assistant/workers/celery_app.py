"""
Celery Application Factory

Runs study-material generation off the request path.
Broker: RabbitMQ (amqp://) in production; Redis also works for local dev.
Result backend: Redis (optional; job state lives in generation_jobs).

Queue topology:
  documents.generate  — one message per GenerationJob
  documents.recovery  — Beat-driven orphan scanner

Task payloads carry only the job id. Workers load everything else from the
database and S3.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from study_assistant.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

DOCUMENTS_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "documents.generate",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.generate",
        durable=True,
    ),
    Queue(
        "documents.recovery",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.recovery",
        durable=True,
    ),
)

TASK_ROUTES = {
    "study_assistant.workers.tasks.generate_document_artifacts": {"queue": "documents.generate"},
    "study_assistant.workers.tasks.recover_orphaned_documents":  {"queue": "documents.recovery"},
}

RECOVERY_INTERVAL_S = 60


# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("study_assistant")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="documents.generate",
        task_default_exchange="documents",
        task_default_routing_key="documents.generate",

        # --- Reliability ---
        task_acks_late=True,             # ack only after the run settles
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Retries ---
        task_default_retry_delay=30,     # seconds

        # --- Timeouts ---
        task_soft_time_limit=300,
        task_time_limit=360,

        # --- Result TTL ---
        result_expires=3600,

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        # --- Beat schedule (orphan scanner) ---
        beat_schedule={
            "recover-orphaned-documents": {
                "task":     "study_assistant.workers.tasks.recover_orphaned_documents",
                "schedule": RECOVERY_INTERVAL_S,
                "options":  {"queue": "documents.recovery"},
            },
        },

        # --- Worker ---
        worker_max_tasks_per_child=200,
    )

    app.autodiscover_tasks(["study_assistant.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: task lifecycle logging
# ---------------------------------------------------------------------------

@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s job=%s",
        task_id, task.name, (kwargs or {}).get("job_id", "-"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    doc = retval.get("document_id", "-") if isinstance(retval, dict) else "-"
    logger.info(
        "Task end | task_id=%s task=%s state=%s job=%s doc=%s",
        task_id, task.name, state, (kwargs or {}).get("job_id", "-"), doc,
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s job=%s error=%s",
        task_id, (kwargs or {}).get("job_id", "-"), exception,
        exc_info=True,
    )
