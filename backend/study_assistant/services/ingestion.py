"""
Document Ingestion Service

Orchestrates both ways a Document comes into existence:

  File upload (POST /api/documents)
    1. Validate extension (.pdf / .docx) and size (≤ 50 MB)
    2. Upload bytes to S3 under documents/<uuid>-<name>
    3. Extract text once as an admission check (empty → 400)
    4. Insert Document(status=processing) + GenerationJob(queued)
    5. Commit, then publish the generation task to Celery
    6. Return 201 {message, document{id, fileName, status}}

  YouTube submission (POST /api/youtube)
    1. Required fields, daily quota (3 / UTC day), duration cap
    2. Same video already added by this user → 409
    3. Insert Document(file_type=youtube, status=processing) + GenerationJob
    4. Commit, publish

Invariants enforced here:
  - user_id always comes from the authenticated user, never the body.
  - S3 keys are built server-side; the client filename is sanitized.
  - The task is published only after the rows are committed, so the worker
    can always see them. A failed publish is logged and left to the
    recovery scanner, which picks up stale queued jobs.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.config import settings
from study_assistant.core.errors import (
    Conflict,
    NotFound,
    PayloadTooLarge,
    RateLimited,
    ValidationFailed,
)
from study_assistant.models import Document, Folder, GenerationJob, User
from study_assistant.processing.extractor import ExtractionError, extract_text
from study_assistant.schemas.documents import (
    ALLOWED_EXTENSIONS,
    CONTENT_TYPES,
    MAX_FILE_SIZE_BYTES,
    DocumentRef,
    DocumentUploadResponse,
    ProcessingStatus,
    YouTubeDocumentOut,
    YouTubeSubmitRequest,
    YouTubeSubmitResponse,
)
from study_assistant.services.youtube import format_duration, todays_video_count
from study_assistant.storage.s3 import S3StorageService, document_key

logger = logging.getLogger(__name__)


def _get_extension(filename: str) -> str:
    """Return lowercased file extension including the dot."""
    parts = filename.rsplit(".", 1)
    return f".{parts[-1].lower()}" if len(parts) == 2 else ""


def _basename(filename: str) -> str:
    return filename.replace("\\", "/").rsplit("/", 1)[-1].strip()


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    One instance per request. All collaborators are injected so routes
    and tests can swap them.
    """

    def __init__(
        self,
        db:        AsyncSession,
        storage:   S3StorageService,
        user:      User,
        publisher: "TaskPublisher",
    ) -> None:
        self._db        = db
        self._storage   = storage
        self._user      = user
        self._publisher = publisher

    # ------------------------------------------------------------------
    # File upload
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        file:      UploadFile | None,
        folder_id: uuid.UUID | None = None,
    ) -> DocumentUploadResponse:
        filename = _basename(file.filename or "") if file is not None else ""
        if not filename:
            raise ValidationFailed("No file provided", field="file")

        ext = _get_extension(filename)
        file_type = ALLOWED_EXTENSIONS.get(ext)
        if file_type is None:
            raise ValidationFailed("Only PDF and DOCX files are supported", field="file")

        data = await self._read_upload(file)

        if folder_id is not None:
            await self._require_folder(folder_id)

        # ---- Store bytes -----------------------------------------------
        key = document_key(filename)
        stored = await self._storage.put_object(key, data, CONTENT_TYPES[file_type])

        # ---- Admission check: the file must yield text ------------------
        try:
            await extract_text(data, file_type)
        except ExtractionError as exc:
            logger.warning(
                "Upload rejected, no extractable text | user=%s file=%s error=%s",
                self._user.id, filename, exc,
            )
            await self._discard_object(key)
            raise ValidationFailed("Could not extract text from file", field="file") from exc

        # ---- Persist + publish -----------------------------------------
        doc = Document(
            user_id=self._user.id,
            folder_id=folder_id,
            file_name=filename,
            original_name=file.filename or filename,
            file_type=file_type,
            file_size=len(data),
            s3_key=stored.key,
            s3_url=stored.url,
            status=ProcessingStatus.PROCESSING.value,
        )
        job = await self._create_with_job(doc)

        logger.info(
            "Document uploaded | user=%s doc=%s type=%s size=%d",
            self._user.id, doc.id, file_type, len(data),
        )
        await self._publish(job.id, doc.id)

        return DocumentUploadResponse(
            document=DocumentRef(id=doc.id, file_name=doc.file_name, status=doc.status),
        )

    # ------------------------------------------------------------------
    # YouTube submission
    # ------------------------------------------------------------------

    async def submit_youtube(self, body: YouTubeSubmitRequest) -> YouTubeSubmitResponse:
        if not body.video_id or not body.url or not body.title:
            raise ValidationFailed("Missing required fields: videoId, url, title")

        daily_limit = settings.youtube_daily_limit
        used = await todays_video_count(self._db, self._user.id)
        if used >= daily_limit:
            raise RateLimited(
                f"You have used all {daily_limit} YouTube videos for today.",
                extra={"dailyLimit": daily_limit, "remaining": 0},
            )

        max_duration = settings.youtube_max_duration_s
        if body.duration and body.duration > max_duration:
            raise ValidationFailed(
                "Video exceeds maximum duration limit",
                extra={
                    "duration":             body.duration,
                    "maxDuration":          max_duration,
                    "maxDurationFormatted": format_duration(max_duration),
                },
            )

        existing = await self._db.execute(
            select(Document.id).where(
                Document.user_id == self._user.id,
                Document.youtube_video_id == body.video_id,
            )
        )
        existing_id = existing.scalars().first()
        if existing_id is not None:
            raise Conflict(
                "You have already added this YouTube video.",
                extra={"documentId": str(existing_id)},
            )

        doc = Document(
            user_id=self._user.id,
            file_name=body.title,
            original_name=body.title,
            file_type="youtube",
            file_size=0,
            youtube_url=body.url,
            youtube_video_id=body.video_id,
            youtube_thumbnail=body.thumbnail,
            youtube_description=body.description,
            video_duration=body.duration,
            youtube_category=body.category_id,
            is_educational=body.is_educational is not False,
            status=ProcessingStatus.PROCESSING.value,
        )
        job = await self._create_with_job(doc)

        logger.info("YouTube document created | user=%s doc=%s video=%s", self._user.id, doc.id, body.video_id)
        await self._publish(job.id, doc.id)

        return YouTubeSubmitResponse(
            document=YouTubeDocumentOut.model_validate(doc),
            remaining=daily_limit - used - 1,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _read_upload(self, file: UploadFile) -> bytes:
        """Read the upload into memory with a hard size ceiling."""
        data = await file.read()
        if not data:
            raise ValidationFailed("No file provided", field="file")
        if len(data) > MAX_FILE_SIZE_BYTES:
            raise PayloadTooLarge(
                f"File exceeds the {MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB limit",
                field="file",
            )
        return data

    async def _require_folder(self, folder_id: uuid.UUID) -> None:
        folder = await self._db.scalar(
            select(Folder.id).where(Folder.id == folder_id, Folder.user_id == self._user.id)
        )
        if folder is None:
            raise NotFound("Folder not found")

    async def _create_with_job(self, doc: Document) -> GenerationJob:
        self._db.add(doc)
        await self._db.flush()   # assigns doc.id
        job = GenerationJob(document_id=doc.id, status="queued")
        self._db.add(job)
        await self._db.flush()
        # Committed before publishing: the worker reads these rows
        await self._db.commit()
        return job

    async def _publish(self, job_id: uuid.UUID, doc_id: uuid.UUID) -> None:
        try:
            await self._publisher.publish_generation_task(job_id)
        except Exception as exc:
            # Non-fatal: the job stays queued and the recovery scanner
            # republishes it once it goes stale.
            logger.error(
                "Failed to publish generation task | doc=%s job=%s error=%s",
                doc_id, job_id, exc,
            )

    async def _discard_object(self, key: str) -> None:
        try:
            await self._storage.delete_object(key)
        except Exception as exc:
            logger.warning("Failed to remove rejected upload | key=%s error=%s", key, exc)


# ---------------------------------------------------------------------------
# Task publisher: thin abstraction over Celery apply_async()
# Injected into IngestionService and the routes so tests can replace it.
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Sends generation tasks to the Celery broker.
    The tasks module is imported lazily so the API process does not need a
    broker connection at import time.
    """

    async def publish_generation_task(self, job_id: uuid.UUID) -> None:
        """Runs apply_async in a thread executor; the broker client blocks."""
        from study_assistant.workers.tasks import generate_document_artifacts

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: generate_document_artifacts.apply_async(
                kwargs={"job_id": str(job_id)},
            ),
        )
        logger.info("Generation task published | job=%s", job_id)


def get_task_publisher() -> TaskPublisher:
    """FastAPI dependency; overridden in tests."""
    return TaskPublisher()
