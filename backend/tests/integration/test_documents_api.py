"""
Integration Tests — /api/documents
══════════════════════════════════
These tests exercise the FULL FastAPI routing stack, including:
  - Multipart form parsing (file + folderId)
  - Real session-token auth and owner scoping
  - camelCase response bodies
  - The ErrorResponse envelope on failures

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, request parsing, Pydantic schemas, JWT auth,
           SQLAlchemy queries (in-memory SQLite), IngestionService
  🔲 Mock: S3 storage        (mock_storage fixture)
  🔲 Mock: LLM gateway       (mock_gateway fixture)
  🔲 Mock: Celery broker     (mock_publisher fixture)
  🔲 Mock: text extraction   (patched extract_text)

How to run
──────────
  pytest -m integration backend/tests/integration/test_documents_api.py -v
"""

from __future__ import annotations

import io
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from study_assistant.models import (
    Document,
    Flashcard,
    Folder,
    GenerationJob,
    Note,
    QuizQuestion,
    Summary,
)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _document(owner, **overrides) -> Document:
    fields = dict(
        id=uuid.uuid4(),
        user_id=owner.id,
        file_name="biology.pdf",
        original_name="biology.pdf",
        file_type="pdf",
        file_size=1024,
        s3_key=f"documents/{uuid.uuid4().hex}-biology.pdf",
        status="completed",
    )
    fields.update(overrides)
    return Document(**fields)


def _upload(filename: str, content: bytes, content_type: str = "application/octet-stream"):
    return [("file", (filename, io.BytesIO(content), content_type))]


@pytest.fixture
def patched_upload_extract(extraction_result):
    with patch(
        "study_assistant.services.ingestion.extract_text",
        new=AsyncMock(return_value=extraction_result()),
    ) as mocked:
        yield mocked


# ─────────────────────────────────────────────────────────────────────────────
# Upload
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
@pytest.mark.ingestion
class TestUploadEndpoint:
    """
    POST /api/documents
    ───────────────────
    multipart `file` (+ optional `folderId`); 201 with the new document.
    """

    async def test_upload_pdf_returns_201(self, async_client, auth_headers, session_factory,
                                          patched_upload_extract, sample_pdf_bytes, mock_publisher):
        resp = await async_client.post(
            "/api/documents",
            files=_upload("lecture.pdf", sample_pdf_bytes, "application/pdf"),
            headers=auth_headers,
        )

        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert set(body) == {"message", "document"}
        assert body["message"] == "File uploaded successfully"
        assert body["document"]["fileName"] == "lecture.pdf"
        assert body["document"]["status"] == "processing"

        async with session_factory() as check:
            job = await check.scalar(
                select(GenerationJob).where(GenerationJob.document_id == uuid.UUID(body["document"]["id"]))
            )
        assert job.status == "queued"
        mock_publisher.publish_generation_task.assert_awaited_once_with(job.id)

    async def test_upload_into_folder(self, async_client, auth_headers, seed, user, session_factory,
                                      patched_upload_extract, sample_pdf_bytes):
        folder = Folder(id=uuid.uuid4(), user_id=user.id, name="Biology")
        await seed(folder)

        resp = await async_client.post(
            "/api/documents",
            files=_upload("lecture.pdf", sample_pdf_bytes),
            data={"folderId": str(folder.id)},
            headers=auth_headers,
        )

        assert resp.status_code == 201, resp.text
        async with session_factory() as check:
            doc = await check.get(Document, uuid.UUID(resp.json()["document"]["id"]))
        assert doc.folder_id == folder.id

    async def test_unsupported_type_returns_400(self, async_client, auth_headers, mock_storage):
        resp = await async_client.post(
            "/api/documents",
            files=_upload("notes.txt", b"plain text"),
            headers=auth_headers,
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["error_code"] == "VALIDATION_FAILED"
        assert body["message"] == "Only PDF and DOCX files are supported"
        assert body["details"][0]["field"] == "file"
        assert body["request_id"]
        mock_storage.put_object.assert_not_awaited()

    async def test_missing_file_returns_400(self, async_client, auth_headers):
        resp = await async_client.post("/api/documents", data={"folderId": ""}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["message"] == "No file provided"

    async def test_requires_authentication(self, async_client, sample_pdf_bytes):
        resp = await async_client.post("/api/documents", files=_upload("a.pdf", sample_pdf_bytes))
        assert resp.status_code == 401
        assert resp.json()["error_code"] == "UNAUTHORIZED"

    async def test_upload_rate_limit(self, async_client, auth_headers, patched_upload_extract, sample_pdf_bytes):
        for _ in range(10):
            ok = await async_client.post(
                "/api/documents", files=_upload("a.pdf", sample_pdf_bytes), headers=auth_headers,
            )
            assert ok.status_code == 201

        resp = await async_client.post(
            "/api/documents", files=_upload("a.pdf", sample_pdf_bytes), headers=auth_headers,
        )

        assert resp.status_code == 429
        body = resp.json()
        assert body["error"] == "Too many requests"
        assert 1 <= body["retryAfter"] <= 60
        assert resp.headers["x-ratelimit-limit"] == "10"
        assert resp.headers["x-ratelimit-remaining"] == "0"
        assert "retry-after" in resp.headers


# ─────────────────────────────────────────────────────────────────────────────
# Listing and detail
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestReadEndpoints:

    async def test_list_is_scoped_to_owner(self, async_client, auth_headers, seed, user, other_user):
        mine = _document(user)
        await seed(mine, _document(other_user, file_name="theirs.pdf"))

        resp = await async_client.get("/api/documents", headers=auth_headers)

        assert resp.status_code == 200
        docs = resp.json()["documents"]
        assert [d["id"] for d in docs] == [str(mine.id)]
        assert {"fileName", "fileType", "status", "folderId", "uploadedAt"} <= set(docs[0])

    async def test_list_newest_first(self, async_client, auth_headers, seed, user):
        now = datetime.now(timezone.utc)
        older = _document(user, file_name="older.pdf", uploaded_at=now - timedelta(days=1))
        newer = _document(user, file_name="newer.pdf", uploaded_at=now)
        await seed(older, newer)

        resp = await async_client.get("/api/documents", headers=auth_headers)

        assert [d["fileName"] for d in resp.json()["documents"]] == ["newer.pdf", "older.pdf"]

    async def test_list_filters_by_folder(self, async_client, auth_headers, seed, user):
        folder = Folder(id=uuid.uuid4(), user_id=user.id, name="Chemistry")
        await seed(folder)
        in_folder = _document(user, file_name="in.pdf", folder_id=folder.id)
        at_root = _document(user, file_name="root.pdf")
        await seed(in_folder, at_root)

        by_folder = await async_client.get(f"/api/documents?folderId={folder.id}", headers=auth_headers)
        root_only = await async_client.get("/api/documents?folderId=root", headers=auth_headers)

        assert [d["fileName"] for d in by_folder.json()["documents"]] == ["in.pdf"]
        assert [d["fileName"] for d in root_only.json()["documents"]] == ["root.pdf"]

    async def test_detail_includes_artifacts(self, async_client, auth_headers, seed, user):
        doc = _document(user)
        await seed(doc)
        await seed(
            Summary(document_id=doc.id, user_id=user.id, content="A short summary."),
            Note(document_id=doc.id, user_id=user.id, title="Study Notes", content="# Notes"),
            Flashcard(document_id=doc.id, user_id=user.id, question="Q1?", answer="A1"),
            QuizQuestion(document_id=doc.id, user_id=user.id, question="Pick one",
                         options=["a", "b", "c", "d"], correct_answer=2, explanation="Because c."),
        )

        resp = await async_client.get(f"/api/documents/{doc.id}", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["document"]["id"] == str(doc.id)
        assert body["summary"]["content"] == "A short summary."
        assert body["notes"]["content"] == "# Notes"
        assert body["flashcards"][0]["question"] == "Q1?"
        assert body["quizQuestions"][0]["correctAnswer"] == 2
        assert body["quizQuestions"][0]["options"] == ["a", "b", "c", "d"]

    async def test_detail_of_processing_document_has_no_artifacts(self, async_client, auth_headers, seed, user):
        doc = _document(user, status="processing")
        await seed(doc)

        body = (await async_client.get(f"/api/documents/{doc.id}", headers=auth_headers)).json()

        assert body["summary"] is None
        assert body["notes"] is None
        assert body["flashcards"] == []
        assert body["quizQuestions"] == []

    async def test_foreign_document_is_not_found(self, async_client, other_headers, seed, user):
        doc = _document(user)
        await seed(doc)

        resp = await async_client.get(f"/api/documents/{doc.id}", headers=other_headers)

        assert resp.status_code == 404
        assert resp.json()["error_code"] == "NOT_FOUND"
        assert resp.json()["message"] == "Document not found"

    async def test_malformed_id_is_422(self, async_client, auth_headers):
        resp = await async_client.get("/api/documents/not-a-uuid", headers=auth_headers)
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"

    async def test_status_reports_latest_job(self, async_client, auth_headers, seed, user):
        doc = _document(user, status="processing")
        await seed(doc)
        await seed(GenerationJob(document_id=doc.id, status="running", attempts=2))

        resp = await async_client.get(f"/api/documents/{doc.id}/status", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json() == {
            "id": str(doc.id),
            "status": "processing",
            "job": {"status": "running", "attempts": 2},
        }


# ─────────────────────────────────────────────────────────────────────────────
# Mutations
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestMutationEndpoints:

    async def test_move_into_folder_and_back(self, async_client, auth_headers, seed, user):
        folder = Folder(id=uuid.uuid4(), user_id=user.id, name="Physics")
        doc = _document(user)
        await seed(folder, doc)

        moved = await async_client.put(
            f"/api/documents/{doc.id}/move", json={"folderId": str(folder.id)}, headers=auth_headers,
        )
        back = await async_client.put(
            f"/api/documents/{doc.id}/move", json={"folderId": None}, headers=auth_headers,
        )

        assert moved.status_code == 200
        assert moved.json()["document"]["folderId"] == str(folder.id)
        assert back.json()["document"]["folderId"] is None

    async def test_move_into_foreign_folder(self, async_client, auth_headers, seed, user, other_user):
        folder = Folder(id=uuid.uuid4(), user_id=other_user.id, name="Theirs")
        doc = _document(user)
        await seed(folder, doc)

        resp = await async_client.put(
            f"/api/documents/{doc.id}/move", json={"folderId": str(folder.id)}, headers=auth_headers,
        )

        assert resp.status_code == 404
        assert resp.json()["message"] == "Folder not found"

    async def test_rename(self, async_client, auth_headers, seed, user, session_factory):
        doc = _document(user)
        await seed(doc)

        resp = await async_client.put(
            f"/api/documents/{doc.id}/rename", json={"fileName": "  Cell Biology  "}, headers=auth_headers,
        )

        assert resp.status_code == 200
        assert resp.json()["document"]["fileName"] == "Cell Biology"
        async with session_factory() as check:
            assert (await check.get(Document, doc.id)).original_name == "biology.pdf"

    async def test_rename_to_blank(self, async_client, auth_headers, seed, user):
        doc = _document(user)
        await seed(doc)

        resp = await async_client.put(
            f"/api/documents/{doc.id}/rename", json={"fileName": "   "}, headers=auth_headers,
        )

        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "fileName"

    async def test_delete_removes_artifacts_and_object(self, async_client, auth_headers, seed, user,
                                                      session_factory, mock_storage):
        doc = _document(user)
        await seed(doc)
        await seed(
            Summary(document_id=doc.id, user_id=user.id, content="s"),
            Flashcard(document_id=doc.id, user_id=user.id, question="q", answer="a"),
            GenerationJob(document_id=doc.id, status="completed", attempts=1),
        )

        resp = await async_client.delete(f"/api/documents/{doc.id}", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Document deleted successfully"}
        mock_storage.delete_object.assert_awaited_once_with(doc.s3_key)
        async with session_factory() as check:
            assert await check.get(Document, doc.id) is None
            assert await check.scalar(select(Summary)) is None
            assert await check.scalar(select(Flashcard)) is None
            assert await check.scalar(select(GenerationJob)) is None

    async def test_delete_survives_storage_failure(self, async_client, auth_headers, seed, user, mock_storage):
        doc = _document(user)
        await seed(doc)
        mock_storage.delete_object.side_effect = RuntimeError("S3 unavailable")

        resp = await async_client.delete(f"/api/documents/{doc.id}", headers=auth_headers)

        assert resp.status_code == 200

    async def test_delete_foreign_document(self, async_client, other_headers, seed, user, mock_storage):
        doc = _document(user)
        await seed(doc)

        resp = await async_client.delete(f"/api/documents/{doc.id}", headers=other_headers)

        assert resp.status_code == 404
        mock_storage.delete_object.assert_not_awaited()


# ─────────────────────────────────────────────────────────────────────────────
# Quiz regeneration
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
@pytest.mark.pipeline
class TestRegenerateQuiz:

    @pytest.fixture
    def patched_source_extract(self, extraction_result):
        with patch(
            "study_assistant.services.documents.extract_text",
            new=AsyncMock(return_value=extraction_result()),
        ) as mocked:
            yield mocked

    async def test_replaces_questions(self, async_client, auth_headers, seed, user, session_factory,
                                      patched_source_extract, mock_gateway):
        doc = _document(user)
        await seed(doc)
        await seed(QuizQuestion(document_id=doc.id, user_id=user.id, question="Old question?",
                                options=["a", "b", "c", "d"], correct_answer=0))

        resp = await async_client.post(f"/api/documents/{doc.id}/regenerate-quiz", headers=auth_headers)

        assert resp.status_code == 200, resp.text
        questions = resp.json()["quizQuestions"]
        assert [q["question"] for q in questions] == ["Which organelle runs photosynthesis?"]
        assert questions[0]["correctAnswer"] == 1

        prompt = mock_gateway.generate.await_args.args[1]
        assert "Old question?" in prompt

        async with session_factory() as check:
            stored = (await check.scalars(select(QuizQuestion.question))).all()
        assert stored == ["Which organelle runs photosynthesis?"]

    async def test_failed_generation_keeps_old_quiz(self, async_client, auth_headers, seed, user,
                                                    session_factory, patched_source_extract, llm_replies):
        from study_assistant.llm.selector import ProviderError

        doc = _document(user)
        await seed(doc)
        await seed(QuizQuestion(document_id=doc.id, user_id=user.id, question="Keep me?",
                                options=["a", "b", "c", "d"], correct_answer=0))
        llm_replies["quiz"] = ProviderError("model unavailable")

        resp = await async_client.post(f"/api/documents/{doc.id}/regenerate-quiz", headers=auth_headers)

        assert resp.status_code == 502
        assert resp.json()["error_code"] == "UPSTREAM_FAILURE"
        async with session_factory() as check:
            assert (await check.scalars(select(QuizQuestion.question))).all() == ["Keep me?"]

    async def test_youtube_without_notes(self, async_client, auth_headers, seed, user):
        doc = _document(user, file_type="youtube", s3_key=None, youtube_video_id="dQw4w9WgXcQ",
                        youtube_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ")
        await seed(doc)

        resp = await async_client.post(f"/api/documents/{doc.id}/regenerate-quiz", headers=auth_headers)

        assert resp.status_code == 400
        assert "Notes not found" in resp.json()["message"]
