"""
Shared fixtures for the unit and integration suites

Fixture hierarchy:
  function-scoped : db_engine, session_factory, seed, users + tokens,
                    mock_storage, mock_gateway, mock_publisher, mock_mailer,
                    mock_youtube, app_with_overrides, async_client

Environment strategy:
  - Every test gets a fresh in-memory SQLite database (aiosqlite, one shared
    connection through StaticPool) with the full schema created.
  - S3, the LLM gateway, Celery publishing, email and the YouTube Data API
    are replaced with mocks; no network access is needed.
  - Session tokens are real HS256 JWTs signed with the test secret.
  - Rate limiter windows are cleared before every test.

How to run:
  pytest                                   # all tests
  pytest -m unit                           # unit tests only (fast, no I/O)
  pytest -m integration                    # full FastAPI stack over SQLite
  pytest backend/tests/unit/test_parsing.py
"""

from __future__ import annotations

import os
import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ─────────────────────────────────────────────────────────────────────────────
# Environment first: study_assistant.core.config reads it at import time
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DATABASE_URL",          "sqlite+aiosqlite://")
os.environ.setdefault("AWS_REGION",            "us-east-1")
os.environ.setdefault("S3_BUCKET",             "test-bucket")
os.environ.setdefault("OPENAI_API_KEY",        "sk-test-key")
os.environ.setdefault("YOUTUBE_API_KEY",       "yt-test-key")
os.environ.setdefault("JWT_SECRET",            "test-secret-do-not-use")
os.environ.setdefault("CELERY_BROKER_URL",     "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("DEBUG",                 "false")

TEST_PASSWORD = "correct-horse-battery"


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database with every table created."""
    from study_assistant.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def seed(session_factory):
    """
    Factory fixture: persist ORM objects in their own committed session.

    Usage:
        doc = (await seed(Document(...)))[0]
    """
    async def _seed(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects

    return _seed


# ─────────────────────────────────────────────────────────────────────────────
# Users and session tokens
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def test_password() -> str:
    return TEST_PASSWORD


@pytest.fixture(scope="session")
def password_hash() -> str:
    """bcrypt is slow; hash the shared test password once."""
    from study_assistant.auth.passwords import hash_password
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def make_user(seed, password_hash):
    """
    Factory fixture: create and persist a User.

    Usage:
        user = await make_user()
        admin = await make_user(role="admin")
        oauth = await make_user(provider="google", with_password=False)
    """
    from study_assistant.models import User

    async def _build(
        email:    str | None = None,
        name:     str = "Test Student",
        role:     str = "user",
        provider: str = "local",
        with_password: bool = True,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email or f"student-{uuid.uuid4().hex[:8]}@example.com",
            name=name,
            role=role,
            provider=provider,
            password_hash=password_hash if with_password else None,
            is_verified=True,
        )
        await seed(user)
        return user

    return _build


@pytest_asyncio.fixture
async def user(make_user):
    return await make_user(email="student@example.com")


@pytest_asyncio.fixture
async def other_user(make_user):
    return await make_user(email="someone-else@example.com", name="Other Student")


@pytest_asyncio.fixture
async def admin_user(make_user):
    return await make_user(email="admin@example.com", name="Admin", role="admin")


def bearer(user) -> dict[str, str]:
    from study_assistant.auth.tokens import create_access_token
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}


@pytest.fixture
def headers_for():
    """Factory fixture: Authorization header for any persisted user."""
    return bearer


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    return bearer(user)


@pytest.fixture
def other_headers(other_user) -> dict[str, str]:
    return bearer(other_user)


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:
    return bearer(admin_user)


# ─────────────────────────────────────────────────────────────────────────────
# Sample file bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal PDF header; text extraction is patched where it matters."""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
        b"trailer\n<< /Root 1 0 R >>\n%%EOF"
    )


@pytest.fixture
def extraction_result():
    """Factory for a successful ExtractionResult."""
    from study_assistant.processing.extractor import ExtractionResult

    def _build(text: str = "Photosynthesis converts light energy into chemical energy.", file_type: str = "pdf"):
        return ExtractionResult(text=text, file_type=file_type, total_chars=len(text), elapsed_ms=1.0)

    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Mock S3 storage service
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_storage():
    """
    Fully mocked S3StorageService.
    All methods are AsyncMock — no real AWS calls made.
    """
    from study_assistant.storage.s3 import S3Object, S3StorageService

    storage = MagicMock(spec=S3StorageService)

    async def _put_object(key, body, content_type="application/octet-stream"):
        return S3Object(
            key=key,
            bucket="test-bucket",
            url=f"https://test-bucket.s3.us-east-1.amazonaws.com/{key}",
            size_bytes=len(body),
            content_type=content_type,
            etag="d41d8cd98f00b204e9800998ecf8427e",
        )

    storage.put_object    = AsyncMock(side_effect=_put_object)
    storage.get_object    = AsyncMock(return_value=b"file content")
    storage.delete_object = AsyncMock(return_value=None)
    storage.presigned_get = AsyncMock(
        side_effect=lambda key, expires_in=900: f"https://signed.example.com/{key}?ttl={expires_in}",
    )
    return storage


# ─────────────────────────────────────────────────────────────────────────────
# Mock LLM gateway
# ─────────────────────────────────────────────────────────────────────────────

FLASHCARDS_JSON = (
    '{"flashcards": ['
    '{"question": "What is photosynthesis?", "answer": "Turning light into chemical energy"},'
    '{"question": "Where does it happen?", "answer": "In chloroplasts"}'
    ']}'
)

QUIZ_JSON = (
    '{"questions": ['
    '{"question": "Which organelle runs photosynthesis?",'
    ' "options": ["Nucleus", "Chloroplast", "Ribosome", "Golgi"],'
    ' "correctAnswer": 1, "explanation": "Chloroplasts hold chlorophyll."}'
    ']}'
)


@pytest.fixture
def llm_replies() -> dict[str, str]:
    """Reply text per gateway operation; tests edit it in place."""
    return {
        "summary":       "Photosynthesis in one paragraph.",
        "notes":         "# Photosynthesis\n- light reactions\n- Calvin cycle",
        "flashcards":    FLASHCARDS_JSON,
        "quiz":          QUIZ_JSON,
        "qa":            "Chloroplasts.",
        "verify_answer": '{"isCorrect": true, "feedback": "Spot on."}',
    }


@pytest.fixture
def mock_gateway(llm_replies):
    """
    Mocked LLMGateway. generate() answers from llm_replies by operation; a
    reply that is an Exception instance is raised instead.
    """
    from study_assistant.llm.gateway import LLMGateway
    from study_assistant.llm.selector import GenerationResult

    async def _generate(operation, prompt, **kwargs):
        reply = llm_replies[operation]
        if isinstance(reply, BaseException):
            raise reply
        return GenerationResult(text=reply, model="gpt-4o-mini", input_tokens=100, output_tokens=20)

    gateway = MagicMock(spec=LLMGateway)
    gateway.generate = AsyncMock(side_effect=_generate)
    return gateway


@pytest.fixture
def mock_selector():
    from study_assistant.llm.router import ModelRouter, ModelSpec
    from study_assistant.llm.selector import ModelSelector

    selector = MagicMock(spec=ModelSelector)
    selector.reprobe = AsyncMock(return_value="gpt-4o-mini")
    router = MagicMock(spec=ModelRouter)
    router.candidates.return_value = [ModelSpec("gpt-4o-mini"), ModelSpec("gpt-4o")]
    selector.router = router
    return selector


# ─────────────────────────────────────────────────────────────────────────────
# Mock task publisher, email, YouTube
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_publisher():
    """Mocked TaskPublisher — records calls without touching Celery/broker."""
    from study_assistant.services.ingestion import TaskPublisher
    publisher = MagicMock(spec=TaskPublisher)
    publisher.publish_generation_task = AsyncMock(return_value=None)
    return publisher


@pytest.fixture
def mock_mailer():
    from study_assistant.services.email import EmailService
    mailer = MagicMock(spec=EmailService)
    mailer.send_verification_code   = AsyncMock(return_value=None)
    mailer.send_verification_link   = AsyncMock(return_value=None)
    mailer.send_email_change_notice = AsyncMock(return_value=None)
    return mailer


@pytest.fixture
def video_details():
    """Factory for VideoDetails as returned by YouTubeClient.fetch_video."""
    from study_assistant.services.youtube import VideoDetails

    def _build(**overrides):
        fields = dict(
            video_id="dQw4w9WgXcQ",
            title="Introduction to Linear Algebra - Lecture 1",
            description="University course lecture on vectors.",
            channel_title="Open Courseware",
            category_id="27",
            thumbnail="https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
            duration=1800,
            tags=["math", "lecture"],
        )
        fields.update(overrides)
        return VideoDetails(**fields)

    return _build


@pytest.fixture
def mock_youtube(video_details):
    from study_assistant.services.youtube import YouTubeClient
    client = MagicMock(spec=YouTubeClient)
    client.fetch_video = AsyncMock(return_value=video_details())
    return client


# ─────────────────────────────────────────────────────────────────────────────
# Rate limiter isolation
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_rate_limits():
    from study_assistant.core.ratelimit import ALL_LIMITERS
    for limiter in ALL_LIMITERS:
        limiter.reset()
    yield
    for limiter in ALL_LIMITERS:
        limiter.reset()


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client with dependency overrides
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_with_overrides(
    session_factory,
    mock_storage,
    mock_gateway,
    mock_publisher,
    mock_mailer,
    mock_youtube,
    mock_selector,
):
    """
    FastAPI app with every external dependency overridden:
      - get_db              → sessions on the per-test SQLite database
      - get_storage         → mock_storage (no S3)
      - get_llm_gateway     → mock_gateway (no OpenAI)
      - get_task_publisher  → mock_publisher (no broker)
      - get_email_service   → mock_mailer (no SES / SMTP)
      - get_youtube_client  → mock_youtube (no YouTube Data API)
      - get_model_selector  → mock_selector

    Authentication is real: requests carry a signed session token.
    """
    from study_assistant.auth.dependencies import get_storage
    from study_assistant.db.session import get_db
    from study_assistant.llm.gateway import get_llm_gateway
    from study_assistant.llm.selector import get_model_selector
    from study_assistant.main import app
    from study_assistant.services.email import get_email_service
    from study_assistant.services.ingestion import get_task_publisher
    from study_assistant.services.youtube import get_youtube_client

    async def _test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db]             = _test_db
    app.dependency_overrides[get_storage]        = lambda: mock_storage
    app.dependency_overrides[get_llm_gateway]    = lambda: mock_gateway
    app.dependency_overrides[get_task_publisher] = lambda: mock_publisher
    app.dependency_overrides[get_email_service]  = lambda: mock_mailer
    app.dependency_overrides[get_youtube_client] = lambda: mock_youtube
    app.dependency_overrides[get_model_selector] = lambda: mock_selector

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using the overridden app.

    httpx >= 0.28 removed the 'app=' shortcut; use ASGITransport explicitly.
    """
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
