"""
Study Assistant API — ASGI application

Architecture:
  - All routes live under /api/
  - Session auth: JWT in the `token` cookie or an Authorization: Bearer header
  - Every query is scoped to the authenticated user (Model.user_id)
  - Uploads go to S3; study material is generated by a Celery worker
  - Errors leave as the ErrorResponse envelope (core/errors.py)

Middleware, innermost first:
  1. Gzip, responses over 1 KB
  2. CORS (explicit origins outside development, cookies allowed)
  3. Request ID + logging — X-Request-ID on every response, one log line
     per request with latency
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from study_assistant.api.routes.admin import router as admin_router
from study_assistant.api.routes.analytics import router as analytics_router
from study_assistant.api.routes.auth import router as auth_router
from study_assistant.api.routes.documents import router as documents_router
from study_assistant.api.routes.error_book import router as error_book_router
from study_assistant.api.routes.flashcards import router as flashcards_router
from study_assistant.api.routes.folders import router as folders_router
from study_assistant.api.routes.notes import router as notes_router
from study_assistant.api.routes.profile import router as profile_router
from study_assistant.api.routes.qa import router as qa_router
from study_assistant.api.routes.youtube import router as youtube_router
from study_assistant.core.config import settings
from study_assistant.core.errors import AppError
from study_assistant.db.session import check_db_health
from study_assistant.llm.selector import ProviderError, get_model_selector
from study_assistant.schemas.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

API_PREFIX = "/api"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: check the database, pick an LLM model.
    Shutdown: dispose the connection pool.

    A failed model probe is not fatal; the selector retries on first use.
    """
    logger.info("Starting Study Assistant | env=%s", settings.app_env)

    db_health = await check_db_health()
    if db_health["status"] != "ok":
        logger.critical("Startup aborted | database=%s", db_health)
        raise RuntimeError(f"database unreachable: {db_health}")
    logger.info("Database reachable")

    try:
        model = await get_model_selector().initialize()
        logger.info("LLM model selected | model=%s", model)
    except ProviderError as exc:
        logger.warning("LLM model selection deferred | error=%s", exc)

    yield

    logger.info("Shutting down Study Assistant")
    from study_assistant.db.session import engine
    await engine.dispose()


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid.uuid4())


def error_response(request: Request, exc: AppError) -> JSONResponse:
    """
    ErrorResponse envelope for an AppError. `extra` keys (retryAfter,
    dailyLimit, maxDuration, ...) sit next to the envelope fields.
    """
    request_id = _request_id(request)
    body = ErrorResponse(
        error_code=exc.error_code,
        message=exc.message,
        details=[ErrorDetail(field=exc.field, message=exc.message, code=exc.error_code)] if exc.field else [],
        request_id=request_id,
    ).model_dump(mode="json")
    body.update(exc.extra)
    return JSONResponse(
        status_code=exc.status_code,
        content=body,
        headers={**exc.headers, "X-Request-ID": request_id},
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    app = FastAPI(
        title="Study Assistant API",
        description=(
            "Upload PDFs, Word documents and YouTube videos; get summaries, notes, "
            "flashcards and quizzes, and track study progress."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (last added runs first)
    # ----------------------------------------------------------------

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    # Cookie sessions need explicit origins; "*" is only used in development
    allowed_origins = ["*"] if settings.app_env == "development" else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allowed_origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers
    # ----------------------------------------------------------------

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(
                "Request failed | path=%s code=%s message=%s",
                request.url.path, exc.error_code, exc.message,
            )
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """422 with one ErrorDetail per failing location."""
        details = [
            ErrorDetail(
                field=" → ".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Anything unexpected: logged with its traceback, answered with a fixed 500."""
        request_id = _request_id(request)
        logger.exception(
            "Unhandled error | path=%s request_id=%s",
            request.url.path, request_id,
        )
        body = ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    for router in (
        auth_router,
        documents_router,
        youtube_router,
        folders_router,
        notes_router,
        qa_router,
        flashcards_router,
        analytics_router,
        error_book_router,
        profile_router,
        admin_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    # ----------------------------------------------------------------
    # Operations (unauthenticated)
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Process is up. Touches nothing else.",
    )
    async def health() -> dict:
        return {"status": "ok", "service": "study-assistant-api"}

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness probe",
        description="503 while the database cannot be reached.",
    )
    async def readiness() -> JSONResponse:
        db_status = await check_db_health()
        if db_status["status"] != "ok":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "database": db_status},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status},
        )

    return app


# ---------------------------------------------------------------------------
# uvicorn study_assistant.main:app
# ---------------------------------------------------------------------------

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "study_assistant.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
