"""
Composed FastAPI Dependencies

Route handlers import their request context from here: the DB session,
the authenticated user, and the injectable services (S3, LLM gateway,
task publisher, email sender, YouTube client).

Tests replace the providers through app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.auth.tokens import get_current_user
from study_assistant.core.errors import Forbidden
from study_assistant.db.session import get_db
from study_assistant.llm.gateway import LLMGateway, get_llm_gateway
from study_assistant.models import User
from study_assistant.services.email import EmailService, get_email_service
from study_assistant.services.ingestion import TaskPublisher, get_task_publisher
from study_assistant.services.youtube import YouTubeClient, get_youtube_client
from study_assistant.storage.s3 import S3StorageService


def get_storage() -> S3StorageService:
    return S3StorageService()


async def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """403 unless the authenticated user has the admin role."""
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

DB          = Annotated[AsyncSession,     Depends(get_db)]
CurrentUser = Annotated[User,             Depends(get_current_user)]
AdminUser   = Annotated[User,             Depends(require_admin)]
Storage     = Annotated[S3StorageService, Depends(get_storage)]
Gateway     = Annotated[LLMGateway,       Depends(get_llm_gateway)]
Publisher   = Annotated[TaskPublisher,    Depends(get_task_publisher)]
Mailer      = Annotated[EmailService,     Depends(get_email_service)]
YouTube     = Annotated[YouTubeClient,    Depends(get_youtube_client)]
