"""
Admin API Router — /api/admin

  GET /stats       platform counters and the latest uploads
  GET /llm/probe   re-run model selection and report the winner
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import func, select

from study_assistant.auth.dependencies import DB, AdminUser
from study_assistant.core.errors import UpstreamFailure
from study_assistant.llm.selector import ModelSelector, ProviderError, get_model_selector
from study_assistant.models import Document, User
from study_assistant.models.documents import DOCUMENT_STATUSES
from study_assistant.schemas.common import ERROR_RESPONSES, CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], responses=ERROR_RESPONSES)

RECENT_DOCUMENTS = 10


class PlatformStats(CamelModel):
    total_users:     int
    total_documents: int
    status_counts:   dict[str, int]


class RecentDocument(CamelModel):
    id:          UUID
    file_name:   str
    user_name:   str | None = None
    user_email:  str | None = None
    status:      str
    uploaded_at: datetime


class AdminStatsResponse(CamelModel):
    stats:            PlatformStats
    recent_documents: list[RecentDocument]


class ProbeResponse(CamelModel):
    success:        bool = True
    selected_model: str
    candidates:     list[str]


@router.get("/stats", response_model=AdminStatsResponse)
async def get_stats(admin: AdminUser, db: DB) -> AdminStatsResponse:
    total_users     = await db.scalar(select(func.count(User.id)))
    total_documents = await db.scalar(select(func.count(Document.id)))

    counts = {status: 0 for status in DOCUMENT_STATUSES}
    grouped = await db.execute(
        select(Document.status, func.count(Document.id)).group_by(Document.status)
    )
    for status, count in grouped.all():
        counts[status] = count

    recent = (await db.execute(
        select(Document, User.name, User.email)
        .outerjoin(User, User.id == Document.user_id)
        .order_by(Document.uploaded_at.desc())
        .limit(RECENT_DOCUMENTS)
    )).all()

    return AdminStatsResponse(
        stats=PlatformStats(
            total_users=total_users or 0,
            total_documents=total_documents or 0,
            status_counts=counts,
        ),
        recent_documents=[
            RecentDocument(
                id=doc.id,
                file_name=doc.file_name,
                user_name=name,
                user_email=email,
                status=doc.status,
                uploaded_at=doc.uploaded_at,
            )
            for doc, name, email in recent
        ],
    )


@router.get("/llm/probe", response_model=ProbeResponse)
async def probe_models(
    admin: AdminUser,
    selector: ModelSelector = Depends(get_model_selector),
) -> ProbeResponse:
    try:
        model = await selector.reprobe()
    except ProviderError as exc:
        logger.error("Model probe failed | admin=%s error=%s", admin.id, exc)
        raise UpstreamFailure("No candidate model is currently available") from exc

    logger.info("Model probe | admin=%s selected=%s", admin.id, model)
    return ProbeResponse(
        selected_model=model,
        candidates=[spec.model_id for spec in selector.router.candidates()],
    )
