"""
YouTube API Router — /api/youtube

  POST /validate   look a video up before it is added (no writes)
  POST /           add a video as a `youtube` Document and queue generation

Both endpoints enforce the per-user daily video limit (UTC day) and the
maximum duration. Only the validate step talks to the YouTube Data API;
submission trusts the metadata the client echoes back from it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from study_assistant.auth.dependencies import DB, CurrentUser, Publisher, Storage, YouTube
from study_assistant.core.config import settings
from study_assistant.core.errors import RateLimited, ValidationFailed
from study_assistant.schemas.common import ERROR_RESPONSES
from study_assistant.schemas.documents import (
    YouTubeSubmitRequest,
    YouTubeSubmitResponse,
    YouTubeValidateRequest,
    YouTubeValidateResponse,
)
from study_assistant.services.ingestion import IngestionService
from study_assistant.services.youtube import (
    assess_educational,
    extract_video_id,
    format_duration,
    todays_video_count,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/youtube", tags=["YouTube"], responses=ERROR_RESPONSES)


@router.post("/validate", response_model=YouTubeValidateResponse)
async def validate_video(
    body:    YouTubeValidateRequest,
    user:    CurrentUser,
    db:      DB,
    youtube: YouTube,
) -> YouTubeValidateResponse:
    if not body.url:
        raise ValidationFailed("YouTube URL is required", field="url")

    video_id = extract_video_id(body.url.strip())
    if not video_id:
        raise ValidationFailed("Invalid YouTube URL format", field="url")

    daily_limit = settings.youtube_daily_limit
    remaining = daily_limit - await todays_video_count(db, user.id)
    if remaining <= 0:
        raise RateLimited(
            f"You have used all {daily_limit} YouTube videos for today. Try again tomorrow.",
            extra={"dailyLimit": daily_limit, "remaining": 0},
        )

    video = await youtube.fetch_video(video_id)

    max_duration = settings.youtube_max_duration_s
    if video.duration > max_duration:
        raise ValidationFailed(
            f"Video too long: duration ({format_duration(video.duration)}) exceeds "
            f"the maximum allowed ({format_duration(max_duration)}).",
            extra={"duration": video.duration, "maxDuration": max_duration},
        )

    assessment = assess_educational(
        video.title, video.description, video.category_id, video.tags,
    )
    logger.info(
        "YouTube video validated | user=%s video=%s educational=%s confidence=%d",
        user.id, video_id, assessment.is_educational, assessment.confidence,
    )

    return YouTubeValidateResponse(
        video_id=video.video_id,
        title=video.title,
        channel_title=video.channel_title,
        description=video.description,
        thumbnail=video.thumbnail,
        duration=video.duration,
        duration_formatted=format_duration(video.duration),
        category_id=video.category_id,
        published_at=video.published_at,
        view_count=video.view_count,
        is_educational=assessment.is_educational,
        educational_confidence=assessment.confidence,
        educational_reason=assessment.reason,
        daily_limit=daily_limit,
        remaining=remaining,
        max_duration=max_duration,
        max_duration_formatted=format_duration(max_duration),
    )


@router.post("", response_model=YouTubeSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_video(
    body:      YouTubeSubmitRequest,
    user:      CurrentUser,
    db:        DB,
    storage:   Storage,
    publisher: Publisher,
) -> YouTubeSubmitResponse:
    service = IngestionService(db=db, storage=storage, user=user, publisher=publisher)
    return await service.submit_youtube(body)
