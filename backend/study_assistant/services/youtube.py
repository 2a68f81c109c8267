"""
YouTube video lookup and admission checks.

  extract_video_id        watch?v= / youtu.be/ / embed/ / v/ / bare id
  parse_iso8601_duration  "PT1H30M45S" → 5445
  format_duration         5445 → "1:30:45", 125 → "2:05"
  assess_educational      keyword/category score, educational at ≥ 30
  YouTubeClient           YouTube Data API v3 videos.list over httpx
  todays_video_count      videos a user added since UTC midnight
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Any

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.config import settings
from study_assistant.core.errors import ConfigurationError, NotFound, UpstreamFailure
from study_assistant.models import Document

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"

# Education, Science & Technology, Howto & Style
EDUCATIONAL_CATEGORIES = ("27", "28", "26")

EDUCATIONAL_KEYWORDS = (
    "lecture", "course", "tutorial", "lesson", "class", "seminar",
    "education", "learn", "study", "academic", "university", "college",
    "professor", "teacher", "training", "workshop", "webinar",
    "explained", "introduction", "guide", "how to", "basics",
    "课程", "讲座", "教程", "学习", "教学", "大学", "教授",
)

EDUCATIONAL_THRESHOLD = 30

_VIDEO_URL_RE = re.compile(
    r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/)([^&\n?#]+)"
)
_BARE_ID_RE  = re.compile(r"^([a-zA-Z0-9_-]{11})$")
_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def extract_video_id(url: str) -> str | None:
    url = url.strip()
    for pattern in (_VIDEO_URL_RE, _BARE_ID_RE):
        match = pattern.search(url)
        if match and match.group(1):
            return match.group(1)
    return None


def parse_iso8601_duration(value: str) -> int:
    match = _DURATION_RE.match(value or "")
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def format_duration(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@dataclass
class EducationalAssessment:
    is_educational: bool
    confidence:     int
    reason:         str


def _keyword_hits(text: str) -> list[str]:
    lowered = text.lower()
    return [kw for kw in EDUCATIONAL_KEYWORDS if kw in lowered]


def assess_educational(
    title: str,
    description: str | None,
    category_id: str | None,
    tags: list[str] | None = None,
) -> EducationalAssessment:
    """
    Heuristic score from video metadata:

        category 27/28/26        +40
        title keyword hits       +min(30, 15 per hit)
        description keyword hits +min(20, 5 per hit)
        tags with a keyword      +min(10, 5 per tag)
    """
    score = 0
    reasons: list[str] = []

    if category_id in EDUCATIONAL_CATEGORIES:
        score += 40
        reasons.append("Educational category")

    title_hits = _keyword_hits(title)
    if title_hits:
        score += min(30, len(title_hits) * 15)
        reasons.append(f"Title contains: {', '.join(title_hits[:3])}")

    desc_hits = _keyword_hits(description or "")
    if desc_hits:
        score += min(20, len(desc_hits) * 5)
        reasons.append("Description contains educational terms")

    tag_hits = [tag for tag in (tags or []) if _keyword_hits(tag)]
    if tag_hits:
        score += min(10, len(tag_hits) * 5)
        reasons.append("Tags indicate educational content")

    confidence = min(100, score)
    return EducationalAssessment(
        is_educational=confidence >= EDUCATIONAL_THRESHOLD,
        confidence=confidence,
        reason="; ".join(reasons) if reasons else "No educational indicators found",
    )


# ---------------------------------------------------------------------------
# Data API client
# ---------------------------------------------------------------------------

@dataclass
class VideoDetails:
    video_id:      str
    title:         str
    description:   str
    channel_title: str | None
    category_id:   str | None
    thumbnail:     str | None
    duration:      int
    published_at:  str | None = None
    view_count:    str | None = None
    tags:          list[str] = field(default_factory=list)


def _best_thumbnail(thumbnails: dict[str, Any]) -> str | None:
    for size in ("maxres", "high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


class YouTubeClient:

    def __init__(self, api_key: str | None = None, timeout: float = 10.0) -> None:
        self._api_key = api_key if api_key is not None else settings.youtube_api_key
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_video(self, video_id: str) -> VideoDetails:
        """
        Raises:
            ConfigurationError: no API key.
            UpstreamFailure:    the API answered with an error or was unreachable.
            NotFound:           no such (public) video.
        """
        if not self.configured:
            raise ConfigurationError("YouTube API is not configured")

        params = {
            "part": "snippet,contentDetails,statistics",
            "id":   video_id,
            "key":  self._api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as http:
                resp = await http.get(f"{YOUTUBE_API_BASE}/videos", params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "YouTube API error | video=%s status=%d", video_id, exc.response.status_code,
            )
            raise UpstreamFailure("Failed to fetch video information from YouTube") from exc
        except httpx.RequestError as exc:
            logger.error("YouTube API network error | video=%s error=%s", video_id, exc)
            raise UpstreamFailure("Failed to fetch video information from YouTube") from exc

        items = data.get("items") or []
        if not items:
            raise NotFound("Video not found or is private")

        video   = items[0]
        snippet = video.get("snippet") or {}
        details = video.get("contentDetails") or {}
        stats   = video.get("statistics") or {}

        return VideoDetails(
            video_id=video_id,
            title=snippet.get("title", ""),
            description=snippet.get("description") or "",
            channel_title=snippet.get("channelTitle"),
            category_id=snippet.get("categoryId"),
            thumbnail=_best_thumbnail(snippet.get("thumbnails") or {}),
            duration=parse_iso8601_duration(details.get("duration", "")),
            published_at=snippet.get("publishedAt"),
            view_count=stats.get("viewCount"),
            tags=list(snippet.get("tags") or []),
        )


def get_youtube_client() -> YouTubeClient:
    """FastAPI dependency; overridden in tests."""
    return YouTubeClient()


# ---------------------------------------------------------------------------
# Daily quota
# ---------------------------------------------------------------------------

def start_of_utc_day(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


async def todays_video_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(Document.id)).where(
            Document.user_id == user_id,
            Document.file_type == "youtube",
            Document.uploaded_at >= start_of_utc_day(),
        )
    )
    return int(result.scalar_one())
