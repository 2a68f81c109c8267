"""
S3 Storage Service

Key layout (constructed server-side, never accepted from the client):

    documents/<uuid>-<sanitized filename>      uploaded PDF / DOCX sources
    avatars/<user_id>/<epoch ms>-<filename>    profile pictures

Objects are private; browsers read them through short-lived presigned GET
URLs. Delete failures are reported to the caller, which decides whether
they are fatal (document and avatar deletion treat them as warnings).
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass

import aioboto3
from botocore.exceptions import ClientError

from study_assistant.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------

def _sanitize(filename: str) -> str:
    # strip directory components and parent references
    return filename.replace("\\", "_").replace("/", "_").replace("..", "_")


def document_key(filename: str) -> str:
    return f"documents/{uuid.uuid4()}-{_sanitize(filename)}"


def avatar_key(user_id: uuid.UUID, filename: str) -> str:
    return f"avatars/{user_id}/{int(time.time() * 1000)}-{_sanitize(filename)}"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class S3Object:
    """Represents a stored object, returned by put_object."""
    key:          str
    bucket:       str
    url:          str
    size_bytes:   int
    content_type: str
    etag:         str


# ---------------------------------------------------------------------------
# S3 Service
# ---------------------------------------------------------------------------

class S3StorageService:
    """
    Async S3 operations against the configured bucket.
    Created per request through a FastAPI dependency and per run in workers.
    """

    def __init__(self, bucket: str | None = None) -> None:
        self._bucket  = bucket or settings.s3_bucket
        self._session = aioboto3.Session()

    @property
    def bucket(self) -> str:
        return self._bucket

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client(
            "s3",
            region_name=settings.aws_region,
            # Local dev reads AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY;
            # production uses the task role.
        )

    def object_url(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
    ) -> S3Object:
        async with self._client() as s3:
            resp = await s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )

        logger.info("S3 upload ok | key=%s size=%d", key, len(body))

        return S3Object(
            key=key,
            bucket=self._bucket,
            url=self.object_url(key),
            size_bytes=len(body),
            content_type=content_type,
            etag=resp.get("ETag", "").strip('"'),
        )

    async def get_object(self, key: str) -> bytes:
        """Download an object. Missing keys raise FileNotFoundError."""
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._bucket, Key=key)
                return await resp["Body"].read()
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    raise FileNotFoundError(f"Object not found: {key}") from exc
                raise

    async def delete_object(self, key: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=self._bucket, Key=key)
        logger.info("S3 delete | key=%s", key)

    async def presigned_get(self, key: str, expires_in: int = 900) -> str:
        """
        Generate a presigned GET URL scoped to the exact object key.
        Avatars use a 7-day TTL; everything else the 15-minute default.
        """
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
