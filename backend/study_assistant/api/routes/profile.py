"""
Profile API Router — /api/profile

  GET    /stats            document, study-time, quiz and streak counters
  PUT    /update-name      1-100 characters after trimming
  PUT    /update-email     needs a code already verified for the new address
  POST   /avatar           multipart `avatar`, JPEG/PNG/GIF/WebP up to 2 MB
  DELETE /avatar
  DELETE /delete-account   local accounts confirm with their password
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, UploadFile
from sqlalchemy import delete, func, select

from study_assistant.auth.dependencies import DB, CurrentUser, Mailer, Storage
from study_assistant.auth.passwords import verify_password
from study_assistant.core.errors import Unauthorized, ValidationFailed
from study_assistant.models import (
    Document,
    FlashcardPerformance,
    Folder,
    QuizPerformance,
    StudySession,
    User,
    WrongAnswer,
)
from study_assistant.schemas.auth import (
    AvatarResponse,
    DeleteAccountRequest,
    ProfileStats,
    ProfileStatsResponse,
    UpdateEmailRequest,
    UpdateEmailResponse,
    UpdateNameRequest,
    UpdateNameResponse,
    UserOut,
)
from study_assistant.schemas.common import ERROR_RESPONSES, MessageResponse
from study_assistant.services import verification
from study_assistant.services.analytics import current_streak
from study_assistant.services.documents import delete_document
from study_assistant.services.email_validation import is_valid_format, normalize_email
from study_assistant.storage.s3 import S3StorageService, avatar_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["Profile"], responses=ERROR_RESPONSES)

MAX_NAME_LENGTH = 100

AVATAR_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"})
MAX_AVATAR_BYTES     = 2 * 1024 * 1024
AVATAR_URL_TTL_S     = 7 * 24 * 3600


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

@router.get("/stats", response_model=ProfileStatsResponse)
async def get_stats(user: CurrentUser, db: DB) -> ProfileStatsResponse:
    document_count = await db.scalar(
        select(func.count(Document.id)).where(Document.user_id == user.id)
    )
    study_time = await db.scalar(
        select(func.coalesce(func.sum(StudySession.duration), 0)).where(StudySession.user_id == user.id)
    )
    quiz_count = await db.scalar(
        select(func.count(QuizPerformance.id)).where(QuizPerformance.user_id == user.id)
    )
    return ProfileStatsResponse(
        stats=ProfileStats(
            document_count=document_count or 0,
            total_study_time=int(study_time or 0),
            quiz_count=quiz_count or 0,
            study_streak=await current_streak(db, user.id),
        ),
    )


# ---------------------------------------------------------------------------
# Name and email
# ---------------------------------------------------------------------------

@router.put("/update-name", response_model=UpdateNameResponse)
async def update_name(body: UpdateNameRequest, user: CurrentUser, db: DB) -> UpdateNameResponse:
    name = (body.name or "").strip()
    if not name:
        raise ValidationFailed("Name is required and cannot be empty", field="name")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationFailed(f"Name must be less than {MAX_NAME_LENGTH} characters", field="name")

    user.name = name
    await db.flush()
    return UpdateNameResponse(user=UserOut.model_validate(user))


@router.put("/update-email", response_model=UpdateEmailResponse)
async def update_email(
    body:   UpdateEmailRequest,
    user:   CurrentUser,
    db:     DB,
    mailer: Mailer,
) -> UpdateEmailResponse:
    code = str(body.verification_code).strip() if body.verification_code is not None else ""
    if not body.new_email or not code:
        raise ValidationFailed("New email and verification code are required")

    new_email = normalize_email(body.new_email)
    if not is_valid_format(new_email):
        raise ValidationFailed("Invalid email format", field="newEmail")

    owner = await db.scalar(select(User.id).where(User.email == new_email))
    if owner is not None and owner != user.id:
        raise ValidationFailed("Email is already in use by another account", field="newEmail")

    row = await verification.find_verified_code(db, new_email, code)
    if row is None:
        raise ValidationFailed(
            "Invalid or unverified code. Please verify your new email first.",
            field="verificationCode",
        )

    old_email  = user.email
    user.email = new_email
    await db.delete(row)
    await db.flush()
    logger.info("Email changed | user=%s", user.id)

    if old_email != new_email:
        try:
            await mailer.send_email_change_notice(old_email, new_email)
        except Exception as exc:
            logger.error("Email change notice failed | user=%s error=%s", user.id, exc)

    return UpdateEmailResponse(user=UserOut.model_validate(user))


# ---------------------------------------------------------------------------
# Avatar
# ---------------------------------------------------------------------------

async def _discard_avatar(storage: S3StorageService, user: User) -> None:
    if not user.avatar:
        return
    try:
        await storage.delete_object(user.avatar)
    except Exception as exc:
        logger.warning("Avatar delete failed, continuing | user=%s error=%s", user.id, exc)


@router.post("/avatar", response_model=AvatarResponse)
async def upload_avatar(
    user:    CurrentUser,
    db:      DB,
    storage: Storage,
    avatar:  UploadFile | None = File(None),
) -> AvatarResponse:
    if avatar is None or not avatar.filename:
        raise ValidationFailed("No file provided", field="avatar")
    if avatar.content_type not in AVATAR_CONTENT_TYPES:
        raise ValidationFailed(
            "Invalid file type. Only JPEG, PNG, GIF, and WebP images are allowed.",
            field="avatar",
        )

    data = await avatar.read()
    if len(data) > MAX_AVATAR_BYTES:
        raise ValidationFailed(
            "File is too large. Maximum file size is 2MB. "
            f"Your file is {len(data) / (1024 * 1024):.2f}MB.",
            field="avatar",
        )

    await _discard_avatar(storage, user)
    stored = await storage.put_object(avatar_key(user.id, avatar.filename), data, avatar.content_type)
    user.avatar = stored.key
    await db.flush()

    avatar_url = None
    try:
        avatar_url = await storage.presigned_get(stored.key, expires_in=AVATAR_URL_TTL_S)
    except Exception as exc:
        logger.warning("Avatar URL signing failed | user=%s error=%s", user.id, exc)

    logger.info("Avatar uploaded | user=%s key=%s", user.id, stored.key)
    return AvatarResponse(message="Avatar uploaded successfully", avatar=stored.key, avatar_url=avatar_url)


@router.delete("/avatar", response_model=AvatarResponse)
async def remove_avatar(user: CurrentUser, db: DB, storage: Storage) -> AvatarResponse:
    await _discard_avatar(storage, user)
    user.avatar = None
    await db.flush()
    return AvatarResponse(message="Avatar deleted successfully")


# ---------------------------------------------------------------------------
# Account deletion
# ---------------------------------------------------------------------------

@router.delete("/delete-account", response_model=MessageResponse)
async def delete_account(
    user:    CurrentUser,
    db:      DB,
    storage: Storage,
    body:    DeleteAccountRequest | None = None,
) -> MessageResponse:
    password = body.password if body is not None else None
    if user.provider == "local":
        if not password:
            raise ValidationFailed("Password is required to delete your account", field="password")
        if not user.password_hash:
            raise ValidationFailed("Password verification failed", field="password")
        if not verify_password(password, user.password_hash):
            raise Unauthorized("Incorrect password")

    docs = (await db.scalars(select(Document).where(Document.user_id == user.id))).all()
    for doc in docs:
        await delete_document(db, storage, doc)

    for model in (WrongAnswer, QuizPerformance, FlashcardPerformance, StudySession, Folder):
        await db.execute(delete(model).where(model.user_id == user.id))

    await _discard_avatar(storage, user)
    user_id = user.id
    await db.delete(user)
    await db.flush()

    logger.info("Account deleted | user=%s documents=%d", user_id, len(docs))
    return MessageResponse(message="Account deleted successfully")
