"""
Auth & Profile — Pydantic Request/Response Schemas

Request fields are optional at the schema level; routes check presence
themselves so a missing field is a 400 with a specific message rather
than a generic 422.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from study_assistant.schemas.common import CamelModel


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class RegisterRequest(CamelModel):
    email:    str | None = None
    password: str | None = None
    name:     str | None = None


class LoginRequest(CamelModel):
    email:    str | None = None
    password: str | None = None


class EmailRequest(CamelModel):
    email: str | None = None


class VerifyCodeRequest(CamelModel):
    email: str | None = None
    code:  str | int | None = None


class ResetPasswordRequest(CamelModel):
    email:        str | None = None
    code:         str | int | None = None
    new_password: str | None = None


class UpdateNameRequest(CamelModel):
    name: str | None = None


class UpdateEmailRequest(CamelModel):
    new_email:         str | None = None
    verification_code: str | int | None = None


class DeleteAccountRequest(CamelModel):
    password: str | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class UserOut(CamelModel):
    id:    UUID
    email: str
    name:  str
    role:  str


class RegisteredUserOut(UserOut):
    is_verified: bool


class RegisterResponse(CamelModel):
    message: str
    user:    RegisteredUserOut
    requires_verification: bool


class LoginResponse(CamelModel):
    message: str = "Login successful"
    user:    UserOut


class ProfileOut(UserOut):
    provider:   str
    picture:    str | None = None
    avatar:     str | None = None
    avatar_url: str | None = None
    created_at: datetime


class MeResponse(CamelModel):
    user: ProfileOut


class ProfileStats(CamelModel):
    document_count:   int
    total_study_time: int  # minutes
    quiz_count:       int
    study_streak:     int


class ProfileStatsResponse(CamelModel):
    success: bool = True
    stats:   ProfileStats


class UpdateNameResponse(CamelModel):
    success: bool = True
    message: str = "Name updated successfully"
    user:    UserOut


class UpdateEmailResponse(CamelModel):
    success: bool = True
    message: str = "Email updated successfully"
    user:    UserOut


class AvatarResponse(CamelModel):
    success:    bool = True
    message:    str
    avatar:     str | None = None
    avatar_url: str | None = None
