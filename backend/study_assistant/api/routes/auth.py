"""
Authentication API Router — /api/auth

  POST /register                 local account (+ optional email link verification)
  GET  /verify-email?token=      consume the link token, redirect to /login
  POST /resend-verification      new link token
  POST /send-verification-code   6-digit code before sign-up          (rate limited)
  POST /verify-code              mark a code verified                 (rate limited)
  POST /forgot-password          6-digit code for a password reset    (rate limited)
  POST /reset-password           consume the code, set a new password (rate limited)
  POST /login                    session cookie + user                (rate limited)
  POST /logout                   clear the cookie
  GET  /me                       current user's profile
  GET  /oauth/google|github      redirect to the provider
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy import select

from study_assistant.auth.dependencies import DB, CurrentUser, Mailer, Storage
from study_assistant.auth.oauth import github_authorization_url, google_authorization_url
from study_assistant.auth.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from study_assistant.auth.tokens import create_access_token
from study_assistant.core.config import settings
from study_assistant.core.errors import (
    AppError,
    Forbidden,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from study_assistant.core.ratelimit import auth_rate_limit
from study_assistant.models import User
from study_assistant.models.base import ensure_utc, utcnow
from study_assistant.schemas.auth import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    ProfileOut,
    RegisteredUserOut,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserOut,
    VerifyCodeRequest,
)
from study_assistant.schemas.common import ERROR_RESPONSES, MessageResponse
from study_assistant.services import verification
from study_assistant.services.email_validation import (
    is_allowed_domain,
    is_valid_format,
    normalize_email,
    validate_email,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"], responses=ERROR_RESPONSES)

AVATAR_URL_TTL_S = 7 * 24 * 3600
COOKIE_MAX_AGE_S = 7 * 24 * 3600


class EmailSendFailed(AppError):
    error_code = "EMAIL_SEND_FAILED"
    default_message = "Failed to send email. Please try again later."


def _user_by_email(email: str):
    return select(User).where(User.email == email)


def _code_str(code: str | int | None) -> str:
    return str(code).strip() if code is not None else ""


# ---------------------------------------------------------------------------
# Registration + link verification
# ---------------------------------------------------------------------------

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: DB, mailer: Mailer) -> RegisterResponse:
    if not body.email or not body.password or not body.name:
        raise ValidationFailed("Email, password, and name are required")

    email = normalize_email(body.email)
    check = validate_email(email)
    if not check.valid:
        raise ValidationFailed(check.reason or "Invalid email address", field="email")

    if not is_allowed_domain(email):
        raise Forbidden(
            "Registration is restricted to the following email domains: "
            + ", ".join(settings.allowed_domains)
        )

    if await db.scalar(_user_by_email(email)) is not None:
        raise ValidationFailed("User already exists", field="email")

    verify = settings.email_verification_enabled
    user = User(
        email=email,
        password_hash=hash_password(body.password),
        name=body.name.strip(),
        role="admin" if settings.admin_email and email == normalize_email(settings.admin_email) else "user",
        provider="local",
        is_verified=not verify,
    )
    if verify:
        user.verification_token = verification.generate_link_token()
        user.verification_token_expires_at = utcnow() + verification.LINK_TOKEN_TTL

    db.add(user)
    await db.flush()
    logger.info("User registered | user=%s role=%s verify=%s", user.id, user.role, verify)

    if verify:
        try:
            await mailer.send_verification_link(email, user.name, user.verification_token)
        except Exception as exc:
            logger.error("Verification email failed | user=%s error=%s", user.id, exc)

    return RegisterResponse(
        message=(
            "Registration successful! Please check your email to verify your account."
            if verify else "Registration successful!"
        ),
        user=RegisteredUserOut(
            id=user.id, email=user.email, name=user.name, role=user.role,
            is_verified=user.is_verified,
        ),
        requires_verification=verify,
    )


@router.get("/verify-email")
async def verify_email(db: DB, token: str | None = None) -> RedirectResponse:
    base = settings.public_base_url.rstrip("/")

    def _redirect(query: str) -> RedirectResponse:
        return RedirectResponse(f"{base}/login?{query}", status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    if not token:
        return _redirect("error=" + quote("Invalid verification token"))

    user = await db.scalar(select(User).where(User.verification_token == token))
    expires = ensure_utc(user.verification_token_expires_at) if user is not None else None
    if user is None or expires is None or expires <= utcnow():
        return _redirect("error=" + quote("Invalid or expired verification token"))

    user.is_verified = True
    user.verification_token = None
    user.verification_token_expires_at = None
    logger.info("Email verified by link | user=%s", user.id)
    return _redirect("verified=true")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(body: EmailRequest, db: DB, mailer: Mailer) -> MessageResponse:
    if not body.email:
        raise ValidationFailed("Email is required", field="email")

    user = await db.scalar(_user_by_email(normalize_email(body.email)))
    if user is None:
        return MessageResponse(
            message="If an account with that email exists, a verification email has been sent.",
        )
    if user.is_verified:
        raise ValidationFailed("Email is already verified", field="email")

    user.verification_token = verification.generate_link_token()
    user.verification_token_expires_at = utcnow() + verification.LINK_TOKEN_TTL
    await db.commit()

    try:
        await mailer.send_verification_link(user.email, user.name, user.verification_token)
    except Exception as exc:
        logger.error("Verification email failed | user=%s error=%s", user.id, exc)
        raise EmailSendFailed("Failed to send verification email. Please try again later.") from exc

    return MessageResponse(message="Verification email sent successfully. Please check your inbox.")


# ---------------------------------------------------------------------------
# Six-digit codes
# ---------------------------------------------------------------------------

@router.post(
    "/send-verification-code",
    response_model=MessageResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def send_verification_code(body: EmailRequest, db: DB, mailer: Mailer) -> MessageResponse:
    if not body.email:
        raise ValidationFailed("Email is required", field="email")
    email = normalize_email(body.email)
    if not is_valid_format(email):
        raise ValidationFailed("Invalid email format", field="email")

    if await db.scalar(_user_by_email(email)) is not None:
        raise ValidationFailed("User with this email already exists", field="email")

    code = await verification.issue_code(db, email)
    await db.commit()

    try:
        await mailer.send_verification_code(email, code)
    except Exception as exc:
        logger.error("Verification code email failed | email=%s error=%s", email, exc)
        raise EmailSendFailed("Failed to send verification email.") from exc

    logger.info("Verification code sent | email=%s", email)
    return MessageResponse(message="Verification code sent to your email")


@router.post("/verify-code", response_model=MessageResponse, dependencies=[Depends(auth_rate_limit)])
async def verify_code(body: VerifyCodeRequest, db: DB) -> MessageResponse:
    code = _code_str(body.code)
    if not body.email or not code:
        raise ValidationFailed("Email and code are required")

    row = await verification.check_code(db, normalize_email(body.email), code)
    row.verified = True
    return MessageResponse(message="Email verified successfully")


@router.post("/forgot-password", response_model=MessageResponse, dependencies=[Depends(auth_rate_limit)])
async def forgot_password(body: EmailRequest, db: DB, mailer: Mailer) -> MessageResponse:
    if not body.email:
        raise ValidationFailed("Email is required", field="email")
    email = normalize_email(body.email)
    if not is_valid_format(email):
        raise ValidationFailed("Invalid email format", field="email")

    user = await db.scalar(_user_by_email(email))
    if user is None:
        raise NotFound("No account exists for this email")
    if not user.password_hash:
        raise ValidationFailed(
            "This account signs in with Google/GitHub and has no password to reset",
        )

    code = await verification.issue_code(db, email)
    await db.commit()

    try:
        await mailer.send_verification_code(email, code)
    except Exception as exc:
        logger.error("Password reset email failed | user=%s error=%s", user.id, exc)
        raise EmailSendFailed() from exc

    logger.info("Password reset code sent | user=%s", user.id)
    return MessageResponse(message="A password reset code has been sent to your email")


@router.post("/reset-password", response_model=MessageResponse, dependencies=[Depends(auth_rate_limit)])
async def reset_password(body: ResetPasswordRequest, db: DB) -> MessageResponse:
    code = _code_str(body.code)
    if not body.email or not code or not body.new_password:
        raise ValidationFailed("Email, code, and new password are required")
    if len(body.new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field="newPassword",
        )

    email = normalize_email(body.email)
    row = await verification.check_code(db, email, code)

    user = await db.scalar(_user_by_email(email))
    if user is None or not user.password_hash:
        raise NotFound("User not found or account doesn't support password reset")

    user.password_hash = hash_password(body.new_password)
    row.verified = True
    logger.info("Password reset | user=%s", user.id)
    return MessageResponse(
        message="Password reset successfully. You can now login with your new password.",
    )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@router.post("/login", response_model=LoginResponse, dependencies=[Depends(auth_rate_limit)])
async def login(body: LoginRequest, request: Request, response: Response, db: DB) -> LoginResponse:
    if not body.email or not body.password:
        raise ValidationFailed("Email and password are required")

    user = await db.scalar(_user_by_email(normalize_email(body.email)))
    if user is None or not verify_password(body.password, user.password_hash):
        raise Unauthorized("Invalid credentials")

    token = create_access_token(user.id, user.email, user.role)
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    response.set_cookie(
        settings.auth_cookie_name,
        token,
        max_age=COOKIE_MAX_AGE_S,
        httponly=True,
        secure=proto == "https",
        samesite="lax",
        path="/",
    )
    logger.info("Login | user=%s", user.id)
    return LoginResponse(user=UserOut.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    response.delete_cookie(settings.auth_cookie_name, path="/")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
async def me(user: CurrentUser, storage: Storage) -> MeResponse:
    avatar_url = None
    if user.avatar:
        try:
            avatar_url = await storage.presigned_get(user.avatar, expires_in=AVATAR_URL_TTL_S)
        except Exception as exc:
            logger.warning("Avatar URL signing failed | user=%s error=%s", user.id, exc)

    return MeResponse(
        user=ProfileOut(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            provider=user.provider or "local",
            picture=user.picture,
            avatar=user.avatar,
            avatar_url=avatar_url,
            created_at=user.created_at,
        ),
    )


# ---------------------------------------------------------------------------
# OAuth redirects
# ---------------------------------------------------------------------------

@router.get("/oauth/google")
async def oauth_google(redirect_uri: str | None = None) -> RedirectResponse:
    return RedirectResponse(google_authorization_url(redirect_uri), status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/oauth/github")
async def oauth_github(redirect_uri: str | None = None) -> RedirectResponse:
    return RedirectResponse(github_authorization_url(redirect_uri), status_code=status.HTTP_307_TEMPORARY_REDIRECT)
