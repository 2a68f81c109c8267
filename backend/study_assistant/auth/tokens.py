"""
Session Tokens — HS256 JWT

Issued at login, carried either as the httpOnly `token` cookie (browser)
or an `Authorization: Bearer` header (API clients).

Claims:
    userId  user primary key (string UUID)
    email   address at issue time
    role    user | admin
    exp     issue time + 7 days

The token only names the user. get_current_user() re-loads the User row on
every request, so a deleted account stops working immediately.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.config import settings
from study_assistant.core.errors import Unauthorized
from study_assistant.db.session import get_db
from study_assistant.models import User

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Verified token payload
# ---------------------------------------------------------------------------

class TokenPayload(BaseModel):
    """Parsed, validated JWT claims."""
    userId: str
    email:  str
    role:   str = "user"
    exp:    int

    @property
    def user_id(self) -> UUID:
        return UUID(self.userId)


# ---------------------------------------------------------------------------
# Issue / verify
# ---------------------------------------------------------------------------

def create_access_token(user_id: UUID | str, email: str, role: str) -> str:
    expires = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expiry_days)
    claims = {
        "userId": str(user_id),
        "email":  email,
        "role":   role,
        "exp":    int(expires.timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenPayload | None:
    """None when the token is expired, tampered with or malformed."""
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": True},
        )
        payload = TokenPayload(**claims)
        payload.user_id  # must parse as a UUID
        return payload
    except ExpiredSignatureError:
        logger.debug("Token expired")
        return None
    except (JWTError, ValidationError, ValueError) as exc:
        logger.debug("Token rejected | error=%s", exc)
        return None


def token_from_request(request: Request) -> str | None:
    """Bearer header first, then the session cookie."""
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.auth_cookie_name) or None


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Resolve the authenticated User for this request:

        @router.get("/documents")
        async def list_docs(user: CurrentUser): ...

    Raises Unauthorized when the token is missing, invalid, or names a
    user that no longer exists.
    """
    token = token_from_request(request)
    if not token:
        raise Unauthorized()

    payload = decode_access_token(token)
    if payload is None:
        raise Unauthorized("Invalid or expired token")

    user = await db.get(User, payload.user_id)
    if user is None:
        raise Unauthorized("Invalid or expired token")
    return user
