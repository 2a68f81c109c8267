"""
Six-digit email verification codes (EmailVerification rows).

Shared by sign-up pre-verification, password reset and email change.
Issuing a code replaces every earlier code for the address.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from study_assistant.core.errors import ValidationFailed
from study_assistant.models import EmailVerification
from study_assistant.models.base import ensure_utc, utcnow

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(minutes=10)
LINK_TOKEN_TTL = timedelta(hours=24)


def generate_code() -> str:
    return f"{secrets.randbelow(900_000) + 100_000}"


def generate_link_token() -> str:
    return secrets.token_hex(32)


async def issue_code(db: AsyncSession, email: str) -> str:
    await db.execute(delete(EmailVerification).where(EmailVerification.email == email))
    code = generate_code()
    db.add(EmailVerification(email=email, code=code, expires_at=utcnow() + CODE_TTL))
    await db.flush()
    return code


async def check_code(db: AsyncSession, email: str, code: str) -> EmailVerification:
    """
    Return the matching unused, unexpired code row.

    An expired match is deleted before the error is raised.
    """
    row = await db.scalar(
        select(EmailVerification).where(
            EmailVerification.email == email,
            EmailVerification.code == code,
        )
    )
    if row is None:
        raise ValidationFailed("Invalid verification code", field="code")

    if utcnow() > ensure_utc(row.expires_at):
        await db.delete(row)
        # Persist the cleanup even though the request fails
        await db.commit()
        raise ValidationFailed(
            "Verification code has expired. Please request a new one.", field="code",
        )

    if row.verified:
        raise ValidationFailed("This code has already been used", field="code")
    return row


async def find_verified_code(db: AsyncSession, email: str, code: str) -> EmailVerification | None:
    """A code that passed verify-code and has not expired."""
    row = await db.scalar(
        select(EmailVerification).where(
            EmailVerification.email == email,
            EmailVerification.code == code,
            EmailVerification.verified.is_(True),
        )
    )
    if row is None or utcnow() > ensure_utc(row.expires_at):
        return None
    return row
