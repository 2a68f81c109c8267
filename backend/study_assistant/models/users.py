"""
SQLAlchemy ORM Models — Users & Email Verification Codes
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from study_assistant.models.base import Base, utcnow


# ---------------------------------------------------------------------------
# User model: users
# ---------------------------------------------------------------------------

class User(Base):
    """
    An account. Local accounts carry a bcrypt password hash; OAuth accounts
    (google / github) may have none.

    avatar holds an S3 object key; picture holds an external URL supplied
    by the OAuth provider.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="users_role_check"),
        CheckConstraint(
            "provider IN ('local', 'google', 'github')",
            name="users_provider_check",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Always stored lower-cased
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    role:     Mapped[str] = mapped_column(String(16), nullable=False, default="user")
    provider: Mapped[str] = mapped_column(String(16), nullable=False, default="local")

    google_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    github_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    picture:   Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    avatar:    Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Link-based email verification (register → verify-email)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    verification_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"


# ---------------------------------------------------------------------------
# EmailVerification model: email_verifications
# ---------------------------------------------------------------------------

class EmailVerification(Base):
    """
    A 6-digit code sent to an address. Used for sign-up pre-verification,
    password reset and email change. At most one live code per address:
    issuing a new code deletes the previous ones.
    """

    __tablename__ = "email_verifications"
    __table_args__ = (
        Index("idx_email_verifications_email", "email"),
    )

    id:         Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email:      Mapped[str]       = mapped_column(String(320), nullable=False)
    code:       Mapped[str]       = mapped_column(String(6), nullable=False)
    expires_at: Mapped[datetime]  = mapped_column(DateTime(timezone=True), nullable=False)
    verified:   Mapped[bool]      = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime]  = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow,
    )
