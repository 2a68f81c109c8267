"""bcrypt password hashing (passlib)."""

from __future__ import annotations

import logging

from passlib.hash import bcrypt

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """False for accounts without a local password or a malformed hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError as exc:
        logger.warning("Password hash could not be verified | error=%s", exc)
        return False
