"""
Email address admission checks for sign-up and address changes.

Format and disposable-domain checks only; no DNS lookups are made.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from study_assistant.core.config import settings

DISPOSABLE_EMAIL_DOMAINS = frozenset({
    "10minutemail.com",
    "tempmail.com",
    "guerrillamail.com",
    "mailinator.com",
    "throwaway.email",
    "temp-mail.org",
    "getnada.com",
    "mohmal.com",
    "yopmail.com",
    "sharklasers.com",
    "trashmail.com",
    "maildrop.cc",
    "mintemail.com",
    "fakeinbox.com",
    "dispostable.com",
})

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


@dataclass(frozen=True)
class EmailCheck:
    valid:  bool
    reason: str | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_format(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def domain_of(email: str) -> str:
    return email.rsplit("@", 1)[-1].lower() if "@" in email else ""


def is_disposable(email: str) -> bool:
    domain = domain_of(email)
    return not domain or domain in DISPOSABLE_EMAIL_DOMAINS


def is_allowed_domain(email: str) -> bool:
    """True when no allow-list is configured or the domain is on it."""
    allowed = settings.allowed_domains
    return not allowed or domain_of(email) in allowed


def validate_email(email: str) -> EmailCheck:
    if not is_valid_format(email):
        return EmailCheck(False, "Invalid email format")
    if is_disposable(email):
        return EmailCheck(False, "Disposable/temporary email addresses are not allowed")
    return EmailCheck(True)
