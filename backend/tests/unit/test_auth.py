"""
Unit Tests — Session Tokens, Passwords, Verification Codes
══════════════════════════════════════════════════════════
Tests for:
  • create_access_token / decode_access_token — claims, expiry, tampering
  • token_from_request   — Bearer header first, then the `token` cookie
  • get_current_user     — reloads the User row on every request
  • hash_password / verify_password — bcrypt round trip, OAuth accounts
  • verification codes   — issue replaces, expiry deletes, verified flag
  • OAuth redirect URLs  — provider parameters and base64 state

Zero network calls. Database-backed tests run on the per-test SQLite DB.
"""

from __future__ import annotations

import base64
import json
import time
import uuid
from datetime import timedelta
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from jose import jwt as jose_jwt
from sqlalchemy import select

from study_assistant.core.errors import ConfigurationError, Unauthorized, ValidationFailed


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _make_request(headers: dict | None = None, cookies: dict | None = None):
    """Build a minimal mock Request object."""
    req = MagicMock()
    req.headers = {k.lower(): v for k, v in (headers or {}).items()}
    req.cookies = cookies or {}
    return req


# ─────────────────────────────────────────────────────────────────────────────
# Token issue / decode
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.auth
class TestAccessTokens:

    def test_round_trip_preserves_claims(self):
        from study_assistant.auth.tokens import create_access_token, decode_access_token

        user_id = uuid.uuid4()
        token = create_access_token(user_id, "a@example.com", "admin")
        payload = decode_access_token(token)

        assert payload is not None
        assert payload.user_id == user_id
        assert payload.email == "a@example.com"
        assert payload.role == "admin"

    def test_expiry_is_seven_days_out(self):
        from study_assistant.auth.tokens import create_access_token, decode_access_token

        payload = decode_access_token(create_access_token(uuid.uuid4(), "a@example.com", "user"))
        expected = time.time() + 7 * 24 * 3600
        assert abs(payload.exp - expected) < 60

    def test_expired_token_is_rejected(self):
        from study_assistant.auth.tokens import decode_access_token
        from study_assistant.core.config import settings

        token = jose_jwt.encode(
            {"userId": str(uuid.uuid4()), "email": "a@example.com", "role": "user",
             "exp": int(time.time()) - 60},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None

    def test_token_signed_with_other_secret_is_rejected(self):
        from study_assistant.auth.tokens import decode_access_token

        token = jose_jwt.encode(
            {"userId": str(uuid.uuid4()), "email": "a@example.com", "role": "user",
             "exp": int(time.time()) + 3600},
            "some-other-secret",
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_non_uuid_user_id_is_rejected(self):
        from study_assistant.auth.tokens import decode_access_token
        from study_assistant.core.config import settings

        token = jose_jwt.encode(
            {"userId": "not-a-uuid", "email": "a@example.com", "exp": int(time.time()) + 3600},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None

    def test_garbage_is_rejected(self):
        from study_assistant.auth.tokens import decode_access_token
        assert decode_access_token("not.a.jwt") is None


@pytest.mark.unit
@pytest.mark.auth
class TestTokenFromRequest:

    def test_bearer_header_wins_over_cookie(self):
        from study_assistant.auth.tokens import token_from_request
        req = _make_request({"Authorization": "Bearer header-token"}, {"token": "cookie-token"})
        assert token_from_request(req) == "header-token"

    def test_cookie_used_without_header(self):
        from study_assistant.auth.tokens import token_from_request
        assert token_from_request(_make_request(cookies={"token": "cookie-token"})) == "cookie-token"

    def test_non_bearer_scheme_falls_back_to_cookie(self):
        from study_assistant.auth.tokens import token_from_request
        req = _make_request({"Authorization": "Basic dXNlcjpwYXNz"})
        assert token_from_request(req) is None


@pytest.mark.unit
@pytest.mark.auth
class TestGetCurrentUser:

    async def test_resolves_existing_user(self, session_factory, user):
        from study_assistant.auth.tokens import create_access_token, get_current_user

        req = _make_request({"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"})
        async with session_factory() as db:
            resolved = await get_current_user(req, db)
        assert resolved.id == user.id

    async def test_missing_token_raises_401(self, session_factory):
        from study_assistant.auth.tokens import get_current_user

        async with session_factory() as db:
            with pytest.raises(Unauthorized):
                await get_current_user(_make_request(), db)

    async def test_deleted_user_raises_401(self, session_factory):
        from study_assistant.auth.tokens import create_access_token, get_current_user

        token = create_access_token(uuid.uuid4(), "gone@example.com", "user")
        async with session_factory() as db:
            with pytest.raises(Unauthorized) as exc_info:
                await get_current_user(_make_request({"Authorization": f"Bearer {token}"}), db)
        assert exc_info.value.message == "Invalid or expired token"


# ─────────────────────────────────────────────────────────────────────────────
# Passwords
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.auth
class TestPasswords:

    def test_hash_verifies(self, password_hash, test_password):
        from study_assistant.auth.passwords import verify_password

        assert verify_password(test_password, password_hash)
        assert not verify_password("wrong-password", password_hash)

    def test_account_without_hash_never_verifies(self):
        from study_assistant.auth.passwords import verify_password
        assert not verify_password("anything", None)

    def test_malformed_hash_does_not_raise(self):
        from study_assistant.auth.passwords import verify_password
        assert not verify_password("anything", "not-a-bcrypt-hash")


# ─────────────────────────────────────────────────────────────────────────────
# Six-digit verification codes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.auth
class TestVerificationCodes:

    def test_generated_codes_are_six_digits(self):
        from study_assistant.services.verification import generate_code
        for _ in range(50):
            code = generate_code()
            assert len(code) == 6 and code.isdigit() and code[0] != "0"

    async def test_issue_replaces_previous_codes(self, session_factory):
        from study_assistant.models import EmailVerification
        from study_assistant.services.verification import issue_code

        async with session_factory() as db:
            await issue_code(db, "new@example.com")
            latest = await issue_code(db, "new@example.com")
            await db.commit()

            rows = (await db.scalars(
                select(EmailVerification).where(EmailVerification.email == "new@example.com")
            )).all()
        assert [r.code for r in rows] == [latest]

    async def test_wrong_code_is_rejected(self, session_factory):
        from study_assistant.services.verification import check_code, issue_code

        async with session_factory() as db:
            code = await issue_code(db, "new@example.com")
            wrong = "111111" if code != "111111" else "222222"
            with pytest.raises(ValidationFailed, match="Invalid verification code"):
                await check_code(db, "new@example.com", wrong)

    async def test_expired_code_is_deleted(self, session_factory, seed):
        from study_assistant.models import EmailVerification
        from study_assistant.models.base import utcnow
        from study_assistant.services.verification import check_code

        await seed(EmailVerification(
            email="late@example.com", code="123456", expires_at=utcnow() - timedelta(minutes=1),
        ))
        async with session_factory() as db:
            with pytest.raises(ValidationFailed, match="expired"):
                await check_code(db, "late@example.com", "123456")

        async with session_factory() as db:
            remaining = await db.scalar(
                select(EmailVerification).where(EmailVerification.email == "late@example.com")
            )
        assert remaining is None

    async def test_used_code_is_rejected(self, session_factory, seed):
        from study_assistant.models import EmailVerification
        from study_assistant.models.base import utcnow
        from study_assistant.services.verification import check_code

        await seed(EmailVerification(
            email="used@example.com", code="654321",
            expires_at=utcnow() + timedelta(minutes=5), verified=True,
        ))
        async with session_factory() as db:
            with pytest.raises(ValidationFailed, match="already been used"):
                await check_code(db, "used@example.com", "654321")

    async def test_find_verified_code_ignores_unverified(self, session_factory, seed):
        from study_assistant.models import EmailVerification
        from study_assistant.models.base import utcnow
        from study_assistant.services.verification import find_verified_code

        await seed(
            EmailVerification(email="a@example.com", code="111111",
                              expires_at=utcnow() + timedelta(minutes=5)),
            EmailVerification(email="b@example.com", code="222222",
                              expires_at=utcnow() + timedelta(minutes=5), verified=True),
        )
        async with session_factory() as db:
            assert await find_verified_code(db, "a@example.com", "111111") is None
            assert await find_verified_code(db, "b@example.com", "222222") is not None


# ─────────────────────────────────────────────────────────────────────────────
# OAuth redirects
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.auth
class TestOAuthUrls:

    def test_google_url_carries_state(self):
        from study_assistant.auth import oauth

        with patch.object(oauth.settings, "google_client_id", "google-client"):
            url = oauth.google_authorization_url("https://app.example.com/cb")

        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == ["google-client"]
        assert query["scope"] == ["openid email profile"]
        state = json.loads(base64.b64decode(query["state"][0]))
        assert state == {"redirect_uri": "https://app.example.com/cb"}

    def test_github_default_redirect(self):
        from study_assistant.auth import oauth

        with patch.object(oauth.settings, "github_client_id", "gh-client"), \
             patch.object(oauth.settings, "public_base_url", "https://study.example.com/"):
            url = oauth.github_authorization_url()

        query = parse_qs(urlparse(url).query)
        assert query["redirect_uri"] == ["https://study.example.com/api/auth/oauth/github/callback"]
        assert query["scope"] == ["user:email"]

    def test_unconfigured_provider_raises(self):
        from study_assistant.auth import oauth

        with patch.object(oauth.settings, "google_client_id", ""):
            with pytest.raises(ConfigurationError):
                oauth.google_authorization_url()
