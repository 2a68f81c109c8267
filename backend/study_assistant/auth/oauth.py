"""
OAuth authorization redirects (Google, GitHub).

Only the first leg is built here: the provider authorization URL with the
client id, redirect URI, scope, and a base64 JSON `state` carrying the
redirect URI. Callback handling lives with the frontend deployment.
"""

from __future__ import annotations

import base64
import json
from urllib.parse import urlencode

from study_assistant.core.config import settings
from study_assistant.core.errors import ConfigurationError

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"


def _default_redirect(provider: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/api/auth/oauth/{provider}/callback"


def encode_state(redirect_uri: str) -> str:
    return base64.b64encode(json.dumps({"redirect_uri": redirect_uri}).encode()).decode()


def google_authorization_url(redirect_uri: str | None = None) -> str:
    if not settings.google_client_id:
        raise ConfigurationError("Google OAuth not configured")
    redirect_uri = redirect_uri or _default_redirect("google")
    params = {
        "client_id":     settings.google_client_id,
        "redirect_uri":  redirect_uri,
        "response_type": "code",
        "scope":         "openid email profile",
        "state":         encode_state(redirect_uri),
        "access_type":   "offline",
        "prompt":        "consent",
    }
    return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"


def github_authorization_url(redirect_uri: str | None = None) -> str:
    if not settings.github_client_id:
        raise ConfigurationError("GitHub OAuth not configured")
    redirect_uri = redirect_uri or _default_redirect("github")
    params = {
        "client_id":    settings.github_client_id,
        "redirect_uri": redirect_uri,
        "scope":        "user:email",
        "state":        encode_state(redirect_uri),
    }
    return f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}"
