"""
In-memory fixed-window rate limiting.

Each limiter keeps its own {client_id: window} map inside this process.
Running several API instances multiplies the effective limit; the
limiters are not shared across processes.

Presets (exposed as FastAPI dependencies):
    auth       5 requests / 15 minutes
    documents 10 requests / minute
    qa        20 requests / minute
    api       30 requests / minute

Usage::

    @router.post("/login", dependencies=[Depends(auth_rate_limit)])
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request

from study_assistant.core.errors import RateLimited

logger = logging.getLogger(__name__)

PRUNE_INTERVAL_S = 5 * 60


@dataclass
class _Window:
    count:    int
    reset_at: float   # epoch seconds


def client_id_from_request(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:

    def __init__(
        self,
        max_requests:   int,
        window_seconds: float,
        name:  str = "api",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests   = max_requests
        self.window_seconds = window_seconds
        self.name   = name
        self._clock = clock
        self._store: dict[str, _Window] = {}
        self._lock  = threading.Lock()
        self._last_prune = clock()

    def hit(self, client_id: str) -> None:
        """
        Count one request for client_id.

        Raises:
            RateLimited: the client is over the limit for the current window.
        """
        now = self._clock()
        with self._lock:
            self._maybe_prune(now)

            window = self._store.get(client_id)
            if window is None or now > window.reset_at:
                self._store[client_id] = _Window(count=1, reset_at=now + self.window_seconds)
                return

            window.count += 1
            if window.count <= self.max_requests:
                return

            retry_after = max(1, math.ceil(window.reset_at - now))
            remaining   = max(0, self.max_requests - window.count)
            reset_iso   = datetime.fromtimestamp(window.reset_at, tz=timezone.utc).isoformat()

        logger.warning(
            "Rate limit exceeded | limiter=%s client=%s retry_after=%ds",
            self.name, client_id, retry_after,
        )
        raise RateLimited(
            f"Rate limit exceeded. Please try again in {retry_after} seconds.",
            extra={"error": "Too many requests", "retryAfter": retry_after},
            headers={
                "Retry-After":           str(retry_after),
                "X-RateLimit-Limit":     str(self.max_requests),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset":     reset_iso,
            },
        )

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_prune < PRUNE_INTERVAL_S:
            return
        expired = [key for key, window in self._store.items() if now > window.reset_at]
        for key in expired:
            del self._store[key]
        self._last_prune = now

    async def __call__(self, request: Request) -> None:
        self.hit(client_id_from_request(request))


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

auth_rate_limit      = RateLimiter(5,  15 * 60, name="auth")
documents_rate_limit = RateLimiter(10, 60,      name="documents")
qa_rate_limit        = RateLimiter(20, 60,      name="qa")
api_rate_limit       = RateLimiter(30, 60,      name="api")

ALL_LIMITERS = (auth_rate_limit, documents_rate_limit, qa_rate_limit, api_rate_limit)
