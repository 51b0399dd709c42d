"""
Inbound rate limiting middleware.

Counts requests per client IP and, when a session token is presented, per
token, in fixed one-minute windows. Either limit being exceeded returns
429 Too Many Requests with Retry-After.
"""
import hashlib
import logging
import time
from collections import defaultdict
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from sellerdash.api.auth import get_session_token

logger = logging.getLogger(__name__)

DEFAULT_REQUESTS_PER_MINUTE_IP = 100
DEFAULT_REQUESTS_PER_MINUTE_USER = 100
WINDOW_SECONDS = 60


class InMemoryRateLimitStore:
    """Per-window request counters keyed by (identifier, window_start)."""

    def __init__(self, window_seconds: int = WINDOW_SECONDS, clock: Callable[[], float] = time.time):
        self._counts: dict[tuple[str, int], int] = defaultdict(int)
        self._window = window_seconds
        self._clock = clock

    def _window_start(self) -> int:
        return int(self._clock() // self._window) * self._window

    def increment(self, key: str) -> int:
        """Increment count for key in the current window; return the new count."""
        w = self._window_start()
        self._counts[(key, w)] += 1
        return self._counts[(key, w)]

    def cleanup_old(self) -> None:
        w = self._window_start()
        for k in [k for k in self._counts if k[1] < w]:
            del self._counts[k]


_store: Optional[InMemoryRateLimitStore] = None


def get_store() -> InMemoryRateLimitStore:
    global _store
    if _store is None:
        _store = InMemoryRateLimitStore()
    return _store


def get_client_ip(request: Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "0.0.0.0"


def _rate_limit_response(retry_after_seconds: int = WINDOW_SECONDS) -> Response:
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests. Please retry after the time indicated in Retry-After.",
            "retry_after_seconds": retry_after_seconds,
        },
        headers={"Retry-After": str(retry_after_seconds)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        requests_per_minute_ip: int = DEFAULT_REQUESTS_PER_MINUTE_IP,
        requests_per_minute_user: int = DEFAULT_REQUESTS_PER_MINUTE_USER,
        exempt_paths: Optional[list[str]] = None,
        store: Optional[InMemoryRateLimitStore] = None,
    ):
        super().__init__(app)
        self.rpm_ip = requests_per_minute_ip
        self.rpm_user = requests_per_minute_user
        self.exempt = set(exempt_paths or ["/health"])
        self._store = store

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if any(path == p or path.startswith(p + "/") for p in self.exempt):
            return await call_next(request)

        store = self._store or get_store()
        store.cleanup_old()

        client_ip = get_client_ip(request)
        if store.increment(f"ip:{client_ip}") > self.rpm_ip:
            logger.warning("Rate limit exceeded for IP %s", client_ip)
            return _rate_limit_response()

        token = get_session_token(request)
        if token:
            digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
            if store.increment(f"session:{digest}") > self.rpm_user:
                logger.warning("Rate limit exceeded for session %s", digest[:8])
                return _rate_limit_response()

        return await call_next(request)
