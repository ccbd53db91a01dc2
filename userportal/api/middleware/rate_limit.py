"""
Fixed-window rate limiting for the API.

- auth: POSTs under /auth (login, register, refresh, logout) per client IP
- api: every other API call per verified account, or per IP when anonymous
"""

import time
from typing import Callable, Optional, Tuple

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from userportal.config import get_settings
from userportal.kernel.identity.jwt import get_token_issuer
from userportal.logging_config import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60
TOO_MANY_REQUESTS = '{"detail":"Too many requests. Please try again later.","code":"rate_limited"}'


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Get the client IP.

    X-Forwarded-For is client-controlled unless a proxy overwrites it, so it
    is only read when ``trust_forwarded_for`` is set.
    """
    forwarded = request.headers.get("x-forwarded-for") if trust_forwarded_for else None
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _verified_account_id(request: Request) -> Optional[str]:
    """Account id from a Bearer token that passes full validation, else None."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    identity = get_token_issuer().validate(auth[7:].strip())
    return str(identity.account_id) if identity else None


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self):
        self._data: dict[str, Tuple[int, float]] = {}

    def check_and_incr(
        self,
        scope: str,
        identifier: str,
        limit: int,
        window_seconds: int = WINDOW_SECONDS,
    ) -> Tuple[bool, int]:
        """
        Count one hit against ``scope:identifier``.

        Returns:
            (allowed, seconds until the window resets). A refused hit is not
            counted.
        """
        key = f"{scope}:{identifier}"
        now = time.monotonic()
        count, start = self._data.get(key, (0, now))
        if now - start >= window_seconds:
            count, start = 0, now
        retry_after = max(1, int(window_seconds - (now - start)))
        if count >= limit:
            return False, retry_after
        self._data[key] = (count + 1, start)
        return True, retry_after

    def cleanup_old(self, max_age_seconds: int = 3600) -> None:
        """Remove entries older than max_age_seconds to avoid unbounded growth."""
        now = time.monotonic()
        stale = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for key in stale:
            self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


# Module-level store (single process)
_store: Optional[InMemoryRateLimitStore] = None


def get_store() -> InMemoryRateLimitStore:
    global _store
    if _store is None:
        _store = InMemoryRateLimitStore()
    return _store


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests over the configured per-minute limits with 429."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = get_settings()
        if not settings.rate_limit_enabled:
            return await call_next(request)

        path = request.url.path or ""
        if not path.startswith(settings.api_v1_prefix):
            return await call_next(request)

        store = get_store()
        store.cleanup_old(max_age_seconds=2 * WINDOW_SECONDS)

        if path.startswith(f"{settings.api_v1_prefix}/auth") and request.method == "POST":
            scope = "auth"
            limit = settings.rate_limit_auth_per_minute
            identifier = get_client_ip(request, settings.trust_forwarded_for)
        else:
            scope = "api"
            limit = settings.rate_limit_api_per_minute
            identifier = _verified_account_id(request) or get_client_ip(
                request, settings.trust_forwarded_for
            )

        allowed, retry_after = store.check_and_incr(scope, identifier, limit)
        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"scope": scope, "path": path},
            )
            return Response(
                content=TOO_MANY_REQUESTS,
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                media_type="application/json",
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
