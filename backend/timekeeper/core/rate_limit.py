"""In-memory rate limiting middleware for a single-instance deployment.

Limits:
  POST /tokens                → 10 requests/minute per IP
  GET /sessions/active/stream → 30 connects/minute per credential

The stream rule bounds subscriber churn from a reconnect loop.
"""

import time
from collections import defaultdict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

# (method, path prefix, max_requests, window_seconds)
_IP_RULES: list[tuple[str, str, int, int]] = [
    ("POST", "/tokens", 10, 60),
]

_TOKEN_RULES: list[tuple[str, str, int, int]] = [
    ("GET", "/sessions/active/stream", 30, 60),
]


class _TokenBucket:
    """Simple sliding-window counter store."""

    def __init__(self) -> None:
        # key -> list of timestamps
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_allowed(self, key: str, max_requests: int, window: int) -> bool:
        now = time.monotonic()
        cutoff = now - window
        hits = self._hits[key]
        # Prune old entries
        self._hits[key] = hits = [t for t in hits if t > cutoff]
        if len(hits) >= max_requests:
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        self._hits.clear()


_ip_bucket = _TokenBucket()
_token_bucket = _TokenBucket()


def _credential(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.query_params.get("token") or None


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        from timekeeper.config import settings
        if not settings.is_production:
            return await call_next(request)

        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        for method, prefix, max_req, window in _IP_RULES:
            if request.method == method and path.startswith(prefix):
                key = f"ip:{client_ip}:{prefix}"
                if not _ip_bucket.is_allowed(key, max_req, window):
                    return _rate_limit_response(request)

        token = _credential(request)
        if token:
            for method, prefix, max_req, window in _TOKEN_RULES:
                if request.method == method and path.startswith(prefix):
                    key = f"token:{token}:{prefix}"
                    if not _token_bucket.is_allowed(key, max_req, window):
                        return _rate_limit_response(request)

        return await call_next(request)


def _rate_limit_response(request: Request) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "status_code": 429,
            "detail": "Rate limit exceeded. Please try again later.",
            "request_id": request_id,
        },
        headers={"Retry-After": "60"},
    )
