"""Middleware: request ID injection, structured access logging.

Plain ASGI middleware rather than BaseHTTPMiddleware so long-lived event
streams pass through unbuffered.
"""

import hashlib
import logging
import time
import uuid

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("timekeeper.access")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware:
    """Inject a unique request ID into each request and response."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        await self.app(scope, receive, send_with_id)


class AccessLogMiddleware:
    """Structured access log: request_id, user_id (hashed), endpoint, status.

    Logged when the response finishes, so a stream's line carries how long
    the connection stayed open.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.monotonic()
        status_code = 500

        async def send_capturing_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_capturing_status)
        finally:
            state = scope.get("state", {})
            user_id_raw = state.get("user_id")
            client = scope.get("client")
            logger.info(
                "request_id=%s user=%s ip=%s method=%s path=%s status=%d elapsed_ms=%.1f",
                state.get("request_id", "-"),
                _hash_user_id(user_id_raw) if user_id_raw else "-",
                client[0] if client else "-",
                scope["method"],
                scope["path"],
                status_code,
                round((time.monotonic() - start) * 1000, 1),
            )


def _hash_user_id(uid) -> str:
    """Hash user ID for log privacy: first 12 chars of SHA-256."""
    return hashlib.sha256(str(uid).encode()).hexdigest()[:12]
