"""Server-sent events response."""

import logging
from collections.abc import Callable

from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

logger = logging.getLogger("timekeeper.stream")


class EventStreamResponse(StreamingResponse):
    """text/event-stream response that treats a vanished client as a normal close.

    The body iterator is always closed on the way out so its cleanup runs
    deterministically instead of at garbage collection.
    """

    media_type = "text/event-stream"

    def __init__(
        self,
        content,
        status_code: int = 200,
        headers: dict | None = None,
        on_close: Callable[[], None] | None = None,
    ):
        headers = {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            **(headers or {}),
        }
        super().__init__(content, status_code=status_code, headers=headers)
        self._on_close = on_close

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (OSError, ClientDisconnect):
            logger.debug("event stream client went away during a push")
        finally:
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()
            # An iterator that never started has no cleanup of its own to run
            if self._on_close is not None:
                self._on_close()
