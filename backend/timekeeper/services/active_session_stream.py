"""Live push stream of one user's active session.

Each connection owns one ActiveSessionStream. It pushes a snapshot:

- on open, from a fresh read;
- whenever the notifier reports a change, from a fresh read. Fresh reads are
  spaced at least ``refresh_window`` apart; events arriving inside the window
  collapse into one trailing read, which always happens after the commit
  that caused them;
- every ``tick_interval`` otherwise, re-rendering the cached snapshot with a
  recomputed elapsed time and no storage query.

Teardown (unsubscribe, stop ticking) runs however the stream ends.
"""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime

from timekeeper.core.notifier import ActiveSessionNotifier, Subscription
from timekeeper.models.base import utcnow
from timekeeper.schemas.active_session import ActiveSessionState

logger = logging.getLogger("timekeeper.stream")

StateLoader = Callable[[uuid.UUID], Awaitable[ActiveSessionState]]
DisconnectCheck = Callable[[], Awaitable[bool]]


def format_event(payload: dict) -> str:
    """Encode one server-sent event frame."""
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


class ActiveSessionStream:
    def __init__(
        self,
        user_id: uuid.UUID,
        *,
        loader: StateLoader,
        notifier: ActiveSessionNotifier,
        tick_interval: float = 1.0,
        refresh_window: float = 0.1,
        max_lifetime: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.user_id = user_id
        self._loader = loader
        self._notifier = notifier
        self._tick_interval = tick_interval
        self._refresh_window = refresh_window
        self._max_lifetime = max_lifetime
        self._clock = clock
        self._now = now

        self._changed = asyncio.Event()
        self._subscription: Subscription | None = None
        self._state: ActiveSessionState | None = None
        self._fetched_at: float | None = None
        self._opened_at: float | None = None
        self._closed = False
        self.fetch_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_change(self, user_id: uuid.UUID) -> None:
        self._changed.set()

    def open(self) -> None:
        """Subscribe to change events. Raises TooManySubscribers past the cap."""
        if self._subscription is None:
            self._subscription = self._notifier.subscribe(self.user_id, self._on_change)
            self._opened_at = self._clock()

    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        self._closed = True
        self._changed.set()
        if self._subscription is not None:
            self._notifier.unsubscribe(self._subscription)
            self._subscription = None
            logger.debug("stream closed for user=%s", self.user_id)

    async def refresh(self) -> ActiveSessionState:
        """Fresh read from storage, replacing the cached snapshot."""
        self._changed.clear()
        self._state = await self._loader(self.user_id)
        self._fetched_at = self._clock()
        self.fetch_count += 1
        return self._state

    def render(self) -> dict:
        """Cached snapshot with elapsed time recomputed for now."""
        state = self._state
        if state is None or not state.active or state.start_time is None:
            return {"active": False, "elapsed_seconds": 0}
        elapsed = int((self._now() - state.start_time).total_seconds())
        return state.model_copy(update={"elapsed_seconds": max(0, elapsed)}).to_payload()

    def _expired(self) -> bool:
        if not self._max_lifetime or self._opened_at is None:
            return False
        return self._clock() - self._opened_at >= self._max_lifetime

    async def _wait_for_change(self) -> bool:
        """Wait up to one tick for a change event. True when one arrived."""
        try:
            await asyncio.wait_for(self._changed.wait(), timeout=self._tick_interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _throttle(self) -> None:
        if self._fetched_at is None:
            return
        remaining = self._refresh_window - (self._clock() - self._fetched_at)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def snapshots(
        self,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[dict]:
        """Yield payloads until the client goes away or the stream is closed."""
        self.open()
        try:
            await self.refresh()
            yield self.render()

            while not self._closed:
                changed = await self._wait_for_change()
                if self._closed:
                    break
                if self._expired():
                    logger.info("stream for user=%s reached its maximum lifetime", self.user_id)
                    break
                if is_disconnected is not None and await is_disconnected():
                    break
                if changed:
                    await self._throttle()
                    await self.refresh()
                yield self.render()
        finally:
            self.close()

    async def events(
        self,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[str]:
        """Server-sent event frames for a streaming HTTP response."""
        snapshots = self.snapshots(is_disconnected)
        try:
            async for payload in snapshots:
                yield format_event(payload)
        finally:
            await snapshots.aclose()
