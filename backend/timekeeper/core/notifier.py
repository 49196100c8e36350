"""In-process change notifier for active sessions.

Subscribers register per user id and are woken on every publish for that
user. Events carry only the user id: subscribers always re-read state
themselves. Delivery is in-memory and scoped to this process.
"""

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field

from timekeeper.core.errors import TooManySubscribers

logger = logging.getLogger("timekeeper.notifier")

Callback = Callable[[uuid.UUID], None]


@dataclass(eq=False)
class Subscription:
    user_id: uuid.UUID
    callback: Callback
    id: uuid.UUID = field(default_factory=uuid.uuid4)


class ActiveSessionNotifier:
    """Publish/subscribe channel keyed by user id."""

    def __init__(self, max_subscribers_per_user: int = 16) -> None:
        self._max_per_user = max_subscribers_per_user
        self._subscribers: dict[uuid.UUID, list[Subscription]] = defaultdict(list)

    def subscribe(self, user_id: uuid.UUID, callback: Callback) -> Subscription:
        current = self._subscribers[user_id]
        if self._max_per_user and len(current) >= self._max_per_user:
            raise TooManySubscribers()
        subscription = Subscription(user_id=user_id, callback=callback)
        current.append(subscription)
        logger.debug("subscribed user=%s total=%d", user_id, len(current))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Unknown or already removed handles are ignored."""
        current = self._subscribers.get(subscription.user_id)
        if not current:
            return
        try:
            current.remove(subscription)
        except ValueError:
            return
        if not current:
            del self._subscribers[subscription.user_id]
        logger.debug("unsubscribed user=%s", subscription.user_id)

    def publish(self, user_id: uuid.UUID) -> int:
        """Wake every subscriber of user_id. Returns how many were notified."""
        delivered = 0
        # Copy: callbacks may unsubscribe while we iterate
        for subscription in list(self._subscribers.get(user_id, ())):
            try:
                subscription.callback(user_id)
            except Exception:
                logger.exception("subscriber callback failed for user=%s", user_id)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, user_id: uuid.UUID | None = None) -> int:
        if user_id is not None:
            return len(self._subscribers.get(user_id, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def clear(self) -> None:
        self._subscribers.clear()


# Module-level singleton, created in the app lifespan and replaced in tests
_notifier: ActiveSessionNotifier | None = None


def get_notifier() -> ActiveSessionNotifier:
    """Get the process-wide notifier, creating it on first use."""
    global _notifier
    if _notifier is None:
        from timekeeper.config import settings

        _notifier = ActiveSessionNotifier(settings.notifier_max_subscribers_per_user)
    return _notifier


def set_notifier(notifier: ActiveSessionNotifier | None) -> None:
    """Replace the notifier (startup/shutdown and tests)."""
    global _notifier
    _notifier = notifier
