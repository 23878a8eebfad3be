"""
Change notifications for presentation layers.

The reconciler publishes one SessionUpdatedFromRemote event per session it
actually changed. Subscribers register for a single session id or for all
sessions; a failing subscriber never affects others or the publisher.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from .utils import utc_now

logger = logging.getLogger(__name__)

ALL_SESSIONS = "*"


@dataclass(frozen=True)
class SessionUpdatedFromRemote:
    """A local session was created or replaced from its remote record."""

    session_id: str
    user_id: str
    created: bool = False
    occurred_at: datetime = field(default_factory=utc_now)


Handler = Callable[[SessionUpdatedFromRemote], None]


class SessionEventBus:
    """In-process publish/subscribe channel keyed by session id."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, handler: Handler, session_id: str = ALL_SESSIONS) -> Callable[[], None]:
        """Subscribe a handler to one session, or to all sessions.

        Returns:
            A callable that removes the subscription
        """
        self._subscribers[session_id].append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(session_id, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: SessionUpdatedFromRemote) -> None:
        """Deliver an event to session and wildcard subscribers."""
        handlers = list(self._subscribers.get(event.session_id, []))
        handlers.extend(self._subscribers.get(ALL_SESSIONS, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                logger.error(f"Session event handler failed for {event.session_id}: {exc}")

    def subscriber_count(self, session_id: str = ALL_SESSIONS) -> int:
        return len(self._subscribers.get(session_id, []))
