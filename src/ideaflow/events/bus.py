"""Workflow notifications.

Engines publish after their write has committed. Listeners are awaited one
at a time in registration order; a listener that raises is logged and
skipped, so notifications can never undo or block a stored decision.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from ideaflow.events.types import EventType

logger = logging.getLogger(__name__)

Listener = Callable[[EventType, dict[str, Any]], Coroutine[Any, Any, None]]


class EventBus:
    """In-process async publisher for workflow events."""

    def __init__(self) -> None:
        # (event type, listener); None matches every event type
        self._subscriptions: list[tuple[EventType | None, Listener]] = []

    def on(self, event_type: EventType, listener: Listener) -> None:
        """Subscribe to one event type."""
        self._subscriptions.append((event_type, listener))

    def on_all(self, listener: Listener) -> None:
        """Subscribe to every event type."""
        self._subscriptions.append((None, listener))

    def off(self, event_type: EventType | None, listener: Listener) -> None:
        """Drop a subscription. Pass None to drop an ``on_all`` listener."""
        self._subscriptions = [
            (subscribed, registered)
            for subscribed, registered in self._subscriptions
            if not (subscribed == event_type and registered is listener)
        ]

    async def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> int:
        """Deliver an event; returns how many listeners handled it cleanly."""
        payload = dict(data or {})
        delivered = 0

        for subscribed, listener in list(self._subscriptions):
            if subscribed is not None and subscribed != event_type:
                continue
            try:
                await listener(event_type, payload)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in event listener for %s", event_type)
                continue
            delivered += 1

        logger.debug("Emitted %s to %d listener(s)", event_type, delivered)
        return delivered

    def clear(self) -> None:
        self._subscriptions.clear()
