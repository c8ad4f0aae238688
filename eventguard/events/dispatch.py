"""Routing of claimed webhook events to per-type handlers."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class EventDispatcher:
    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def register(self, event_type: str, handler: EventHandler) -> None:
        if not event_type:
            raise ValueError("event_type is required")
        self._handlers.setdefault(event_type, []).append(handler)

    def on(self, *event_types: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator form of :meth:`register` for one or more event types."""

        def decorator(handler: EventHandler) -> EventHandler:
            for event_type in event_types:
                self.register(event_type, handler)
            return handler

        return decorator

    def handled_types(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, event: dict[str, Any]) -> bool:
        """Run handlers for ``event['type']``. Returns False when none are registered."""
        event_type = event.get("type", "")
        handlers = self._handlers.get(event_type)
        if not handlers:
            logger.info("unhandled event type %s (event %s)", event_type, event.get("id"))
            return False
        for handler in handlers:
            await handler(event)
        return True
