from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from labyrinth.core.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Named-channel publish/subscribe owned by a single engine instance.

    Handlers for a name run in registration order. A handler that raises is
    logged and skipped; the remaining handlers still run and the emitter never
    sees the exception.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event_name: str, handler: Handler) -> None:
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._handlers[event_name].append(handler)

    def off(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, payload: Any = None) -> None:
        # Copy so handlers may subscribe/unsubscribe while we iterate.
        handlers = list(self._handlers.get(event_name, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Error in event handler for %s", event_name)

    def publish(self, event: DomainEvent) -> None:
        self.emit(event.name, event)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, ()))
