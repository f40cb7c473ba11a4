from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class SessionWebSocketHub:
    """In-process fan-out of domain events to the sockets watching a session.

    Connections are held per session id; a socket that fails a send is
    dropped. Messages must be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers[session_id].add(websocket)
        logger.debug("WebSocket attached to session %s", session_id)

    async def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._drop(session_id, [websocket])

    def _drop(self, session_id: str, sockets: list[WebSocket]) -> None:
        watchers = self._watchers.get(session_id)
        if watchers is None:
            return
        watchers.difference_update(sockets)
        if not watchers:
            del self._watchers[session_id]

    def watcher_count(self, session_id: str) -> int:
        return len(self._watchers.get(session_id, ()))

    async def broadcast(self, session_id: str, message: dict[str, Any]) -> None:
        async with self._lock:
            watchers = list(self._watchers.get(session_id, ()))

        dead: list[WebSocket] = []
        for ws in watchers:
            try:
                await ws.send_json(message)
            except Exception:
                logger.debug("Dropping dead WebSocket on session %s", session_id, exc_info=True)
                dead.append(ws)

        if dead:
            async with self._lock:
                self._drop(session_id, dead)


hub = SessionWebSocketHub()
