from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import get_args
from uuid import uuid4

import redis

from labyrinth.achievements import AchievementStore, AchievementTracker, achievements_key
from labyrinth.content.provider import StaticContentProvider
from labyrinth.content.registry import GameContent
from labyrinth.core.events import DomainEvent, EventName
from labyrinth.engine import EngineSettings, ProgressionEngine
from labyrinth.persistence.codec import is_valid_id
from labyrinth.persistence.storage import RedisStorage
from labyrinth.persistence.store import SaveStore, save_key
from labyrinth.questions import QuestionPicker

logger = logging.getLogger(__name__)

SESSIONS_SET_KEY = "labyrinth:sessions"
DEFAULT_MAX_SESSIONS = 1000


@dataclass(slots=True)
class Session:
    session_id: str
    engine: ProgressionEngine
    picker: QuestionPicker
    achievements: AchievementTracker
    # Events emitted by the engine since the last drain; the API pushes them to websockets.
    outbox: list[DomainEvent] = field(default_factory=list)

    def drain(self) -> list[DomainEvent]:
        # Cleared in place: the bus holds a bound `outbox.append`.
        events = list(self.outbox)
        self.outbox.clear()
        return events

    def bind(self, r: redis.Redis) -> None:
        """Point the save and achievement slots at the request's redis client."""

        storage = RedisStorage(r)
        self.engine.saves = SaveStore(storage=storage, key=save_key(self.session_id))
        self.achievements.store = AchievementStore(storage=storage, key=achievements_key(self.session_id))


class SessionRegistry:
    """In-process engines keyed by session id.

    A session unknown to this process but listed in redis is rebuilt from its
    save on first access. At most `max_sessions` engines stay in memory; the
    least recently used one is dropped first and comes back through that same
    restore path.
    """

    def __init__(self, *, settings: EngineSettings | None = None, max_sessions: int = DEFAULT_MAX_SESSIONS) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.settings = settings
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def _build(self, *, session_id: str, content: GameContent, r: redis.Redis) -> Session:
        engine = ProgressionEngine(content=StaticContentProvider(content), settings=self.settings)
        outbox: list[DomainEvent] = []
        for name in get_args(EventName):
            engine.bus.on(name, outbox.append)
        achievements = AchievementTracker(bus=engine.bus, total_rooms=len(content.rooms))
        session = Session(
            session_id=session_id,
            engine=engine,
            picker=QuestionPicker(content, seed=session_id),
            achievements=achievements,
            outbox=outbox,
        )
        session.bind(r)
        return session

    def _remember(self, session: Session) -> None:
        self._sessions[session.session_id] = session
        self._sessions.move_to_end(session.session_id)
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted session %s from memory", evicted)

    async def create(self, *, r: redis.Redis, content: GameContent, player_name: str = "") -> Session:
        session_id = uuid4().hex
        session = self._build(session_id=session_id, content=content, r=r)
        await session.engine.start(player_name=player_name)
        session.engine.save_game()
        session.achievements.sync(session.engine.state)

        r.sadd(SESSIONS_SET_KEY, session_id)
        self._remember(session)
        logger.info("Created session %s", session_id)
        return session

    async def get(self, *, r: redis.Redis, content: GameContent, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            session.bind(r)
            return session

        if not is_valid_id(session_id, max_length=64) or not r.sismember(SESSIONS_SET_KEY, session_id):
            return None

        session = self._build(session_id=session_id, content=content, r=r)
        await session.engine.start(restore=True)
        session.achievements.load()
        session.achievements.sync(session.engine.state)
        self._remember(session)
        logger.info("Restored session %s from storage", session_id)
        return session

    def list_ids(self, *, r: redis.Redis) -> list[str]:
        return sorted(set(r.smembers(SESSIONS_SET_KEY)) | set(self._sessions))

    def in_memory(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()


registry = SessionRegistry()
