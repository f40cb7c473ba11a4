from __future__ import annotations

from typing import Any

from labyrinth.persistence.codec import DEFAULT_LIMITS, DecodeResult, SaveLimits, deserialize, encode, serialize
from labyrinth.persistence.storage import KeyValueStorage
from labyrinth.state import ProgressionState

SAVE_KEY_PREFIX = "labyrinth:save:"  # + {session id}
DEFAULT_SAVE_KEY = "lobeLabyrinthSave"


def save_key(session_id: str) -> str:
    return f"{SAVE_KEY_PREFIX}{session_id}"


class SaveStore:
    """One save slot: a storage key plus the codec.

    Storage failures propagate as PersistenceError; bad data never raises.
    """

    def __init__(self, *, storage: KeyValueStorage, key: str = DEFAULT_SAVE_KEY, limits: SaveLimits = DEFAULT_LIMITS) -> None:
        self.storage = storage
        self.key = key
        self.limits = limits

    def write(self, state: ProgressionState, *, now: int) -> dict[str, Any]:
        record = serialize(state, now=now)
        self.storage.set(self.key, encode(record))
        return record

    def read(self, *, now: int, starting_room_id: str | None) -> DecodeResult | None:
        raw = self.storage.get(self.key)
        if raw is None:
            return None
        return deserialize(raw, now=now, starting_room_id=starting_room_id, limits=self.limits)

    def exists(self) -> bool:
        return self.storage.get(self.key) is not None

    def clear(self) -> None:
        self.storage.remove(self.key)
