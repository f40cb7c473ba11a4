from __future__ import annotations

from typing import Protocol

import redis

from labyrinth.errors import PersistenceError


class KeyValueStorage(Protocol):
    """Single-key, all-or-nothing string storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class RedisStorage:
    """KeyValueStorage backed by a redis-py client.

    The client is expected to use `decode_responses=True`.
    """

    def __init__(self, r: redis.Redis) -> None:
        self._r = r

    def get(self, key: str) -> str | None:
        try:
            raw = self._r.get(key)
        except redis.RedisError as e:
            raise PersistenceError(f"Storage read failed: {e}") from e
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    def set(self, key: str, value: str) -> None:
        try:
            self._r.set(key, value)
        except redis.RedisError as e:
            raise PersistenceError(f"Storage write failed: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._r.delete(key)
        except redis.RedisError as e:
            raise PersistenceError(f"Storage delete failed: {e}") from e
