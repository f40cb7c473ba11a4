from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

import redis

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "lock:session:"  # + {session id}


class SessionBusy(ValueError):
    def __init__(self, session_id: str) -> None:
        super().__init__("Session is busy")
        self.session_id = session_id


def lock_key(session_id: str) -> str:
    return f"{LOCK_KEY_PREFIX}{session_id}"


def _text(value: str | bytes | None) -> str | None:
    return value.decode() if isinstance(value, bytes) else value


def release_lock(r: redis.Redis, key: str, token: str) -> bool:
    """Delete `key` only while it still holds `token`.

    A holder whose ttl ran out must not drop the lock someone else took since.
    """

    with r.pipeline() as pipe:
        try:
            pipe.watch(key)
            if _text(pipe.get(key)) != token:
                pipe.unwatch()
                logger.warning("Lock %s expired before release", key)
                return False
            pipe.multi()
            pipe.delete(key)
            pipe.execute()
            return True
        except redis.WatchError:
            logger.warning("Lock %s changed hands during release", key)
            return False


@contextmanager
def session_lock(*, r: redis.Redis, session_id: str, ttl_ms: int = 5_000) -> Iterator[str]:
    """Per-session lock serializing engine transitions; yields the holder token.

    The engine itself does no locking. The ttl bounds how long a crashed
    holder can block a session.
    """

    key = lock_key(session_id)
    token = uuid4().hex
    if not r.set(key, token, nx=True, px=ttl_ms):
        raise SessionBusy(session_id)
    try:
        yield token
    finally:
        release_lock(r, key, token)
