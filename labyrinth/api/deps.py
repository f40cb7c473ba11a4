from __future__ import annotations

from collections.abc import Generator

import redis

from labyrinth.infra.redis_client import create_redis
from labyrinth.sessions import SessionRegistry, registry


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        try:
            client.close()
        except redis.RedisError:
            # Closing a client whose server went away is not worth failing the request.
            pass


def get_registry() -> SessionRegistry:
    return registry
