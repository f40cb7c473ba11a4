from __future__ import annotations

import os

import redis

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)


def get_socket_timeout() -> float | None:
    # Seconds. Keeps a dead server from hanging a save; unset means redis-py's default.
    raw = os.environ.get("LABYRINTH_REDIS_TIMEOUT", "").strip()
    return float(raw) if raw else None


def create_redis() -> redis.Redis:
    # Saves and session ids are stored as JSON text, so decode to str.
    return redis.Redis.from_url(
        get_redis_url(),
        decode_responses=True,
        socket_timeout=get_socket_timeout(),
        socket_connect_timeout=get_socket_timeout(),
    )
