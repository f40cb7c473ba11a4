from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs (PyCharm/CLI).

    This makes REDIS_URL and friends available to tests without exporting them
    in your shell. In CI, `.env` is not loaded unless explicitly opted in with
    LABYRINTH_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("LABYRINTH_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@pytest.fixture(scope="session", autouse=True)
def _init_content_from_test_fixtures() -> None:
    """Initialize content from `tests/data` and forbid the built-in fallback.

    This keeps tests hermetic and prevents coupling to the repo's real castle.
    """

    os.environ["LABYRINTH_STRICT_CONTENT"] = "1"

    from labyrinth.content.singleton import init_content, reset_content_for_tests

    reset_content_for_tests()

    # Point the content loader at a fake project root: tests/ contains a data/ dir.
    test_root = Path(__file__).resolve().parent
    init_content(project_root=test_root)


@pytest.fixture(autouse=True)
def _fresh_session_registry() -> Generator[None, None, None]:
    from labyrinth.sessions import registry

    registry.clear()
    yield
    registry.clear()


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def client_and_redis():
    """Shared fixture for tests that need both a FastAPI TestClient and fakeredis."""

    import fakeredis
    from fastapi.testclient import TestClient

    from labyrinth.api.deps import get_redis
    from labyrinth.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
