from __future__ import annotations

import fakeredis
import pytest

from labyrinth.content.singleton import get_content
from labyrinth.sessions import SessionRegistry


@pytest.mark.asyncio
async def test_least_recently_used_session_is_evicted_and_restorable() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    sessions = SessionRegistry(max_sessions=2)
    content = get_content()

    a = await sessions.create(r=r, content=content)
    b = await sessions.create(r=r, content=content)
    await a.engine.answer_question("q1", 1)
    a.engine.save_game()

    # Touch `a` so `b` becomes the oldest.
    assert await sessions.get(r=r, content=content, session_id=a.session_id) is a
    c = await sessions.create(r=r, content=content)

    assert sessions.in_memory() == 2
    assert sessions.list_ids(r=r) == sorted([a.session_id, b.session_id, c.session_id])

    restored = await sessions.get(r=r, content=content, session_id=b.session_id)
    assert restored is not None and restored is not b
    assert sessions.in_memory() == 2

    # `a` was the oldest now; it comes back from its save.
    again = await sessions.get(r=r, content=content, session_id=a.session_id)
    assert again is not a
    assert again.engine.state.correct_answer_ids == {"q1"}


def test_max_sessions_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SessionRegistry(max_sessions=0)
