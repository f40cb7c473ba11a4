from __future__ import annotations

from typing import Protocol

from labyrinth.content.registry import GameContent, Question, Room


class ContentProvider(Protocol):
    """Read-only source of rooms and questions.

    Lookups are coroutines so an implementation may fetch over the network.
    """

    async def get_room(self, room_id: str) -> Room | None: ...

    async def get_question(self, question_id: str) -> Question | None: ...

    async def get_starting_room(self) -> Room: ...

    async def load_game_data(self) -> GameContent: ...


class StaticContentProvider:
    """ContentProvider over an already loaded GameContent."""

    def __init__(self, content: GameContent) -> None:
        self._content = content

    async def get_room(self, room_id: str) -> Room | None:
        return self._content.room(room_id)

    async def get_question(self, question_id: str) -> Question | None:
        return self._content.question(question_id)

    async def get_starting_room(self) -> Room:
        return self._content.starting_room

    async def load_game_data(self) -> GameContent:
        return self._content
