from __future__ import annotations

import random
from collections.abc import Iterable

from labyrinth.content.registry import GameContent, Question


class QuestionPicker:
    """Chooses the next question to present.

    Questions are drawn from a shuffled pool; already answered ids are skipped.
    Preferred categories (normally the current room's) are tried first, in order.
    """

    def __init__(self, content: GameContent, *, seed: int | str | None = None) -> None:
        self._content = content
        self._rng = random.Random(seed)
        self._pool = list(content.questions)
        self._rng.shuffle(self._pool)

    def remaining(self, answered: Iterable[str]) -> list[Question]:
        done = set(answered)
        return [q for q in self._pool if q.id not in done]

    def next_question(self, *, answered: Iterable[str], preferred_categories: Iterable[str] = ()) -> Question | None:
        available = self.remaining(answered)
        if not available:
            return None

        for category in preferred_categories:
            in_category = [q for q in available if q.category == category]
            if in_category:
                return self._rng.choice(in_category)

        return available[0]
