from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable

Clock = Callable[[], int]

MAX_PLAYER_NAME_LENGTH = 50

_TAG_RE = re.compile(r"<[^>]*>")


def now_ms() -> int:
    return int(time.time() * 1000)


def sanitize_player_name(name: str) -> str:
    return _TAG_RE.sub("", name).strip()[:MAX_PLAYER_NAME_LENGTH]


@dataclass(slots=True)
class ProgressionState:
    """Mutable per-session player state.

    Invariants kept by the engine:
    - current_room_id in unlocked_rooms
    - visited_rooms <= unlocked_rooms
    - correct_answer_ids <= answered_questions
    - score never decreases, completed never reverts
    """

    current_room_id: str
    start_time: int
    score: int = 0
    visited_rooms: set[str] = field(default_factory=set)
    unlocked_rooms: set[str] = field(default_factory=set)
    answered_questions: set[str] = field(default_factory=set)
    correct_answer_ids: set[str] = field(default_factory=set)
    completed: bool = False
    player_name: str = ""

    @staticmethod
    def fresh(*, starting_room_id: str, start_time: int, player_name: str = "") -> "ProgressionState":
        return ProgressionState(
            current_room_id=starting_room_id,
            start_time=start_time,
            visited_rooms={starting_room_id},
            unlocked_rooms={starting_room_id},
            player_name=sanitize_player_name(player_name),
        )

    def play_time(self, now: int) -> int:
        return max(0, now - self.start_time)

    def snapshot(self, *, now: int) -> dict[str, Any]:
        return {
            "currentRoomId": self.current_room_id,
            "score": self.score,
            "visitedRooms": sorted(self.visited_rooms),
            "unlockedRooms": sorted(self.unlocked_rooms),
            "answeredQuestions": sorted(self.answered_questions),
            "correctAnswerIds": sorted(self.correct_answer_ids),
            "gameCompleted": self.completed,
            "playerName": self.player_name,
            "playTime": self.play_time(now),
        }
