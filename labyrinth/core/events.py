from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Union

from labyrinth.content.registry import Room

EventName = Literal[
    "RoomChanged",
    "RoomUnlocked",
    "ScoreChanged",
    "QuestionAnswered",
    "GameCompleted",
    "GameSaved",
    "GameLoaded",
    "GameReset",
    "HintRequested",
    "QuestionSkipped",
    "AchievementUnlocked",
    "AchievementsReset",
    "Error",
]


@dataclass(frozen=True, slots=True)
class RoomChanged:
    name: ClassVar[EventName] = "RoomChanged"

    from_room_id: str
    to_room_id: str
    room: Room


@dataclass(frozen=True, slots=True)
class RoomUnlocked:
    name: ClassVar[EventName] = "RoomUnlocked"

    room_id: str


@dataclass(frozen=True, slots=True)
class ScoreChanged:
    name: ClassVar[EventName] = "ScoreChanged"

    score: int
    points_earned: int
    previous_score: int


@dataclass(frozen=True, slots=True)
class QuestionAnswered:
    name: ClassVar[EventName] = "QuestionAnswered"

    question_id: str
    is_correct: bool
    points_earned: int
    current_score: int
    correct_answer_index: int
    explanation: str
    # ms since the question timer started; 0 when it was never started.
    time_elapsed: int = 0


@dataclass(frozen=True, slots=True)
class GameCompleted:
    name: ClassVar[EventName] = "GameCompleted"

    final_score: int
    play_time: int
    rooms_visited: int
    total_rooms: int
    questions_answered: int
    total_questions: int
    correct_answers: int
    accuracy: float
    rooms_percentage: float
    questions_percentage: float
    is_perfect_game: bool
    is_speed_run: bool


@dataclass(frozen=True, slots=True)
class GameSaved:
    name: ClassVar[EventName] = "GameSaved"

    record: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GameLoaded:
    name: ClassVar[EventName] = "GameLoaded"

    record: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GameReset:
    name: ClassVar[EventName] = "GameReset"


@dataclass(frozen=True, slots=True)
class HintRequested:
    name: ClassVar[EventName] = "HintRequested"

    question_id: str
    hint: str


@dataclass(frozen=True, slots=True)
class QuestionSkipped:
    name: ClassVar[EventName] = "QuestionSkipped"

    question_id: str
    correct_answer_index: int
    explanation: str


@dataclass(frozen=True, slots=True)
class AchievementUnlocked:
    name: ClassVar[EventName] = "AchievementUnlocked"

    achievement_id: str
    title: str
    description: str
    category: str
    points: int
    unlocked_at: int
    total_points: int
    unlocked_count: int


@dataclass(frozen=True, slots=True)
class AchievementsReset:
    name: ClassVar[EventName] = "AchievementsReset"


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    name: ClassVar[EventName] = "Error"

    type: str
    message: str


DomainEvent = Union[
    RoomChanged,
    RoomUnlocked,
    ScoreChanged,
    QuestionAnswered,
    GameCompleted,
    GameSaved,
    GameLoaded,
    GameReset,
    HintRequested,
    QuestionSkipped,
    AchievementUnlocked,
    AchievementsReset,
    ErrorEvent,
]


# Field names that do not camel-case cleanly onto the wire names.
_WIRE_NAMES = {
    "from_room_id": "from",
    "to_room_id": "to",
}


def _camel(name: str) -> str:
    if name in _WIRE_NAMES:
        return _WIRE_NAMES[name]
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _wire_value(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {_camel(f.name): _wire_value(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_wire_value(v) for v in value]
    return value


def event_payload(event: DomainEvent) -> dict[str, Any]:
    """Render an event as a JSON-serializable dict with camelCase keys.

    GameSaved / GameLoaded flatten the serialized save record into the payload.
    """

    if isinstance(event, (GameSaved, GameLoaded)):
        return dict(event.record)
    return _wire_value(event)
