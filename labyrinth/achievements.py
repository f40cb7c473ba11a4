"""Achievements: long-lived goals unlocked from the engine's domain events.

An AchievementTracker subscribes to an engine's EventBus, keeps a running
tally of answers, rooms and completion, and publishes AchievementUnlocked on
the same bus. Its progress is persisted separately from the game save, so a
game reset keeps unlocked achievements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from labyrinth.core.bus import EventBus
from labyrinth.core.events import (
    AchievementsReset,
    AchievementUnlocked,
    ErrorEvent,
    GameCompleted,
    QuestionAnswered,
    QuestionSkipped,
    RoomChanged,
)
from labyrinth.errors import PersistenceError
from labyrinth.persistence.storage import KeyValueStorage
from labyrinth.state import Clock, ProgressionState, now_ms

logger = logging.getLogger(__name__)

ACHIEVEMENTS_KEY_PREFIX = "labyrinth:achievements:"  # + {session id}
DEFAULT_ACHIEVEMENTS_KEY = "lobeLabyrinth_achievements"

QUICK_ANSWER_MS = 10_000
RECENT_RESULTS = 10
MAX_QUICK_TIMES = 100

CONDITION_TYPES = frozenset(
    {
        "correct_answers",
        "total_questions",
        "rooms_visited",
        "quick_answers",
        "consecutive_correct",
        "comeback_correct",
        "accuracy_with_minimum",
        "completion_time",
        "all_rooms_visited",
        "specific_room_visited",
        "game_completed",
        "game_completed_perfect",
    }
)


def achievements_key(session_id: str) -> str:
    return f"{ACHIEVEMENTS_KEY_PREFIX}{session_id}"


class AnswerTally(BaseModel):
    """Running counters the conditions are measured against."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    correct_answers: int = Field(0, ge=0)
    total_questions: int = Field(0, ge=0)
    # Elapsed ms of correct answers given inside QUICK_ANSWER_MS.
    quick_answer_times: list[int] = Field(default_factory=list, max_length=MAX_QUICK_TIMES)
    consecutive_correct: int = Field(0, ge=0)
    max_consecutive_correct: int = Field(0, ge=0)
    # Oldest first.
    recent_results: list[bool] = Field(default_factory=list, max_length=RECENT_RESULTS)
    rooms_visited: list[str] = Field(default_factory=list)
    completed: bool = False
    perfect: bool = False
    play_time: int | None = Field(None, ge=0)


class AchievementRecord(BaseModel):
    """Persisted achievement progress for one session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    unlocked_at: dict[str, int] = Field(default_factory=dict)
    progress: dict[str, int] = Field(default_factory=dict)
    total_points: int = Field(0, ge=0)
    tally: AnswerTally = Field(default_factory=AnswerTally)


@dataclass(frozen=True, slots=True)
class AchievementCondition:
    type: str
    value: int = 1
    room_id: str = ""
    time_limit_ms: int = QUICK_ANSWER_MS
    min_questions: int = 0
    accuracy: float = 0.0

    def __post_init__(self) -> None:
        if self.type not in CONDITION_TYPES:
            raise ValueError(f"Unknown achievement condition type: {self.type}")

    def max_progress(self, total_rooms: int) -> int:
        if self.type in {"correct_answers", "total_questions", "rooms_visited", "quick_answers", "consecutive_correct"}:
            return self.value
        if self.type == "accuracy_with_minimum":
            return self.min_questions
        if self.type == "all_rooms_visited":
            return total_rooms
        return 1

    def measure(self, tally: AnswerTally, *, total_rooms: int) -> tuple[int, bool]:
        """Current progress toward the goal, and whether it is met."""

        t = self.type
        if t == "correct_answers":
            progress = tally.correct_answers
        elif t == "total_questions":
            progress = tally.total_questions
        elif t in {"rooms_visited", "all_rooms_visited"}:
            progress = len(tally.rooms_visited)
        elif t == "quick_answers":
            progress = sum(1 for ms in tally.quick_answer_times if ms < self.time_limit_ms)
        elif t == "consecutive_correct":
            progress = tally.max_consecutive_correct
        elif t == "accuracy_with_minimum":
            total = tally.total_questions
            met = total >= self.min_questions and total > 0 and tally.correct_answers / total >= self.accuracy
            return min(total, self.min_questions), met
        elif t == "comeback_correct":
            # `value` wrong answers in a row, then a correct one.
            window = tally.recent_results[-(self.value + 1) :]
            met = len(window) == self.value + 1 and window[-1] and not any(window[:-1])
            return int(met), met
        elif t == "completion_time":
            met = tally.completed and tally.play_time is not None and tally.play_time <= self.value
            return int(met), met
        elif t == "specific_room_visited":
            progress = int(self.room_id in tally.rooms_visited)
        elif t == "game_completed":
            progress = int(tally.completed)
        else:
            progress = int(tally.completed and tally.perfect)

        return progress, progress >= self.max_progress(total_rooms)


@dataclass(frozen=True, slots=True)
class Achievement:
    id: str
    title: str
    description: str
    category: str
    points: int
    condition: AchievementCondition


DEFAULT_ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement(
        "first_steps",
        "First Steps",
        "Answer your first question correctly.",
        "progress",
        10,
        AchievementCondition("correct_answers", value=1),
    ),
    Achievement(
        "scholar",
        "Scholar",
        "Answer 10 questions correctly.",
        "progress",
        50,
        AchievementCondition("correct_answers", value=10),
    ),
    Achievement(
        "curious_mind",
        "Curious Mind",
        "Attempt 5 questions.",
        "progress",
        15,
        AchievementCondition("total_questions", value=5),
    ),
    Achievement(
        "explorer",
        "Explorer",
        "Visit 5 rooms.",
        "exploration",
        25,
        AchievementCondition("rooms_visited", value=5),
    ),
    Achievement(
        "cartographer",
        "Cartographer",
        "Visit every room in the castle.",
        "exploration",
        100,
        AchievementCondition("all_rooms_visited"),
    ),
    Achievement(
        "royal_audience",
        "Royal Audience",
        "Reach the throne room.",
        "exploration",
        50,
        AchievementCondition("specific_room_visited", room_id="throne_room"),
    ),
    Achievement(
        "quick_thinker",
        "Quick Thinker",
        "Answer 3 questions correctly in under 5 seconds each.",
        "skill",
        30,
        AchievementCondition("quick_answers", value=3, time_limit_ms=5_000),
    ),
    Achievement(
        "on_a_roll",
        "On a Roll",
        "Answer 5 questions in a row correctly.",
        "skill",
        40,
        AchievementCondition("consecutive_correct", value=5),
    ),
    Achievement(
        "comeback",
        "Comeback",
        "Answer correctly right after 2 wrong answers.",
        "skill",
        20,
        AchievementCondition("comeback_correct", value=2),
    ),
    Achievement(
        "sharpshooter",
        "Sharpshooter",
        "Keep 90% accuracy over at least 10 questions.",
        "skill",
        75,
        AchievementCondition("accuracy_with_minimum", min_questions=10, accuracy=0.9),
    ),
    Achievement(
        "champion",
        "Champion",
        "Complete the labyrinth.",
        "completion",
        100,
        AchievementCondition("game_completed"),
    ),
    Achievement(
        "speed_runner",
        "Speed Runner",
        "Complete the labyrinth in under 10 minutes.",
        "completion",
        150,
        AchievementCondition("completion_time", value=600_000),
    ),
    Achievement(
        "perfectionist",
        "Perfectionist",
        "Complete the labyrinth without a wrong answer.",
        "completion",
        200,
        AchievementCondition("game_completed_perfect"),
    ),
)


@dataclass(frozen=True, slots=True)
class AchievementStatus:
    achievement: Achievement
    unlocked_at: int | None
    progress: int
    max_progress: int

    @property
    def unlocked(self) -> bool:
        return self.unlocked_at is not None

    @property
    def progress_percentage(self) -> float:
        if self.unlocked:
            return 100.0
        if self.max_progress <= 0:
            return 0.0
        return round(min(self.progress, self.max_progress) / self.max_progress * 100, 1)


@dataclass(frozen=True, slots=True)
class CategoryProgress:
    total: int
    unlocked: int

    @property
    def percentage(self) -> float:
        return round(self.unlocked / self.total * 100, 1) if self.total else 0.0


@dataclass(frozen=True, slots=True)
class AchievementSummary:
    total: int
    unlocked: int
    percentage: float
    total_points: int
    categories: dict[str, CategoryProgress] = field(default_factory=dict)


class AchievementStore:
    """One achievement slot in a KeyValueStorage.

    Unreadable data is logged, removed and treated as no progress.
    Storage failures propagate as PersistenceError.
    """

    def __init__(self, *, storage: KeyValueStorage, key: str = DEFAULT_ACHIEVEMENTS_KEY) -> None:
        self.storage = storage
        self.key = key

    def read(self) -> AchievementRecord | None:
        raw = self.storage.get(self.key)
        if raw is None:
            return None
        try:
            return AchievementRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("Discarding unreadable achievements %s: %s", self.key, e.errors()[:1])
            self.storage.remove(self.key)
            return None

    def write(self, record: AchievementRecord) -> None:
        self.storage.set(self.key, record.model_dump_json(by_alias=True))

    def clear(self) -> None:
        self.storage.remove(self.key)


class AchievementTracker:
    def __init__(
        self,
        *,
        bus: EventBus,
        total_rooms: int,
        definitions: tuple[Achievement, ...] = DEFAULT_ACHIEVEMENTS,
        store: AchievementStore | None = None,
        clock: Clock = now_ms,
    ) -> None:
        ids = [a.id for a in definitions]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate achievement ids")

        self.bus = bus
        self.total_rooms = total_rooms
        self.definitions = definitions
        self.store = store
        self.clock = clock
        self.record = AchievementRecord()

        bus.on("QuestionAnswered", self._on_question_answered)
        bus.on("QuestionSkipped", self._on_question_skipped)
        bus.on("RoomChanged", self._on_room_changed)
        bus.on("GameCompleted", self._on_game_completed)

    def _report_storage(self, error: PersistenceError, *, error_type: str) -> None:
        logger.warning("Achievement storage failed: %s", error)
        self.bus.publish(ErrorEvent(type=error_type, message=str(error)))

    def load(self) -> bool:
        """Replace in-memory progress with the stored record, if there is one."""

        if self.store is None:
            return False
        try:
            record = self.store.read()
        except PersistenceError as e:
            self._report_storage(e, error_type="load")
            return False
        if record is None:
            return False
        self.record = record
        return True

    def save(self) -> bool:
        if self.store is None:
            return False
        try:
            self.store.write(self.record)
        except PersistenceError as e:
            self._report_storage(e, error_type="save")
            return False
        return True

    def sync(self, state: ProgressionState) -> None:
        """Fold rooms the player already stands in or visited into the tally."""

        rooms = self.record.tally.rooms_visited
        for room_id in sorted(state.visited_rooms):
            if room_id not in rooms:
                rooms.append(room_id)

    def _on_question_answered(self, event: QuestionAnswered) -> None:
        tally = self.record.tally
        tally.total_questions += 1
        if event.is_correct:
            tally.correct_answers += 1
            tally.consecutive_correct += 1
            tally.max_consecutive_correct = max(tally.max_consecutive_correct, tally.consecutive_correct)
            if event.time_elapsed < QUICK_ANSWER_MS:
                tally.quick_answer_times = (tally.quick_answer_times + [event.time_elapsed])[-MAX_QUICK_TIMES:]
        else:
            tally.consecutive_correct = 0
        tally.recent_results = (tally.recent_results + [event.is_correct])[-RECENT_RESULTS:]
        self.check()

    def _on_question_skipped(self, event: QuestionSkipped) -> None:
        # A skip counts as a miss.
        tally = self.record.tally
        tally.total_questions += 1
        tally.consecutive_correct = 0
        tally.recent_results = (tally.recent_results + [False])[-RECENT_RESULTS:]
        self.check()

    def _on_room_changed(self, event: RoomChanged) -> None:
        if event.to_room_id not in self.record.tally.rooms_visited:
            self.record.tally.rooms_visited.append(event.to_room_id)
        self.check()

    def _on_game_completed(self, event: GameCompleted) -> None:
        tally = self.record.tally
        tally.completed = True
        tally.perfect = event.is_perfect_game
        tally.play_time = event.play_time
        self.check()

    def check(self) -> list[str]:
        """Unlock every achievement whose condition now holds; returns the new ids."""

        record = self.record
        unlocked: list[str] = []
        for achievement in self.definitions:
            if achievement.id in record.unlocked_at:
                continue
            condition = achievement.condition
            progress, met = condition.measure(record.tally, total_rooms=self.total_rooms)
            record.progress[achievement.id] = min(progress, condition.max_progress(self.total_rooms))
            if met:
                self._unlock(achievement)
                unlocked.append(achievement.id)
        self.save()
        return unlocked

    def _unlock(self, achievement: Achievement) -> None:
        record = self.record
        unlocked_at = self.clock()
        record.unlocked_at[achievement.id] = unlocked_at
        record.total_points += achievement.points

        logger.info("Achievement unlocked: %s (+%d points)", achievement.id, achievement.points)
        self.bus.publish(
            AchievementUnlocked(
                achievement_id=achievement.id,
                title=achievement.title,
                description=achievement.description,
                category=achievement.category,
                points=achievement.points,
                unlocked_at=unlocked_at,
                total_points=record.total_points,
                unlocked_count=len(record.unlocked_at),
            )
        )

    def reset(self) -> None:
        self.record = AchievementRecord()
        if self.store is not None:
            try:
                self.store.clear()
            except PersistenceError as e:
                self._report_storage(e, error_type="save")
        logger.info("Achievement progress reset")
        self.bus.publish(AchievementsReset())

    def statuses(self) -> list[AchievementStatus]:
        record = self.record
        return [
            AchievementStatus(
                achievement=a,
                unlocked_at=record.unlocked_at.get(a.id),
                progress=record.progress.get(a.id, 0),
                max_progress=a.condition.max_progress(self.total_rooms),
            )
            for a in self.definitions
        ]

    def summary(self) -> AchievementSummary:
        counts: dict[str, list[int]] = {}
        for status in self.statuses():
            total_unlocked = counts.setdefault(status.achievement.category, [0, 0])
            total_unlocked[0] += 1
            total_unlocked[1] += int(status.unlocked)

        total = len(self.definitions)
        unlocked = sum(1 for a in self.definitions if a.id in self.record.unlocked_at)
        return AchievementSummary(
            total=total,
            unlocked=unlocked,
            percentage=round(unlocked / total * 100, 1) if total else 0.0,
            total_points=self.record.total_points,
            categories={name: CategoryProgress(total=t, unlocked=u) for name, (t, u) in counts.items()},
        )
