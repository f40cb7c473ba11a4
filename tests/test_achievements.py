from __future__ import annotations

import json

import fakeredis
import pytest
import pytest_asyncio

from labyrinth.achievements import (
    DEFAULT_ACHIEVEMENTS,
    Achievement,
    AchievementCondition,
    AchievementRecord,
    AchievementStore,
    AchievementTracker,
    AnswerTally,
)
from labyrinth.content.provider import StaticContentProvider
from labyrinth.content.singleton import get_content
from labyrinth.core.bus import EventBus
from labyrinth.core.events import QuestionAnswered, QuestionSkipped
from labyrinth.engine import ProgressionEngine
from labyrinth.errors import PersistenceError
from labyrinth.persistence.storage import RedisStorage


class MemoryStorage:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class BrokenStorage(MemoryStorage):
    def set(self, key: str, value: str) -> None:
        raise PersistenceError("Storage write failed: quota exceeded")


def _answered(question_id: str, correct: bool, elapsed: int = 20_000) -> QuestionAnswered:
    return QuestionAnswered(
        question_id=question_id,
        is_correct=correct,
        points_earned=100 if correct else 0,
        current_score=0,
        correct_answer_index=0,
        explanation="",
        time_elapsed=elapsed,
    )


def _unlocked(events: list) -> list[str]:
    return [e.achievement_id for e in events]


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def unlocked(bus: EventBus) -> list:
    events: list = []
    bus.on("AchievementUnlocked", events.append)
    return events


@pytest.fixture()
def store() -> AchievementStore:
    return AchievementStore(storage=MemoryStorage(), key="test-achievements")


@pytest.fixture()
def tracker(bus: EventBus, store: AchievementStore, clock) -> AchievementTracker:
    return AchievementTracker(bus=bus, total_rooms=4, store=store, clock=clock)


def test_first_correct_answer_unlocks_once(bus: EventBus, tracker: AchievementTracker, unlocked: list, clock) -> None:
    bus.publish(_answered("q1", False))
    assert unlocked == []

    bus.publish(_answered("q1", True))
    bus.publish(_answered("q2", True))

    assert _unlocked(unlocked) == ["first_steps"]
    event = unlocked[0]
    assert event.title == "First Steps"
    assert event.points == 10
    assert event.unlocked_at == clock.now
    assert event.total_points == 10
    assert event.unlocked_count == 1


def test_progress_is_tracked_before_unlock(bus: EventBus, tracker: AchievementTracker) -> None:
    for i in range(3):
        bus.publish(_answered(f"q{i}", False))

    by_id = {s.achievement.id: s for s in tracker.statuses()}
    curious = by_id["curious_mind"]
    assert not curious.unlocked
    assert curious.progress == 3
    assert curious.max_progress == 5
    assert curious.progress_percentage == 60.0


def test_streaks_quick_answers_and_comebacks(bus: EventBus, tracker: AchievementTracker, unlocked: list) -> None:
    bus.publish(_answered("a", False))
    bus.publish(_answered("b", False))
    bus.publish(_answered("c", True, elapsed=1_000))
    assert "comeback" in _unlocked(unlocked)

    bus.publish(_answered("d", True, elapsed=2_000))
    assert "quick_thinker" not in _unlocked(unlocked)
    bus.publish(_answered("e", True, elapsed=4_999))
    assert "quick_thinker" in _unlocked(unlocked)

    bus.publish(_answered("f", True))
    assert "on_a_roll" not in _unlocked(unlocked)
    bus.publish(_answered("g", True))
    assert "on_a_roll" in _unlocked(unlocked)


def test_skips_break_streaks(bus: EventBus, tracker: AchievementTracker) -> None:
    for i in range(4):
        bus.publish(_answered(f"q{i}", True))
    bus.publish(QuestionSkipped(question_id="s", correct_answer_index=0, explanation=""))
    bus.publish(_answered("q9", True))

    tally = tracker.record.tally
    assert tally.total_questions == 6
    assert tally.consecutive_correct == 1
    assert tally.max_consecutive_correct == 4


def test_progress_persists_and_reloads(bus: EventBus, tracker: AchievementTracker, store: AchievementStore, clock) -> None:
    bus.publish(_answered("q1", True))

    raw = json.loads(store.storage.get(store.key))
    assert raw["unlockedAt"] == {"first_steps": clock.now}
    assert raw["totalPoints"] == 10
    assert raw["tally"]["correctAnswers"] == 1

    other_bus = EventBus()
    reloaded = AchievementTracker(bus=other_bus, total_rooms=4, store=store, clock=clock)
    assert reloaded.load() is True
    assert reloaded.record.model_dump() == tracker.record.model_dump()

    events: list = []
    other_bus.on("AchievementUnlocked", events.append)
    other_bus.publish(_answered("q2", True))
    assert "first_steps" not in _unlocked(events)


def test_corrupt_record_is_purged(bus: EventBus, store: AchievementStore) -> None:
    store.storage.set(store.key, '{"totalPoints": -5}')
    tracker = AchievementTracker(bus=bus, total_rooms=4, store=store)

    assert tracker.load() is False
    assert store.storage.get(store.key) is None
    assert tracker.record == AchievementRecord()


def test_unreadable_json_is_purged(store: AchievementStore) -> None:
    store.storage.set(store.key, "{not json")

    assert store.read() is None
    assert store.storage.get(store.key) is None


def test_storage_failure_is_published(bus: EventBus, clock) -> None:
    errors: list = []
    bus.on("Error", errors.append)
    AchievementTracker(bus=bus, total_rooms=4, store=AchievementStore(storage=BrokenStorage()), clock=clock)

    bus.publish(_answered("q1", True))

    assert [e.type for e in errors] == ["save"]


def test_reset_clears_progress(bus: EventBus, tracker: AchievementTracker, store: AchievementStore) -> None:
    resets: list = []
    bus.on("AchievementsReset", resets.append)
    bus.publish(_answered("q1", True))

    tracker.reset()

    assert len(resets) == 1
    assert store.storage.get(store.key) is None
    assert tracker.summary().unlocked == 0
    assert tracker.summary().total_points == 0


def test_summary_groups_by_category(bus: EventBus, tracker: AchievementTracker) -> None:
    bus.publish(_answered("q1", True))

    summary = tracker.summary()
    assert summary.total == len(DEFAULT_ACHIEVEMENTS)
    assert summary.unlocked == 1
    assert summary.total_points == 10
    assert summary.categories["progress"].unlocked == 1
    assert summary.categories["completion"].unlocked == 0
    assert sum(c.total for c in summary.categories.values()) == summary.total


def test_accuracy_needs_minimum_questions() -> None:
    condition = AchievementCondition("accuracy_with_minimum", min_questions=10, accuracy=0.9)

    assert condition.measure(AnswerTally(correct_answers=5, total_questions=5), total_rooms=4) == (5, False)
    assert condition.measure(AnswerTally(correct_answers=9, total_questions=10), total_rooms=4) == (10, True)
    assert condition.measure(AnswerTally(correct_answers=8, total_questions=10), total_rooms=4) == (10, False)


def test_unknown_condition_type_is_rejected() -> None:
    with pytest.raises(ValueError):
        AchievementCondition("collect_stamps")


def test_duplicate_ids_are_rejected(bus: EventBus) -> None:
    a = Achievement("x", "X", "", "progress", 1, AchievementCondition("game_completed"))
    with pytest.raises(ValueError):
        AchievementTracker(bus=bus, total_rooms=1, definitions=(a, a))


@pytest_asyncio.fixture()
async def engine_and_tracker(clock):
    r = fakeredis.FakeRedis(decode_responses=True)
    engine = ProgressionEngine(content=StaticContentProvider(get_content()), clock=clock)
    tracker = AchievementTracker(
        bus=engine.bus,
        total_rooms=len(get_content().rooms),
        store=AchievementStore(storage=RedisStorage(r), key="labyrinth:achievements:t"),
        clock=clock,
    )
    await engine.start()
    tracker.sync(engine.state)
    return engine, tracker, r


@pytest.mark.asyncio
async def test_playing_through_the_engine_unlocks_exploration_and_completion(engine_and_tracker, clock) -> None:
    engine, tracker, r = engine_and_tracker
    events: list = []
    engine.bus.on("AchievementUnlocked", events.append)

    await engine.answer_question("q1", 1)
    await engine.move_to_room("library")
    await engine.answer_question("q2", 0)
    await engine.move_to_room("tower")
    await engine.move_to_room("great_hall")

    assert "cartographer" in _unlocked(events)
    assert "explorer" not in _unlocked(events)
    assert not engine.state.completed

    clock.advance(60_000)
    await engine.answer_question("q3", 1)

    assert engine.state.completed
    assert {"champion", "perfectionist", "speed_runner"} <= set(_unlocked(events))
    assert json.loads(r.get("labyrinth:achievements:t"))["tally"]["completed"] is True


@pytest.mark.asyncio
async def test_achievements_survive_game_reset(engine_and_tracker) -> None:
    engine, tracker, _ = engine_and_tracker
    await engine.answer_question("q1", 1)

    await engine.reset_game()

    assert tracker.summary().unlocked == 1
