from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from labyrinth.completion import CompletionEvaluator, CompletionMachine
from labyrinth.scoring import CompletionRules
from labyrinth.state import ProgressionState

START = 1_700_000_000_000


def _state(*, rooms: int, answered: int, correct: int) -> ProgressionState:
    s = ProgressionState.fresh(starting_room_id="r0", start_time=START)
    s.visited_rooms = {f"r{i}" for i in range(rooms)}
    s.unlocked_rooms = set(s.visited_rooms)
    s.answered_questions = {f"q{i}" for i in range(answered)}
    s.correct_answer_ids = {f"q{i}" for i in range(correct)}
    return s


def test_machine_starts_from_persisted_flag() -> None:
    assert CompletionMachine(_state(rooms=1, answered=0, correct=0)).not_completed.is_active

    done = _state(rooms=1, answered=0, correct=0)
    done.completed = True
    assert CompletionMachine(done).completed.is_active


def test_machine_flips_state_flag_on_enter() -> None:
    s = _state(rooms=1, answered=0, correct=0)
    machine = CompletionMachine(s)

    machine.complete()

    assert s.completed
    with pytest.raises(TransitionNotAllowed):
        machine.complete()


def test_evaluate_emits_once() -> None:
    evaluator = CompletionEvaluator()
    s = _state(rooms=8, answered=7, correct=7)

    first = evaluator.evaluate(s, total_rooms=10, total_questions=10, now=START + 1_000)
    second = evaluator.evaluate(s, total_rooms=10, total_questions=10, now=START + 2_000)

    assert first.completed_event is not None
    assert first.completed_event.is_perfect_game
    assert first.completed_event.play_time == 1_000
    assert second.completed_event is None
    assert s.completed


def test_evaluate_below_thresholds() -> None:
    s = _state(rooms=7, answered=10, correct=10)

    result = CompletionEvaluator().evaluate(s, total_rooms=10, total_questions=10, now=START)

    assert result.completed_event is None
    assert result.progress.rooms_percentage == 70
    assert not s.completed


def test_completed_but_not_perfect() -> None:
    s = _state(rooms=10, answered=10, correct=8)

    event = CompletionEvaluator().evaluate(s, total_rooms=10, total_questions=10, now=START + 700_000).completed_event

    assert event is not None
    assert event.accuracy == 80
    assert not event.is_perfect_game
    assert not event.is_speed_run


def test_custom_rules() -> None:
    evaluator = CompletionEvaluator(rules=CompletionRules(min_rooms_percentage=10, min_questions_percentage=10))
    s = _state(rooms=1, answered=1, correct=1)

    assert evaluator.evaluate(s, total_rooms=10, total_questions=10, now=START).completed_event is not None
