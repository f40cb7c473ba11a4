"""Scoring: time bonus, final score breakdown, completion criteria and statistics.

Everything here is a pure function of a ProgressionState, the content totals
and a timestamp. Bonuses are derived on demand and never written back into
`ProgressionState.score`, which stays the raw accumulator.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from labyrinth.state import ProgressionState


@dataclass(frozen=True, slots=True)
class ScoringRules:
    max_bonus_time_ms: int = 10_000
    max_time_bonus: int = 50
    completion_bonus: int = 500
    exploration_bonus_per_room: int = 10
    perfect_bonus: int = 1_000
    speed_bonus: int = 750
    speed_run_ms: int = 600_000


@dataclass(frozen=True, slots=True)
class CompletionRules:
    min_rooms_percentage: float = 80.0
    min_questions_percentage: float = 70.0
    min_accuracy: float = 70.0


DEFAULT_SCORING = ScoringRules()
DEFAULT_COMPLETION = CompletionRules()


def time_bonus(elapsed_ms: int, rules: ScoringRules = DEFAULT_SCORING) -> int:
    """Linear decay from `max_time_bonus` to 0 over the bonus window, floored."""

    elapsed = max(0, math.floor(elapsed_ms))
    window = rules.max_bonus_time_ms
    if elapsed < window:
        # Integer form of floor(max_bonus * (1 - elapsed / window)).
        return rules.max_time_bonus * (window - elapsed) // window
    return 0


def _percentage(part: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return part / total * 100


@dataclass(frozen=True, slots=True)
class Progress:
    rooms_visited: int
    total_rooms: int
    questions_answered: int
    total_questions: int
    correct_answers: int
    rooms_percentage: float
    questions_percentage: float
    accuracy: float

    def meets(self, rules: CompletionRules = DEFAULT_COMPLETION) -> bool:
        return (
            self.rooms_percentage >= rules.min_rooms_percentage
            and self.questions_percentage >= rules.min_questions_percentage
            and self.accuracy >= rules.min_accuracy
        )


def accuracy(state: ProgressionState) -> float:
    # 0 rather than a division error when nothing has been answered.
    return _percentage(len(state.correct_answer_ids), len(state.answered_questions))


def measure_progress(state: ProgressionState, *, total_rooms: int, total_questions: int) -> Progress:
    visited = len(state.visited_rooms)
    answered = len(state.answered_questions)
    return Progress(
        rooms_visited=visited,
        total_rooms=total_rooms,
        questions_answered=answered,
        total_questions=total_questions,
        correct_answers=len(state.correct_answer_ids),
        rooms_percentage=_percentage(visited, total_rooms),
        questions_percentage=_percentage(answered, total_questions),
        accuracy=accuracy(state),
    )


def is_speed_run(play_time_ms: int, rules: ScoringRules = DEFAULT_SCORING) -> bool:
    return play_time_ms < rules.speed_run_ms


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    base_score: int
    completion_bonus: int
    exploration_bonus: int
    perfect_bonus: int
    speed_bonus: int

    @property
    def final_score(self) -> int:
        return (
            self.base_score
            + self.completion_bonus
            + self.exploration_bonus
            + self.perfect_bonus
            + self.speed_bonus
        )


def score_breakdown(state: ProgressionState, *, now: int, rules: ScoringRules = DEFAULT_SCORING) -> ScoreBreakdown:
    return ScoreBreakdown(
        base_score=state.score,
        completion_bonus=rules.completion_bonus if state.completed else 0,
        exploration_bonus=rules.exploration_bonus_per_room * len(state.visited_rooms),
        perfect_bonus=rules.perfect_bonus if accuracy(state) == 100 else 0,
        speed_bonus=rules.speed_bonus if is_speed_run(state.play_time(now), rules) else 0,
    )


def final_score(state: ProgressionState, *, now: int, rules: ScoringRules = DEFAULT_SCORING) -> int:
    return score_breakdown(state, now=now, rules=rules).final_score


def performance_score(*, accuracy: float, exploration: float, completion: float) -> int:
    """Weighted 0-100 grade: accuracy 50%, exploration 30%, question coverage 20%."""

    return round(accuracy * 0.5 + exploration * 0.3 + completion * 0.2)


def format_duration(ms: float) -> str:
    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


@dataclass(frozen=True, slots=True)
class GameStatistics:
    score: int
    final_score: int
    play_time: int
    play_time_formatted: str
    average_answer_time: float
    average_answer_time_formatted: str
    rooms_visited: int
    rooms_total: int
    rooms_explored_percent: int
    questions_answered: int
    questions_total: int
    questions_answered_percent: int
    correct_answers: int
    incorrect_answers: int
    accuracy: float
    breakdown: ScoreBreakdown
    game_completed: bool
    performance_score: int


def game_statistics(
    state: ProgressionState,
    *,
    total_rooms: int,
    total_questions: int,
    now: int,
    rules: ScoringRules = DEFAULT_SCORING,
) -> GameStatistics:
    progress = measure_progress(state, total_rooms=total_rooms, total_questions=total_questions)
    breakdown = score_breakdown(state, now=now, rules=rules)
    play_time = state.play_time(now)
    answered = progress.questions_answered
    avg = play_time / answered if answered else 0.0

    return GameStatistics(
        score=state.score,
        final_score=breakdown.final_score,
        play_time=play_time,
        play_time_formatted=format_duration(play_time),
        average_answer_time=avg,
        average_answer_time_formatted=format_duration(avg),
        rooms_visited=progress.rooms_visited,
        rooms_total=total_rooms,
        rooms_explored_percent=round(progress.rooms_percentage),
        questions_answered=answered,
        questions_total=total_questions,
        questions_answered_percent=round(progress.questions_percentage),
        correct_answers=progress.correct_answers,
        incorrect_answers=answered - progress.correct_answers,
        accuracy=round(progress.accuracy, 1),
        breakdown=breakdown,
        game_completed=state.completed,
        performance_score=performance_score(
            accuracy=progress.accuracy,
            exploration=progress.rooms_percentage,
            completion=progress.questions_percentage,
        ),
    )
