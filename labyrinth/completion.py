from __future__ import annotations

from dataclasses import dataclass

from statemachine import State, StateMachine

from labyrinth.core.events import GameCompleted
from labyrinth.scoring import (
    DEFAULT_COMPLETION,
    DEFAULT_SCORING,
    CompletionRules,
    Progress,
    ScoringRules,
    final_score,
    is_speed_run,
    measure_progress,
)
from labyrinth.state import ProgressionState


class CompletionMachine(StateMachine):
    """NotCompleted -> Completed, terminal.

    The machine only guards the transition; `ProgressionState.completed` is the
    persisted truth and is flipped when the Completed state is entered.
    """

    not_completed = State("NotCompleted", value="not_completed", initial=True)
    completed = State("Completed", value="completed", final=True)

    complete = not_completed.to(completed)

    def __init__(self, progression: ProgressionState):
        self.progression = progression
        super().__init__(start_value="completed" if progression.completed else "not_completed")

    def on_enter_completed(self) -> None:
        self.progression.completed = True


@dataclass(frozen=True, slots=True)
class Evaluation:
    progress: Progress
    # Set only on the evaluation that performed the transition.
    completed_event: GameCompleted | None = None


class CompletionEvaluator:
    def __init__(
        self,
        *,
        rules: CompletionRules = DEFAULT_COMPLETION,
        scoring: ScoringRules = DEFAULT_SCORING,
    ) -> None:
        self.rules = rules
        self.scoring = scoring

    def is_perfect_game(self, progress: Progress) -> bool:
        """A perfect game is judged on accuracy alone.

        This deliberately does not also require every room to be visited.
        Completion needs only 80% of the rooms, so a rule requiring all rooms
        would disagree with the perfect bonus in `final_score`, which pays out
        on 100% accuracy. A game that completes with 8 of 10 rooms visited and
        no wrong answers counts as perfect.
        """

        return progress.questions_answered > 0 and progress.accuracy == 100

    def evaluate(
        self,
        state: ProgressionState,
        *,
        total_rooms: int,
        total_questions: int,
        now: int,
    ) -> Evaluation:
        progress = measure_progress(state, total_rooms=total_rooms, total_questions=total_questions)

        machine = CompletionMachine(state)
        if machine.completed.is_active or not progress.meets(self.rules):
            return Evaluation(progress=progress)

        machine.complete()

        play_time = state.play_time(now)
        event = GameCompleted(
            final_score=final_score(state, now=now, rules=self.scoring),
            play_time=play_time,
            rooms_visited=progress.rooms_visited,
            total_rooms=total_rooms,
            questions_answered=progress.questions_answered,
            total_questions=total_questions,
            correct_answers=progress.correct_answers,
            accuracy=progress.accuracy,
            rooms_percentage=progress.rooms_percentage,
            questions_percentage=progress.questions_percentage,
            is_perfect_game=self.is_perfect_game(progress),
            is_speed_run=is_speed_run(play_time, self.scoring),
        )
        return Evaluation(progress=progress, completed_event=event)
