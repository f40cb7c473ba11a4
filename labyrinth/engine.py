from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from labyrinth.completion import CompletionEvaluator, Evaluation
from labyrinth.content.provider import ContentProvider
from labyrinth.content.registry import Room
from labyrinth.core.bus import EventBus
from labyrinth.core.events import (
    ErrorEvent,
    GameLoaded,
    GameReset,
    GameSaved,
    HintRequested,
    QuestionAnswered,
    QuestionSkipped,
    RoomChanged,
    RoomUnlocked,
    ScoreChanged,
)
from labyrinth.errors import LabyrinthError, PersistenceError, QuestionNotFound, RoomNotFound, ValidationError
from labyrinth.persistence.store import SaveStore
from labyrinth.scoring import (
    DEFAULT_COMPLETION,
    DEFAULT_SCORING,
    CompletionRules,
    GameStatistics,
    ScoreBreakdown,
    ScoringRules,
    game_statistics,
    score_breakdown,
    time_bonus,
)
from labyrinth.state import Clock, ProgressionState, now_ms, sanitize_player_name
from labyrinth.validators import TransitionContext, pipeline_for_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Tunables for a ProgressionEngine.

    - `consume_on_incorrect`: when True an incorrect answer also uses up the
      question ("answered" means "attempted"); by default only a correct answer
      does, so a missed question can be retried.
    - `enforce_required_score`: when True a neighbor whose `required_score` is
      above the current score stays locked until a later unlock pass.
    """

    consume_on_incorrect: bool = False
    enforce_required_score: bool = False
    scoring: ScoringRules = DEFAULT_SCORING
    completion: CompletionRules = DEFAULT_COMPLETION


@dataclass(frozen=True, slots=True)
class AnswerResult:
    question_id: str
    is_correct: bool
    points_earned: int
    time_bonus: int
    current_score: int
    correct_answer_index: int
    explanation: str


@dataclass(frozen=True, slots=True)
class SkipResult:
    question_id: str
    correct_answer_index: int
    explanation: str


NO_HINT = "No hint available for this question."


class ProgressionEngine:
    """Owns one ProgressionState and every transition on it.

    The engine does no locking; callers must not run two transitions on the
    same engine concurrently.
    """

    def __init__(
        self,
        *,
        content: ContentProvider,
        saves: SaveStore | None = None,
        bus: EventBus | None = None,
        clock: Clock = now_ms,
        settings: EngineSettings | None = None,
    ) -> None:
        self.content = content
        self.saves = saves
        self.bus = bus or EventBus()
        self.clock = clock
        self.settings = settings or EngineSettings()
        self.completion = CompletionEvaluator(rules=self.settings.completion, scoring=self.settings.scoring)
        self._state: ProgressionState | None = None
        self._question_started_at: int | None = None

    @property
    def state(self) -> ProgressionState:
        if self._state is None:
            raise RuntimeError("Engine not started. Call start() first.")
        return self._state

    async def _fresh_state(self, *, player_name: str = "") -> ProgressionState:
        starting = await self.content.get_starting_room()
        return ProgressionState.fresh(starting_room_id=starting.id, start_time=self.clock(), player_name=player_name)

    async def start(self, *, restore: bool = False, player_name: str = "") -> ProgressionState:
        """Seed a new session from the starting room, optionally resuming a save."""

        self._state = await self._fresh_state(player_name=player_name)
        self._question_started_at = None
        if restore:
            await self.load_game()
        return self.state

    def _report(self, error: LabyrinthError) -> None:
        logger.info("%s rejected: %s", error.error_type, error)
        self.bus.publish(ErrorEvent(type=error.error_type, message=str(error)))

    def start_question_timer(self) -> None:
        self._question_started_at = self.clock()

    def _elapsed_since_question(self) -> int:
        if self._question_started_at is None:
            return 0
        return self.clock() - self._question_started_at

    async def move_to_room(self, room_id: str) -> Room:
        state = self.state
        try:
            room = await self.content.get_room(room_id)
            if room is None:
                raise RoomNotFound(room_id)
            pipeline_for_action("move").validate(ctx=TransitionContext(action="move", target_id=room_id), state=state)
        except LabyrinthError as e:
            self._report(e)
            raise

        previous = state.current_room_id
        state.current_room_id = room_id
        state.visited_rooms.add(room_id)

        logger.debug("Moved from %s to %s", previous, room_id)
        self.bus.publish(RoomChanged(from_room_id=previous, to_room_id=room_id, room=room))
        return room

    async def answer_question(self, question_id: str, answer_index: int) -> AnswerResult:
        state = self.state
        try:
            question = await self.content.get_question(question_id)
            if question is None:
                raise QuestionNotFound(question_id)
            pipeline_for_action("answer").validate(
                ctx=TransitionContext(action="answer", target_id=question_id), state=state
            )
        except LabyrinthError as e:
            self._report(e)
            raise

        is_correct = answer_index == question.correct_answer
        elapsed = self._elapsed_since_question()
        bonus = 0
        points_earned = 0

        if is_correct:
            bonus = time_bonus(elapsed, self.settings.scoring)
            points_earned = question.points + bonus
            previous_score = state.score
            state.score += points_earned
            state.answered_questions.add(question_id)
            state.correct_answer_ids.add(question_id)

            await self.unlock_connected_rooms()

            logger.debug("Correct answer to %s: %d points (%d time bonus)", question_id, points_earned, bonus)
            self.bus.publish(ScoreChanged(score=state.score, points_earned=points_earned, previous_score=previous_score))
        else:
            if self.settings.consume_on_incorrect:
                state.answered_questions.add(question_id)
            logger.debug("Incorrect answer to %s", question_id)

        result = AnswerResult(
            question_id=question_id,
            is_correct=is_correct,
            points_earned=points_earned,
            time_bonus=bonus,
            current_score=state.score,
            correct_answer_index=question.correct_answer,
            explanation=question.explanation,
        )
        self.bus.publish(
            QuestionAnswered(
                question_id=question_id,
                is_correct=is_correct,
                points_earned=points_earned,
                current_score=state.score,
                correct_answer_index=question.correct_answer,
                explanation=question.explanation,
                time_elapsed=max(0, elapsed),
            )
        )

        await self.evaluate_completion()
        return result

    async def request_hint(self, question_id: str) -> str:
        """Return the question's hint, or NO_HINT when it has none.

        Only an actual hint is published as HintRequested.
        """

        question = await self.content.get_question(question_id)
        if question is None:
            error = QuestionNotFound(question_id)
            self._report(error)
            raise error

        if not question.hint:
            return NO_HINT
        logger.debug("Hint requested for %s", question_id)
        self.bus.publish(HintRequested(question_id=question_id, hint=question.hint))
        return question.hint

    async def skip_question(self, question_id: str) -> SkipResult:
        """Give up on a question: it is consumed as answered but never correct.

        The score is untouched; the skip only costs accuracy.
        """

        state = self.state
        try:
            question = await self.content.get_question(question_id)
            if question is None:
                raise QuestionNotFound(question_id)
            pipeline_for_action("answer").validate(
                ctx=TransitionContext(action="answer", target_id=question_id), state=state
            )
        except LabyrinthError as e:
            self._report(e)
            raise

        state.answered_questions.add(question_id)
        self._question_started_at = None

        logger.debug("Skipped question %s", question_id)
        self.bus.publish(
            QuestionSkipped(
                question_id=question_id,
                correct_answer_index=question.correct_answer,
                explanation=question.explanation,
            )
        )

        await self.evaluate_completion()
        return SkipResult(
            question_id=question_id,
            correct_answer_index=question.correct_answer,
            explanation=question.explanation,
        )

    async def unlock_connected_rooms(self) -> list[str]:
        """Unlock the current room's neighbors; returns the newly unlocked ids."""

        state = self.state
        current = await self.content.get_room(state.current_room_id)
        if current is None:
            return []

        unlocked: list[str] = []
        for room_id in current.connections:
            if room_id in state.unlocked_rooms:
                continue
            if self.settings.enforce_required_score:
                neighbor = await self.content.get_room(room_id)
                if neighbor is not None and neighbor.required_score > state.score:
                    continue
            state.unlocked_rooms.add(room_id)
            unlocked.append(room_id)
            logger.debug("Unlocked room %s", room_id)
            self.bus.publish(RoomUnlocked(room_id=room_id))
        return unlocked

    async def evaluate_completion(self) -> Evaluation:
        data = await self.content.load_game_data()
        evaluation = self.completion.evaluate(
            self.state,
            total_rooms=len(data.rooms),
            total_questions=len(data.questions),
            now=self.clock(),
        )
        if evaluation.completed_event is not None:
            logger.info("Game completed with final score %d", evaluation.completed_event.final_score)
            self.bus.publish(evaluation.completed_event)
        return evaluation

    def set_player_name(self, name: str) -> str:
        self.state.player_name = sanitize_player_name(name)
        return self.state.player_name

    async def available_rooms(self) -> list[Room]:
        """Neighbors of the current room the player may enter."""

        current = await self.content.get_room(self.state.current_room_id)
        if current is None:
            return []
        rooms: list[Room] = []
        for room_id in current.connections:
            if room_id not in self.state.unlocked_rooms:
                continue
            room = await self.content.get_room(room_id)
            if room is not None:
                rooms.append(room)
        return rooms

    def score_breakdown(self) -> ScoreBreakdown:
        return score_breakdown(self.state, now=self.clock(), rules=self.settings.scoring)

    async def statistics(self) -> GameStatistics:
        data = await self.content.load_game_data()
        return game_statistics(
            self.state,
            total_rooms=len(data.rooms),
            total_questions=len(data.questions),
            now=self.clock(),
            rules=self.settings.scoring,
        )

    def snapshot(self) -> dict[str, Any]:
        return self.state.snapshot(now=self.clock())

    def save_game(self) -> bool:
        """Persist the current state.

        A storage failure is reported on the Error channel and returns False;
        the in-memory state is kept as is.
        """

        if self.saves is None:
            raise RuntimeError("Engine has no save store configured")
        try:
            record = self.saves.write(self.state, now=self.clock())
        except PersistenceError as e:
            logger.warning("Failed to save game: %s", e)
            self._report(e)
            return False

        logger.debug("Game saved under %s", self.saves.key)
        self.bus.publish(GameSaved(record=record))
        return True

    def _purge_save(self) -> None:
        assert self.saves is not None
        try:
            self.saves.clear()
        except PersistenceError as e:
            logger.warning("Failed to clear save: %s", e)
            self._report(e)

    async def load_game(self) -> bool:
        """Restore the persisted state.

        Returns False when there is no usable save. Rejected save data is purged
        and the session continues from a fresh state at the starting room.
        """

        if self.saves is None:
            raise RuntimeError("Engine has no save store configured")

        starting = await self.content.get_starting_room()
        try:
            result = self.saves.read(now=self.clock(), starting_room_id=starting.id)
        except PersistenceError as e:
            logger.warning("Failed to read save: %s", e)
            self.bus.publish(ErrorEvent(type="load", message=str(e)))
            return False

        if result is None:
            logger.debug("No saved game found under %s", self.saves.key)
            return False

        reason = result.reason
        if result.ok and result.state is not None:
            if await self.content.get_room(result.state.current_room_id) is None:
                reason = f"currentRoomId {result.state.current_room_id} does not exist"
            else:
                self._state = result.state
                self._question_started_at = None
                logger.info("Game loaded from %s", self.saves.key)
                self.bus.publish(GameLoaded(record=result.record or {}))
                return True

        logger.warning("Discarding corrupt save %s: %s", self.saves.key, reason)
        self._purge_save()
        self._state = await self._fresh_state()
        self._question_started_at = None
        self._report(ValidationError(reason))
        return False

    async def reset_game(self) -> ProgressionState:
        """Clear persisted storage and start over from the starting room."""

        if self.saves is not None:
            self._purge_save()
        self._state = await self._fresh_state()
        self._question_started_at = None
        logger.info("Game reset to initial state")
        self.bus.publish(GameReset())
        return self.state
