from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from labyrinth.errors import AlreadyAnswered, RoomLocked
from labyrinth.state import ProgressionState


@dataclass(frozen=True, slots=True)
class TransitionContext:
    """Inputs available to validators.

    Keep this tight and serializable-ish so we can safely log it.
    """

    action: str
    target_id: str


class TransitionValidator(ABC):
    """A small, composable precondition for a state transition."""

    @abstractmethod
    def validate(self, *, ctx: TransitionContext, state: ProgressionState) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class RoomUnlockedValidator(TransitionValidator):
    def validate(self, *, ctx: TransitionContext, state: ProgressionState) -> None:
        if ctx.target_id not in state.unlocked_rooms:
            raise RoomLocked(ctx.target_id)


@dataclass(frozen=True, slots=True)
class NotYetAnsweredValidator(TransitionValidator):
    """Answering is exactly-once per question id."""

    def validate(self, *, ctx: TransitionContext, state: ProgressionState) -> None:
        if ctx.target_id in state.answered_questions:
            raise AlreadyAnswered(ctx.target_id)


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[TransitionValidator, ...]

    def validate(self, *, ctx: TransitionContext, state: ProgressionState) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)


# Existence checks need the (async) content provider and happen in the engine
# before a pipeline runs; pipelines only see the progression state.
DEFAULT_TRANSITION_PIPELINES: dict[str, ValidatorPipeline] = {
    "move": ValidatorPipeline(validators=(RoomUnlockedValidator(),)),
    "answer": ValidatorPipeline(validators=(NotYetAnsweredValidator(),)),
}


def pipeline_for_action(action: str) -> ValidatorPipeline:
    pipe = DEFAULT_TRANSITION_PIPELINES.get(action)
    if pipe is None:
        raise ValueError(f"Unknown action: {action}")
    return pipe
