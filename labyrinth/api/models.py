from __future__ import annotations

from pydantic import BaseModel, Field

from labyrinth.achievements import AchievementStatus, AchievementSummary
from labyrinth.content.registry import Question, Room
from labyrinth.engine import AnswerResult, ProgressionEngine, SkipResult


class SessionCreateRequest(BaseModel):
    player_name: str = Field("", max_length=200)


class PlayerNameRequest(BaseModel):
    player_name: str = Field(..., max_length=200)


class MoveRequest(BaseModel):
    room_id: str = Field(..., min_length=1, max_length=200)


class AnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=200)
    answer_index: int


class RoomView(BaseModel):
    id: str
    name: str
    description: str
    connections: list[str]
    required_score: int
    question_categories: list[str]

    @staticmethod
    def of(room: Room) -> "RoomView":
        return RoomView(
            id=room.id,
            name=room.name,
            description=room.description,
            connections=list(room.connections),
            required_score=room.required_score,
            question_categories=list(room.question_categories),
        )


class QuestionView(BaseModel):
    """A question as shown to the player; the correct index stays server-side."""

    id: str
    category: str
    difficulty: str
    text: str
    answers: list[str]
    points: int
    hint: str = ""

    @staticmethod
    def of(question: Question) -> "QuestionView":
        return QuestionView(
            id=question.id,
            category=question.category,
            difficulty=question.difficulty,
            text=question.text,
            answers=list(question.answers),
            points=question.points,
            hint=question.hint,
        )


class SessionState(BaseModel):
    session_id: str
    current_room_id: str
    score: int
    final_score: int
    visited_rooms: list[str]
    unlocked_rooms: list[str]
    answered_questions: list[str]
    game_completed: bool
    player_name: str
    play_time: int

    @staticmethod
    def of(session_id: str, engine: ProgressionEngine) -> "SessionState":
        state = engine.state
        now = engine.clock()
        return SessionState(
            session_id=session_id,
            current_room_id=state.current_room_id,
            score=state.score,
            final_score=engine.score_breakdown().final_score,
            visited_rooms=sorted(state.visited_rooms),
            unlocked_rooms=sorted(state.unlocked_rooms),
            answered_questions=sorted(state.answered_questions),
            game_completed=state.completed,
            player_name=state.player_name,
            play_time=state.play_time(now),
        )


class AnswerResponse(BaseModel):
    question_id: str
    is_correct: bool
    points_earned: int
    time_bonus: int
    current_score: int
    correct_answer_index: int
    explanation: str
    game_completed: bool

    @staticmethod
    def of(result: AnswerResult, *, game_completed: bool) -> "AnswerResponse":
        return AnswerResponse(
            question_id=result.question_id,
            is_correct=result.is_correct,
            points_earned=result.points_earned,
            time_bonus=result.time_bonus,
            current_score=result.current_score,
            correct_answer_index=result.correct_answer_index,
            explanation=result.explanation,
            game_completed=game_completed,
        )


class SessionListResponse(BaseModel):
    sessions: list[str]


class SaveResponse(BaseModel):
    saved: bool


class LoadResponse(BaseModel):
    loaded: bool
    state: SessionState


class SkipRequest(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=200)


class SkipResponse(BaseModel):
    question_id: str
    correct_answer_index: int
    explanation: str
    game_completed: bool

    @staticmethod
    def of(result: SkipResult, *, game_completed: bool) -> "SkipResponse":
        return SkipResponse(
            question_id=result.question_id,
            correct_answer_index=result.correct_answer_index,
            explanation=result.explanation,
            game_completed=game_completed,
        )


class HintResponse(BaseModel):
    question_id: str
    hint: str


class AchievementView(BaseModel):
    id: str
    title: str
    description: str
    category: str
    points: int
    unlocked: bool
    unlocked_at: int | None
    progress: int
    max_progress: int
    progress_percentage: float

    @staticmethod
    def of(status: AchievementStatus) -> "AchievementView":
        a = status.achievement
        return AchievementView(
            id=a.id,
            title=a.title,
            description=a.description,
            category=a.category,
            points=a.points,
            unlocked=status.unlocked,
            unlocked_at=status.unlocked_at,
            progress=status.progress,
            max_progress=status.max_progress,
            progress_percentage=status.progress_percentage,
        )


class CategoryView(BaseModel):
    total: int
    unlocked: int
    percentage: float


class AchievementsResponse(BaseModel):
    total: int
    unlocked: int
    percentage: float
    total_points: int
    categories: dict[str, CategoryView]
    achievements: list[AchievementView]

    @staticmethod
    def of(summary: AchievementSummary, statuses: list[AchievementStatus]) -> "AchievementsResponse":
        return AchievementsResponse(
            total=summary.total,
            unlocked=summary.unlocked,
            percentage=summary.percentage,
            total_points=summary.total_points,
            categories={
                name: CategoryView(total=c.total, unlocked=c.unlocked, percentage=c.percentage)
                for name, c in summary.categories.items()
            },
            achievements=[AchievementView.of(s) for s in statuses],
        )
