"""Flat-record (de)serialization of ProgressionState.

The outbound path is trivial. The inbound path treats the record as untrusted:
a declarative pydantic schema checks types and sanitizes values, and the
result is a `DecodeResult` (ok + state, or failure + reason) instead of an
exception, so callers can purge a bad save and start fresh.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from labyrinth.state import ProgressionState, sanitize_player_name

logger = logging.getLogger(__name__)

ONE_YEAR_MS = 365 * 24 * 60 * 60 * 1000
# Largest integer a double holds exactly; saves never carry larger numbers.
MAX_SAFE_INTEGER = 2**53 - 1

_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True, slots=True)
class SaveLimits:
    max_room_id_length: int = 50
    max_rooms: int = 20
    max_question_id_length: int = 100
    max_questions: int = 100
    timestamp_window_ms: int = ONE_YEAR_MS


DEFAULT_LIMITS = SaveLimits()


def is_valid_id(value: object, *, max_length: int) -> bool:
    return isinstance(value, str) and 0 < len(value) <= max_length and _ID_RE.match(value) is not None


def _limits(info: ValidationInfo) -> SaveLimits:
    return (info.context or {}).get("limits") or DEFAULT_LIMITS


def _sanitize_ids(value: Any, *, field: str, max_length: int, cap: int) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{field} must be an array")
    out: list[str] = []
    for item in value:
        if len(out) >= cap:
            break
        if is_valid_id(item, max_length=max_length) and item not in out:
            out.append(item)
    return out


def _room_ids(value: Any, info: ValidationInfo) -> list[str]:
    limits = _limits(info)
    return _sanitize_ids(
        value,
        field=to_camel(info.field_name or ""),
        max_length=limits.max_room_id_length,
        cap=limits.max_rooms,
    )


def _question_ids(value: Any, info: ValidationInfo) -> list[str]:
    limits = _limits(info)
    return _sanitize_ids(
        value,
        field=to_camel(info.field_name or ""),
        max_length=limits.max_question_id_length,
        cap=limits.max_questions,
    )


def _finite_number(value: Any, *, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field} must be a finite number")
    # Ints are checked before isfinite(), which overflows on huge ints.
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{field} must be a finite number")
    if abs(value) > MAX_SAFE_INTEGER:
        raise ValueError(f"{field} is out of range")
    return value


def _beyond_safe_range(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return abs(value) > MAX_SAFE_INTEGER


class SaveRecord(BaseModel):
    """Schema for the persisted record.

    Validation context keys: `now` (epoch ms, required), `limits` (SaveLimits)
    and `starting_room_id` (force-included in unlocked rooms when given).
    Absent fields go through the same validators as present ones.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_default=True,
    )

    current_room_id: str | None = None
    score: int = 0
    visited_rooms: list[str] = []
    unlocked_rooms: list[str] = []
    answered_questions: list[str] = []
    correct_answer_ids: list[str] | None = None
    start_time: int | None = None
    game_completed: bool = False
    player_name: str = ""
    save_time: int | None = None

    @field_validator("current_room_id", mode="before")
    @classmethod
    def check_current_room(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError("currentRoomId must be a string")
        if not is_valid_id(v, max_length=_limits(info).max_room_id_length):
            raise ValueError("currentRoomId is not a valid room id")
        return v

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        return max(0, math.floor(_finite_number(v, field="score")))

    @field_validator("visited_rooms", "unlocked_rooms", mode="before")
    @classmethod
    def sanitize_room_ids(cls, v: Any, info: ValidationInfo) -> list[str]:
        return _room_ids(v, info)

    @field_validator("answered_questions", mode="before")
    @classmethod
    def sanitize_question_ids(cls, v: Any, info: ValidationInfo) -> list[str]:
        return _question_ids(v, info)

    @field_validator("correct_answer_ids", mode="before")
    @classmethod
    def sanitize_correct_ids(cls, v: Any, info: ValidationInfo) -> list[str] | None:
        # Absent in saves written before correct answers were tracked separately.
        if v is None:
            return None
        return _question_ids(v, info)

    @field_validator("start_time", "save_time", mode="before")
    @classmethod
    def sanitize_timestamp(cls, v: Any, info: ValidationInfo) -> int:
        now = int((info.context or {})["now"])
        # Too far from now by any window, so same treatment as an absent value.
        if v is None or _beyond_safe_range(v):
            return now
        ts = math.floor(_finite_number(v, field=to_camel(info.field_name or "")))
        if abs(ts - now) > _limits(info).timestamp_window_ms:
            return now
        return ts

    @field_validator("game_completed", mode="before")
    @classmethod
    def check_completed(cls, v: Any) -> bool:
        if not isinstance(v, bool):
            raise ValueError("gameCompleted must be a boolean")
        return v

    @field_validator("player_name", mode="before")
    @classmethod
    def sanitize_name(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("playerName must be a string")
        return sanitize_player_name(v)

    @model_validator(mode="after")
    def check_consistency(self, info: ValidationInfo) -> "SaveRecord":
        starting = (info.context or {}).get("starting_room_id")
        if starting and starting not in self.unlocked_rooms:
            self.unlocked_rooms.insert(0, starting)

        if self.current_room_id is None:
            if not starting:
                raise ValueError("currentRoomId is missing")
            self.current_room_id = starting
        if self.current_room_id not in self.unlocked_rooms:
            raise ValueError(f"currentRoomId {self.current_room_id} is not an unlocked room")

        unlocked = set(self.unlocked_rooms)
        self.visited_rooms = [r for r in self.visited_rooms if r in unlocked]

        answered = set(self.answered_questions)
        if self.correct_answer_ids is None:
            self.correct_answer_ids = list(self.answered_questions)
        else:
            self.correct_answer_ids = [q for q in self.correct_answer_ids if q in answered]
        return self

    def to_state(self) -> ProgressionState:
        assert self.current_room_id is not None and self.start_time is not None
        return ProgressionState(
            current_room_id=self.current_room_id,
            start_time=self.start_time,
            score=self.score,
            visited_rooms=set(self.visited_rooms),
            unlocked_rooms=set(self.unlocked_rooms),
            answered_questions=set(self.answered_questions),
            correct_answer_ids=set(self.correct_answer_ids or ()),
            completed=self.game_completed,
            player_name=self.player_name,
        )


@dataclass(frozen=True, slots=True)
class DecodeResult:
    ok: bool
    state: ProgressionState | None = None
    record: dict[str, Any] | None = None
    reason: str = ""

    @staticmethod
    def failure(reason: str) -> "DecodeResult":
        return DecodeResult(ok=False, reason=reason)


def serialize(state: ProgressionState, *, now: int) -> dict[str, Any]:
    return {
        "currentRoomId": state.current_room_id,
        "score": state.score,
        "visitedRooms": sorted(state.visited_rooms),
        "unlockedRooms": sorted(state.unlocked_rooms),
        "answeredQuestions": sorted(state.answered_questions),
        "correctAnswerIds": sorted(state.correct_answer_ids),
        "startTime": state.start_time,
        "gameCompleted": state.completed,
        "playerName": state.player_name,
        "saveTime": now,
    }


def encode(record: dict[str, Any]) -> str:
    return json.dumps(record, separators=(",", ":"))


def _first_error(e: PydanticValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    err = errors[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    msg = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg


def deserialize(
    raw: Any,
    *,
    now: int,
    starting_room_id: str | None = None,
    limits: SaveLimits = DEFAULT_LIMITS,
) -> DecodeResult:
    """Validate and sanitize a persisted record.

    `raw` may be JSON text (as read from storage) or an already decoded object.
    """

    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as e:
            # ValueError covers JSONDecodeError, bad UTF-8 and over-long digit strings.
            return DecodeResult.failure(f"save data is not valid JSON: {e}")

    if not isinstance(data, dict):
        return DecodeResult.failure("save data must be an object")

    try:
        record = SaveRecord.model_validate(
            data,
            context={"now": now, "limits": limits, "starting_room_id": starting_room_id},
        )
    except PydanticValidationError as e:
        reason = _first_error(e)
        logger.warning("Rejected save data: %s", reason)
        return DecodeResult.failure(reason)

    return DecodeResult(ok=True, state=record.to_state(), record=record.model_dump(by_alias=True))
