from __future__ import annotations

import json

import pytest

from labyrinth.persistence.codec import MAX_SAFE_INTEGER, ONE_YEAR_MS, SaveLimits, deserialize, serialize
from labyrinth.state import ProgressionState

NOW = 1_700_000_000_000


def _record(**overrides) -> dict:
    record = {
        "currentRoomId": "library",
        "score": 140,
        "visitedRooms": ["entrance", "library"],
        "unlockedRooms": ["entrance", "library", "great_hall"],
        "answeredQuestions": ["q1"],
        "correctAnswerIds": ["q1"],
        "startTime": NOW - 60_000,
        "gameCompleted": False,
        "playerName": "Ada",
        "saveTime": NOW,
    }
    record.update(overrides)
    return record


def test_round_trip_preserves_state() -> None:
    state = ProgressionState(
        current_room_id="library",
        start_time=NOW - 5_000,
        score=240,
        visited_rooms={"entrance", "library"},
        unlocked_rooms={"entrance", "library", "great_hall", "tower"},
        answered_questions={"q1", "q2", "q4"},
        correct_answer_ids={"q1", "q2"},
        completed=True,
        player_name="Ada",
    )

    raw = json.dumps(serialize(state, now=NOW))
    result = deserialize(raw, now=NOW, starting_room_id="entrance")

    assert result.ok
    assert result.state == state


def test_serialize_sorts_lists() -> None:
    state = ProgressionState.fresh(starting_room_id="entrance", start_time=NOW)
    state.unlocked_rooms |= {"library", "great_hall"}

    record = serialize(state, now=NOW)

    assert record["unlockedRooms"] == ["entrance", "great_hall", "library"]
    assert record["saveTime"] == NOW


def test_negative_score_is_clamped() -> None:
    result = deserialize(_record(score=-5), now=NOW)
    assert result.ok
    assert result.state.score == 0


def test_fractional_score_is_floored() -> None:
    result = deserialize(_record(score=140.9), now=NOW)
    assert result.state.score == 140


def test_room_arrays_are_capped() -> None:
    rooms = [f"room_{i}" for i in range(40)]
    result = deserialize(
        _record(currentRoomId="room_0", visitedRooms=rooms, unlockedRooms=rooms),
        now=NOW,
    )

    assert result.ok
    assert len(result.state.visited_rooms) <= 20
    assert len(result.state.unlocked_rooms) <= 20


def test_question_arrays_are_capped() -> None:
    questions = [f"q_{i}" for i in range(150)]
    result = deserialize(_record(answeredQuestions=questions, correctAnswerIds=questions), now=NOW)

    assert len(result.state.answered_questions) == 100
    assert result.state.correct_answer_ids <= result.state.answered_questions


def test_invalid_ids_are_dropped() -> None:
    result = deserialize(
        _record(
            visitedRooms=["entrance", "../etc", 7, "library", "library"],
            answeredQuestions=["q1", "<script>", "x" * 101],
        ),
        now=NOW,
    )

    assert result.state.visited_rooms == {"entrance", "library"}
    assert result.state.answered_questions == {"q1"}


def test_starting_room_is_force_unlocked() -> None:
    result = deserialize(_record(unlockedRooms=["library"]), now=NOW, starting_room_id="entrance")
    assert "entrance" in result.state.unlocked_rooms


def test_visited_rooms_are_limited_to_unlocked() -> None:
    result = deserialize(_record(visitedRooms=["entrance", "library", "tower"]), now=NOW)
    assert result.state.visited_rooms == {"entrance", "library"}


def test_correct_ids_are_limited_to_answered() -> None:
    result = deserialize(_record(correctAnswerIds=["q1", "q9"]), now=NOW)
    assert result.state.correct_answer_ids == {"q1"}


def test_missing_correct_ids_defaults_to_answered() -> None:
    record = _record(answeredQuestions=["q1", "q2"])
    del record["correctAnswerIds"]

    result = deserialize(record, now=NOW)

    assert result.state.correct_answer_ids == {"q1", "q2"}


def test_missing_current_room_falls_back_to_start() -> None:
    record = _record()
    del record["currentRoomId"]

    result = deserialize(record, now=NOW, starting_room_id="entrance")

    assert result.ok
    assert result.state.current_room_id == "entrance"


def test_locked_current_room_rejects() -> None:
    result = deserialize(_record(currentRoomId="tower"), now=NOW)
    assert not result.ok
    assert "tower" in result.reason


def test_malformed_current_room_rejects() -> None:
    assert not deserialize(_record(currentRoomId="lib rary"), now=NOW).ok
    assert not deserialize(_record(currentRoomId=12), now=NOW).ok


def test_wrong_types_reject() -> None:
    assert not deserialize(_record(score="140"), now=NOW).ok
    assert not deserialize(_record(score=float("inf")), now=NOW).ok
    assert not deserialize(_record(visitedRooms="entrance"), now=NOW).ok
    assert not deserialize(_record(gameCompleted="yes"), now=NOW).ok
    assert not deserialize(_record(playerName=42), now=NOW).ok
    assert not deserialize(_record(startTime="yesterday"), now=NOW).ok


def test_non_object_input_rejects() -> None:
    assert not deserialize("not json{", now=NOW).ok
    assert not deserialize("[1, 2, 3]", now=NOW).ok
    assert not deserialize(None, now=NOW).ok
    assert deserialize("null", now=NOW).reason == "save data must be an object"


def test_timestamps_outside_window_become_now() -> None:
    result = deserialize(_record(startTime=NOW - 2 * ONE_YEAR_MS, saveTime=NOW + 2 * ONE_YEAR_MS), now=NOW)

    assert result.state.start_time == NOW
    assert result.record["saveTime"] == NOW


def test_missing_timestamps_become_now() -> None:
    record = _record()
    del record["startTime"]
    del record["saveTime"]

    result = deserialize(record, now=NOW)

    assert result.state.start_time == NOW


def test_player_name_is_sanitized() -> None:
    result = deserialize(_record(playerName="  <b>Sir</b> Lancelot " + "x" * 80), now=NOW)

    name = result.state.player_name
    assert name.startswith("Sir Lancelot")
    assert "<" not in name
    assert len(name) == 50


def test_custom_limits() -> None:
    limits = SaveLimits(max_rooms=2)
    result = deserialize(_record(currentRoomId="entrance"), now=NOW, limits=limits)
    assert result.state.unlocked_rooms == {"entrance", "library"}


def _raw(**fields: str) -> str:
    # Hand-built JSON text so numbers can be written exactly as a tampered save would hold them.
    body = {"currentRoomId": '"entrance"', "unlockedRooms": '["entrance"]', **fields}
    return "{" + ",".join(f'"{k}":{v}' for k, v in body.items()) + "}"


@pytest.mark.parametrize(
    "score",
    [
        "true",
        "false",
        "9" * 400,
        "-" + "9" * 400,
        "9" * 5000,
        "1e400",
        "-Infinity",
        "Infinity",
        "NaN",
        "1.7e300",
        str(MAX_SAFE_INTEGER + 1),
        '"12"',
        "null",
        "[1]",
        '{"v": 1}',
    ],
)
def test_bad_scores_reject_without_raising(score: str) -> None:
    result = deserialize(_raw(score=score), now=NOW, starting_room_id="entrance")

    assert result.ok is False
    assert result.reason


@pytest.mark.parametrize("score", ["0", "-1", "-" + str(MAX_SAFE_INTEGER), "0.5", "-1e10"])
def test_small_or_negative_scores_clamp_to_zero(score: str) -> None:
    result = deserialize(_raw(score=score), now=NOW, starting_room_id="entrance")

    assert result.ok
    assert result.state.score == 0


def test_largest_safe_score_is_kept() -> None:
    result = deserialize(_raw(score=str(MAX_SAFE_INTEGER)), now=NOW, starting_room_id="entrance")
    assert result.state.score == MAX_SAFE_INTEGER


@pytest.mark.parametrize("ts", ["9" * 400, "-" + "9" * 400, "1e300", str(MAX_SAFE_INTEGER + 1)])
def test_huge_timestamps_become_now(ts: str) -> None:
    result = deserialize(_raw(startTime=ts, saveTime=ts), now=NOW, starting_room_id="entrance")

    assert result.ok
    assert result.state.start_time == NOW
    assert result.record["saveTime"] == NOW


@pytest.mark.parametrize("ts", ["true", "NaN", "Infinity", '"2024-01-01"'])
def test_non_numeric_timestamps_reject(ts: str) -> None:
    assert not deserialize(_raw(startTime=ts), now=NOW, starting_room_id="entrance").ok


def test_decoded_objects_with_huge_ints_reject() -> None:
    assert not deserialize({"currentRoomId": "entrance", "score": 10**400}, now=NOW, starting_room_id="entrance").ok

    result = deserialize({"currentRoomId": "entrance", "startTime": 10**400}, now=NOW, starting_room_id="entrance")
    assert result.ok
    assert result.state.start_time == NOW


@pytest.mark.parametrize("raw", ["[" * 100_000, "9" * 5000, b"\xff\xfe", ""])
def test_undecodable_text_rejects(raw) -> None:
    result = deserialize(raw, now=NOW)

    assert result.ok is False
    assert result.reason.startswith("save data is not valid JSON")
