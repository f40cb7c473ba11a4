from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class ContentLoadError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Room:
    id: str
    name: str
    description: str = ""
    connections: tuple[str, ...] = ()
    # Unlock precondition; only enforced when the engine is configured to.
    required_score: int = 0
    is_starting_room: bool = False
    question_categories: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    category: str
    text: str
    answers: tuple[str, ...]
    correct_answer: int
    points: int
    difficulty: str = "medium"
    explanation: str = ""
    hint: str = ""


@dataclass(frozen=True, slots=True)
class GameContent:
    """Rooms and questions, indexed by id.

    Canonical ordering is the order of the source files.
    """

    rooms: tuple[Room, ...]
    questions: tuple[Question, ...]
    _rooms_by_id: dict[str, Room] = field(default_factory=dict, repr=False)
    _questions_by_id: dict[str, Question] = field(default_factory=dict, repr=False)

    @staticmethod
    def from_rows(*, rooms: list[Room], questions: list[Question]) -> "GameContent":
        rooms_by_id: dict[str, Room] = {}
        for r in rooms:
            if r.id in rooms_by_id:
                raise ContentLoadError(f"Duplicate room ID: {r.id}")
            rooms_by_id[r.id] = r

        questions_by_id: dict[str, Question] = {}
        for q in questions:
            if q.id in questions_by_id:
                raise ContentLoadError(f"Duplicate question ID: {q.id}")
            questions_by_id[q.id] = q

        if not rooms:
            raise ContentLoadError("At least one room must be defined")
        if not questions:
            raise ContentLoadError("At least one question must be defined")

        starting = [r.id for r in rooms if r.is_starting_room]
        if len(starting) != 1:
            raise ContentLoadError(f"Exactly one starting room required, found {len(starting)}")

        for r in rooms:
            for conn in r.connections:
                if conn not in rooms_by_id:
                    raise ContentLoadError(f"Room {r.id} references non-existent room: {conn}")

        return GameContent(
            rooms=tuple(rooms),
            questions=tuple(questions),
            _rooms_by_id=rooms_by_id,
            _questions_by_id=questions_by_id,
        )

    def room(self, room_id: str) -> Room | None:
        return self._rooms_by_id.get(room_id)

    def question(self, question_id: str) -> Question | None:
        return self._questions_by_id.get(question_id)

    @property
    def starting_room(self) -> Room:
        return next(r for r in self.rooms if r.is_starting_room)

    def questions_in_category(self, category: str) -> tuple[Question, ...]:
        return tuple(q for q in self.questions if q.category == category)

    @property
    def categories(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for q in self.questions:
            seen.setdefault(q.category, None)
        return tuple(seen)


def _read_json_list(path: Path, key: str) -> list[dict[str, Any]]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ContentLoadError(f"Content file not found: {path}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ContentLoadError(f"Invalid JSON in {path}: {e}") from e

    # Files are either `{"rooms": [...]}` or a bare list.
    items = data.get(key) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ContentLoadError(f"{path} must contain a '{key}' array")
    return [i for i in items if isinstance(i, dict)]


def _require(obj: dict[str, Any], key: str, *, where: str) -> Any:
    if key not in obj:
        raise ContentLoadError(f"{where} missing required field: {key}")
    return obj[key]


def parse_room(obj: dict[str, Any]) -> Room:
    rid = str(_require(obj, "id", where="Room"))
    connections = _require(obj, "connections", where=f"Room {rid}")
    if not isinstance(connections, list):
        raise ContentLoadError(f"Room {rid} connections must be an array")

    return Room(
        id=rid,
        name=str(obj.get("name") or rid),
        description=str(obj.get("description") or ""),
        connections=tuple(str(c) for c in connections),
        required_score=int(obj.get("requiredScore") or 0),
        is_starting_room=bool(obj.get("isStartingRoom", False)),
        question_categories=tuple(str(c) for c in obj.get("questionCategories") or ()),
    )


def parse_question(obj: dict[str, Any]) -> Question:
    qid = str(_require(obj, "id", where="Question"))
    where = f"Question {qid}"

    answers = _require(obj, "answers", where=where)
    if not isinstance(answers, list) or len(answers) < 2:
        raise ContentLoadError(f"{where} must have at least 2 answers")

    correct = _require(obj, "correctAnswer", where=where)
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(answers):
        raise ContentLoadError(f"{where} has invalid correctAnswer index")

    points = _require(obj, "points", where=where)
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ContentLoadError(f"{where} must have positive points value")

    return Question(
        id=qid,
        category=str(obj.get("category") or "general"),
        text=str(obj.get("question") or ""),
        answers=tuple(str(a) for a in answers),
        correct_answer=correct,
        points=points,
        difficulty=str(obj.get("difficulty") or "medium"),
        explanation=str(obj.get("explanation") or ""),
        hint=str(obj.get("hint") or ""),
    )


def load_content_files(*, rooms_path: Path, questions_path: Path) -> GameContent:
    rooms = [parse_room(o) for o in _read_json_list(rooms_path, "rooms")]
    questions = [parse_question(o) for o in _read_json_list(questions_path, "questions")]
    return GameContent.from_rows(rooms=rooms, questions=questions)


def _fallback_game_content() -> GameContent:
    """Tiny built-in castle used when content files are missing."""

    rooms = [
        Room(
            id="entrance",
            name="Castle Entrance",
            description="A grand doorway into the castle of knowledge.",
            connections=("library", "great_hall"),
            is_starting_room=True,
            question_categories=("history",),
        ),
        Room(
            id="library",
            name="Ancient Library",
            description="Dusty shelves full of forgotten lore.",
            connections=("entrance", "observatory"),
            required_score=50,
            question_categories=("literature",),
        ),
        Room(
            id="great_hall",
            name="Great Hall",
            description="Banners of old houses line the walls.",
            connections=("entrance", "armory"),
            required_score=50,
            question_categories=("history",),
        ),
        Room(
            id="armory",
            name="Armory",
            connections=("great_hall",),
            required_score=150,
            question_categories=("science",),
        ),
        Room(
            id="observatory",
            name="Observatory",
            connections=("library",),
            required_score=150,
            question_categories=("science",),
        ),
    ]

    questions = [
        Question(
            id="history_1",
            category="history",
            text="In which year did the Battle of Hastings take place?",
            answers=("1066", "1215", "1415", "1588"),
            correct_answer=0,
            points=100,
            difficulty="easy",
            explanation="William of Normandy defeated Harold II in 1066.",
        ),
        Question(
            id="history_2",
            category="history",
            text="Which document was sealed at Runnymede?",
            answers=("Bill of Rights", "Magna Carta", "Domesday Book"),
            correct_answer=1,
            points=100,
        ),
        Question(
            id="literature_1",
            category="literature",
            text="Who wrote 'The Canterbury Tales'?",
            answers=("Chaucer", "Milton", "Spenser"),
            correct_answer=0,
            points=100,
        ),
        Question(
            id="science_1",
            category="science",
            text="What is the chemical symbol for gold?",
            answers=("Ag", "Au", "Gd", "Go"),
            correct_answer=1,
            points=150,
            difficulty="hard",
            hint="It comes from the Latin 'aurum'.",
        ),
    ]

    return GameContent.from_rows(rooms=rooms, questions=questions)


def load_game_content(*, root: Path) -> GameContent:
    content_dir = root / "data"

    # Default behavior: fall back to the tiny built-in castle when files are missing.
    # You can force strict behavior by setting LABYRINTH_STRICT_CONTENT=1.
    strict = os.getenv("LABYRINTH_STRICT_CONTENT", "").strip().lower() in {"1", "true", "yes"}

    try:
        return load_content_files(
            rooms_path=content_dir / "rooms.json",
            questions_path=content_dir / "questions.json",
        )
    except ContentLoadError:
        if strict:
            raise
        return _fallback_game_content()
