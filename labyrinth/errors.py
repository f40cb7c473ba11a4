from __future__ import annotations


class LabyrinthError(ValueError):
    """Base for every error the progression engine raises on purpose.

    `error_type` is the tag published on the `Error` event channel.
    """

    error_type = "error"


class RoomNotFound(LabyrinthError):
    error_type = "movement"

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id} does not exist")
        self.room_id = room_id


class RoomLocked(LabyrinthError):
    error_type = "movement"

    def __init__(self, room_id: str) -> None:
        super().__init__(f"Room {room_id} is locked. Answer questions to unlock new areas.")
        self.room_id = room_id


class QuestionNotFound(LabyrinthError):
    error_type = "answer"

    def __init__(self, question_id: str) -> None:
        super().__init__(f"Question {question_id} not found")
        self.question_id = question_id


class AlreadyAnswered(LabyrinthError):
    error_type = "answer"

    def __init__(self, question_id: str) -> None:
        super().__init__(f"Question {question_id} already answered")
        self.question_id = question_id


class ValidationError(LabyrinthError):
    """Persisted save data was rejected."""

    error_type = "load"


class PersistenceError(LabyrinthError):
    """The key-value storage could not be read or written."""

    error_type = "save"
