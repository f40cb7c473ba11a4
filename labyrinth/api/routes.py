from __future__ import annotations

import dataclasses
from typing import Any

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from labyrinth.api.deps import get_redis, get_registry
from labyrinth.api.models import (
    AchievementsResponse,
    AnswerRequest,
    AnswerResponse,
    HintResponse,
    LoadResponse,
    MoveRequest,
    PlayerNameRequest,
    QuestionView,
    RoomView,
    SaveResponse,
    SessionCreateRequest,
    SessionListResponse,
    SessionState,
    SkipRequest,
    SkipResponse,
)
from labyrinth.content.singleton import get_content
from labyrinth.core.events import event_payload
from labyrinth.errors import AlreadyAnswered, QuestionNotFound, RoomLocked, RoomNotFound
from labyrinth.lock import SessionBusy, session_lock
from labyrinth.sessions import Session, SessionRegistry
from labyrinth.websocket_hub import hub

router = APIRouter()


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, (RoomNotFound, QuestionNotFound)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, RoomLocked):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, (AlreadyAnswered, SessionBusy)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=str(e))


async def _require_session(*, session_id: str, r: redis.Redis, sessions: SessionRegistry) -> Session:
    session = await sessions.get(r=r, content=get_content(), session_id=session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


async def _push_events(session: Session) -> None:
    for event in session.drain():
        await hub.broadcast(
            session.session_id,
            {"type": event.name, "session_id": session.session_id, "payload": event_payload(event)},
        )


@router.websocket("/ws/session/{session_id}")
async def session_updates_ws(websocket: WebSocket, session_id: str) -> None:
    await hub.connect(session_id, websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(session_id, websocket)
    except Exception:
        await hub.disconnect(session_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/session", response_model=SessionState, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    payload: SessionCreateRequest,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionState:
    session = await sessions.create(r=r, content=get_content(), player_name=payload.player_name)
    await _push_events(session)
    return SessionState.of(session.session_id, session.engine)


@router.get("/session", response_model=SessionListResponse)
async def list_sessions_route(
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionListResponse:
    return SessionListResponse(sessions=sessions.list_ids(r=r))


@router.get("/session/{session_id}", response_model=SessionState)
async def get_session_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionState:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    await _push_events(session)
    return SessionState.of(session_id, session.engine)


@router.post("/session/{session_id}/player_name", response_model=SessionState)
async def player_name_route(
    session_id: str,
    payload: PlayerNameRequest,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionState:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            session.engine.set_player_name(payload.player_name)
    except ValueError as e:
        raise _http_error(e) from e
    return SessionState.of(session_id, session.engine)


@router.post("/session/{session_id}/move", response_model=SessionState)
async def move_route(
    session_id: str,
    payload: MoveRequest,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionState:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            await session.engine.move_to_room(payload.room_id)
    except ValueError as e:
        await _push_events(session)
        raise _http_error(e) from e

    await _push_events(session)
    return SessionState.of(session_id, session.engine)


@router.get("/session/{session_id}/rooms", response_model=list[RoomView])
async def available_rooms_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> list[RoomView]:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    rooms = await session.engine.available_rooms()
    return [RoomView.of(room) for room in rooms]


@router.get("/session/{session_id}/question", response_model=QuestionView)
async def next_question_route(
    session_id: str,
    category: str | None = None,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> QuestionView:
    """Pick the next unanswered question and start its bonus timer.

    Without an explicit category, the current room's categories are preferred.
    """

    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    engine = session.engine

    if category:
        preferred: tuple[str, ...] = (category,)
    else:
        room = await engine.content.get_room(engine.state.current_room_id)
        preferred = room.question_categories if room is not None else ()

    question = session.picker.next_question(answered=engine.state.answered_questions, preferred_categories=preferred)
    if question is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No questions left")

    try:
        with session_lock(r=r, session_id=session_id):
            engine.start_question_timer()
    except ValueError as e:
        raise _http_error(e) from e
    return QuestionView.of(question)


@router.post("/session/{session_id}/timer")
async def start_timer_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict[str, bool]:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            session.engine.start_question_timer()
    except ValueError as e:
        raise _http_error(e) from e
    return {"started": True}


@router.post("/session/{session_id}/answer", response_model=AnswerResponse)
async def answer_route(
    session_id: str,
    payload: AnswerRequest,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> AnswerResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            result = await session.engine.answer_question(payload.question_id, payload.answer_index)
    except ValueError as e:
        await _push_events(session)
        raise _http_error(e) from e

    await _push_events(session)
    return AnswerResponse.of(result, game_completed=session.engine.state.completed)


@router.get("/session/{session_id}/question/{question_id}/hint", response_model=HintResponse)
async def hint_route(
    session_id: str,
    question_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> HintResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        hint = await session.engine.request_hint(question_id)
    except ValueError as e:
        await _push_events(session)
        raise _http_error(e) from e

    await _push_events(session)
    return HintResponse(question_id=question_id, hint=hint)


@router.post("/session/{session_id}/skip", response_model=SkipResponse)
async def skip_route(
    session_id: str,
    payload: SkipRequest,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SkipResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            result = await session.engine.skip_question(payload.question_id)
    except ValueError as e:
        await _push_events(session)
        raise _http_error(e) from e

    await _push_events(session)
    return SkipResponse.of(result, game_completed=session.engine.state.completed)


@router.get("/session/{session_id}/statistics")
async def statistics_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    stats = await session.engine.statistics()
    out = dataclasses.asdict(stats)
    out["breakdown"]["final_score"] = stats.breakdown.final_score
    return out


@router.post("/session/{session_id}/save", response_model=SaveResponse)
async def save_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SaveResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            saved = session.engine.save_game()
    except ValueError as e:
        raise _http_error(e) from e

    await _push_events(session)
    if not saved:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Save failed")
    return SaveResponse(saved=True)


@router.post("/session/{session_id}/load", response_model=LoadResponse)
async def load_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> LoadResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            loaded = await session.engine.load_game()
            session.achievements.sync(session.engine.state)
    except ValueError as e:
        raise _http_error(e) from e

    await _push_events(session)
    return LoadResponse(loaded=loaded, state=SessionState.of(session_id, session.engine))


@router.post("/session/{session_id}/reset", response_model=SessionState)
async def reset_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionState:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            await session.engine.reset_game()
    except ValueError as e:
        raise _http_error(e) from e

    await _push_events(session)
    return SessionState.of(session_id, session.engine)


@router.get("/session/{session_id}/achievements", response_model=AchievementsResponse)
async def achievements_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> AchievementsResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    tracker = session.achievements
    return AchievementsResponse.of(tracker.summary(), tracker.statuses())


@router.post("/session/{session_id}/achievements/reset", response_model=AchievementsResponse)
async def reset_achievements_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionRegistry = Depends(get_registry),
) -> AchievementsResponse:
    session = await _require_session(session_id=session_id, r=r, sessions=sessions)
    try:
        with session_lock(r=r, session_id=session_id):
            session.achievements.reset()
    except ValueError as e:
        raise _http_error(e) from e

    await _push_events(session)
    tracker = session.achievements
    return AchievementsResponse.of(tracker.summary(), tracker.statuses())
