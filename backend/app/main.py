import json
import logging

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .db import quiz_store, settings
from .errors import ExhaustedCodeSpace, SessionEnded, SessionNotFound, UnknownParticipant
from .events import hub
from .game import QuizSession
from .registry import registry
from .router import EventRouter
from .schemas import (
    AnswerIn,
    CreateQuizIn,
    CreateQuizOut,
    CreateSessionIn,
    CreateSessionOut,
    JoinIn,
    JoinOut,
    PublicSessionOut,
    TransitionOut,
)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Quiz Session Engine")

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
origin_regex = settings.CORS_ORIGIN_REGEX or None

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_origin_regex=origin_regex,
    allow_methods=["*"],
    allow_headers=["*"],
)

event_router = EventRouter(registry, hub)


def _resolve(identifier: str) -> QuizSession:
    try:
        return registry.resolve(identifier)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/quiz", response_model=CreateQuizOut)
async def create_quiz(payload: CreateQuizIn):
    quiz = await quiz_store.create(payload.questions)
    logger.info("Quiz %s created with %d question(s)", quiz.id, len(quiz.questions))
    return CreateQuizOut(quiz_id=quiz.id)


@app.get("/api/quizzes")
async def list_quizzes():
    return {quiz.id: [q.model_dump() for q in quiz.questions] for quiz in await quiz_store.list()}


@app.get("/api/sessions", response_model=list[PublicSessionOut])
async def list_sessions():
    return [PublicSessionOut(**s.summary()) for s in registry.list_sessions()]


@app.post("/api/session", response_model=CreateSessionOut)
async def create_session(payload: CreateSessionIn):
    try:
        session = await registry.create_session(payload.quiz_id)
    except ExhaustedCodeSpace as exc:
        logger.error("Cannot create session: %s", exc)
        raise HTTPException(status_code=503, detail="No join codes available") from exc
    return CreateSessionOut(session_id=session.id, join_code=session.join_code)


@app.get("/api/session/{identifier}", response_model=PublicSessionOut)
async def get_session(identifier: str):
    return PublicSessionOut(**_resolve(identifier).summary())


@app.delete("/api/session/{session_id}")
async def remove_session(session_id: str):
    try:
        await registry.remove(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True}


@app.post("/api/join", response_model=JoinOut)
async def join(payload: JoinIn):
    session = _resolve(payload.session)
    try:
        participant = await session.join(payload.name)
    except SessionEnded as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return JoinOut(participant_id=participant.id, session_id=session.id)


@app.get("/api/session/{session_id}/participants/{participant_id}")
async def get_participant(session_id: str, participant_id: str):
    session = _resolve(session_id)
    try:
        participant = session.participant(participant_id)
    except UnknownParticipant as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    entry = session.leaderboard.get(participant.id)
    return {
        "participant_id": participant.id,
        "name": participant.name,
        "score": entry.score if entry else 0,
        "answered": sorted(participant.answered),
    }


@app.post("/api/session/{session_id}/advance", response_model=TransitionOut)
async def advance(session_id: str):
    return TransitionOut(accepted=await _resolve(session_id).advance_question())


@app.post("/api/session/{session_id}/reveal", response_model=TransitionOut)
async def reveal(session_id: str):
    return TransitionOut(accepted=await _resolve(session_id).reveal_answer())


@app.post("/api/answer", response_model=TransitionOut)
async def answer(payload: AnswerIn):
    ok = await _resolve(payload.session_id).submit_answer(payload.participant_id, payload.choice_index)
    return TransitionOut(accepted=ok)


@app.get("/api/session/{session_id}/leaderboard")
async def leaderboard(session_id: str):
    session = _resolve(session_id)
    await session.publish_leaderboard()
    return {"entries": [e.model_dump() for e in session.ranked_leaderboard()]}


@app.get("/api/session/{session_id}/events")
async def list_events(session_id: str, after: int | None = None, limit: int = 200):
    session = _resolve(session_id)
    events = await hub.list(session.id, after=after, limit=limit)
    latest_seq = events[-1]["seq"] if events else after
    return {"events": events, "latest_seq": latest_seq}


@app.post("/api/session/{session_id}/notify")
async def notify(session_id: str):
    _resolve(session_id).notify_winner()
    return {"message": "Winner notification triggered"}


@app.websocket("/ws")
async def session_socket(websocket: WebSocket):
    await websocket.accept()
    logger.info("A user connected")
    try:
        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except ValueError:
                raw = None
            await event_router.dispatch(websocket, raw)
    except WebSocketDisconnect:
        logger.info("A user disconnected")
    finally:
        await hub.unsubscribe(websocket)
