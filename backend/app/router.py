from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from .errors import ExhaustedCodeSpace, SessionEnded, SessionNotFound
from .events import SessionEventHub
from .game import QuizSession
from .registry import SessionRegistry
from .schemas import (
    AdvanceQuestionMsg,
    CreateSessionMsg,
    ErrorMsg,
    InvalidSessionSignal,
    JoinedMsg,
    JoinMsg,
    RequestLeaderboardMsg,
    RevealAnswerMsg,
    SessionCreatedMsg,
    SubmitAnswerMsg,
    SubscribedMsg,
    SubscribeMsg,
    inbound_adapter,
)

logger = logging.getLogger(__name__)


class EventRouter:
    """Dispatches inbound socket messages to sessions.

    Replies that only concern the sender go straight back over its socket;
    everything the whole room should see is broadcast by the session itself.
    """

    def __init__(self, sessions: SessionRegistry, event_hub: SessionEventHub):
        self._sessions = sessions
        self._hub = event_hub

    async def _reply(self, websocket: WebSocket, message: BaseModel) -> None:
        await websocket.send_json(message.model_dump(mode="json"))

    async def _session_for(self, websocket: WebSocket, identifier: str) -> Optional[QuizSession]:
        try:
            session = self._sessions.resolve(identifier)
        except SessionNotFound:
            await self._reply(websocket, InvalidSessionSignal(session=identifier))
            return None
        await self._hub.subscribe(session.id, websocket)
        return session

    async def dispatch(self, websocket: WebSocket, raw: Any) -> None:
        try:
            message = inbound_adapter.validate_python(raw)
        except ValidationError as exc:
            logger.info("Rejected inbound message: %s", exc.errors(include_url=False))
            await self._reply(websocket, ErrorMsg(message="Unsupported or malformed message"))
            return

        if isinstance(message, CreateSessionMsg):
            try:
                session = await self._sessions.create_session(message.quiz_id)
            except ExhaustedCodeSpace as exc:
                logger.error("Cannot create session: %s", exc)
                await self._reply(websocket, ErrorMsg(message="No join codes available"))
                return
            await self._hub.subscribe(session.id, websocket)
            await self._reply(websocket, SessionCreatedMsg(session_id=session.id, join_code=session.join_code))
            return

        session = await self._session_for(websocket, message.session)
        if session is None:
            return

        if isinstance(message, SubscribeMsg):
            logger.info("Socket subscribed to session %s", session.id)
            await self._reply(websocket, SubscribedMsg(session_id=session.id))
        elif isinstance(message, JoinMsg):
            try:
                participant = await session.join(message.name)
            except SessionEnded as exc:
                await self._reply(websocket, ErrorMsg(message=str(exc)))
                return
            await self._reply(websocket, JoinedMsg(session_id=session.id, participant_id=participant.id))
        elif isinstance(message, AdvanceQuestionMsg):
            if await session.advance_question():
                return
            if session.quiz_missing:
                reason = f"Quiz {session.quiz_id} not found"
            else:
                reason = f"Cannot advance while {session.state.value}"
            await self._reply(websocket, ErrorMsg(message=reason))
        elif isinstance(message, RevealAnswerMsg):
            if not await session.reveal_answer():
                await self._reply(websocket, ErrorMsg(message=f"Cannot reveal while {session.state.value}"))
        elif isinstance(message, SubmitAnswerMsg):
            # rejected submissions are silent by contract
            await session.submit_answer(message.participant_id, message.choice_index)
        elif isinstance(message, RequestLeaderboardMsg):
            await session.publish_leaderboard()
