from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Dict, List, Optional

from .db import InMemoryQuizStore, Settings, get_settings, quiz_store
from .errors import ExhaustedCodeSpace, InvalidJoinCode, SessionNotFound
from .events import SessionEventHub, hub
from .game import QuizSession
from .notifier import WinnerNotifier, notifier

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns every live ``QuizSession``, indexed by session id and by join code.

    Join codes are only held by sessions that have not ended; a code goes
    back to the pool as soon as its session ends or is removed.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        quizzes: Optional[InMemoryQuizStore] = None,
        event_hub: Optional[SessionEventHub] = None,
        winner_notifier: Optional[WinnerNotifier] = None,
        rng: Optional[random.Random] = None,
    ):
        self._config = config or get_settings()
        self._quizzes = quizzes or quiz_store
        self._hub = event_hub or hub
        self._notifier = winner_notifier or notifier
        self._rng = rng or random.SystemRandom()
        self._sessions: Dict[str, QuizSession] = {}
        self._codes: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    @property
    def code_space(self) -> range:
        digits = self._config.JOIN_CODE_DIGITS
        return range(10 ** (digits - 1), 10 ** digits)

    def _generate_code(self) -> str:
        space = self.code_space
        if len(self._codes) >= len(space):
            raise ExhaustedCodeSpace(
                f"All {len(space)} join codes are in use; raise JOIN_CODE_DIGITS"
            )
        while True:
            code = str(self._rng.randrange(space.start, space.stop))
            if code not in self._codes:
                return code

    async def create_session(self, quiz_id: str) -> QuizSession:
        async with self._lock:
            code = self._generate_code()
            session = QuizSession(
                str(uuid.uuid4()),
                code,
                quiz_id,
                config=self._config,
                quiz_store=self._quizzes,
                event_hub=self._hub,
                winner_notifier=self._notifier,
                on_ended=self._session_ended,
            )
            self._sessions[session.id] = session
            self._codes[code] = session.id
        logger.info("Created session %s (code %s) for quiz %s", session.id, code, quiz_id)
        return session

    def resolve(self, identifier: str) -> QuizSession:
        session = self._sessions.get(identifier)
        if session is not None:
            return session
        session_id = self._codes.get(identifier)
        if session_id is not None:
            return self._sessions[session_id]
        if identifier.isdigit() and len(identifier) == self._config.JOIN_CODE_DIGITS:
            raise InvalidJoinCode(identifier)
        raise SessionNotFound(identifier)

    async def remove(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                raise SessionNotFound(session_id)
            self._release_code(session)
            session.close()
        await self._hub.discard(session_id)
        logger.info("Removed session %s", session_id)

    def list_sessions(self) -> List[QuizSession]:
        return list(self._sessions.values())

    def active_codes(self) -> List[str]:
        return list(self._codes)

    def _release_code(self, session: QuizSession) -> None:
        if session.join_code is not None:
            self._codes.pop(session.join_code, None)
            session.join_code = None

    async def _session_ended(self, session: QuizSession) -> None:
        async with self._lock:
            self._release_code(session)
        if not self._config.RETAIN_ENDED_SESSIONS:
            await self.remove(session.id)


registry = SessionRegistry()
