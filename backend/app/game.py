from __future__ import annotations
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from .db import InMemoryQuizStore, Settings
from .decay import ScoreDecay
from .events import SessionEventHub
from .models import LeaderboardEntry, Participant, Quiz, SessionState
from .notifier import WinnerNotifier
from .schemas import (
    InvalidSessionSignal,
    LeaderboardMsg,
    QuestionMsg,
    QuizEndedSignal,
    RevealAnswerSignal,
)
from .errors import SessionEnded, UnknownParticipant
from .utils import rank_leaderboard

logger = logging.getLogger(__name__)


class QuizSession:
    """One playthrough of a quiz and the transitions hosts and participants drive.

    Every transition runs under the session lock and applies all of its
    mutations before the first broadcast goes out. Transitions that the
    current state does not allow return ``False`` instead of raising; only
    ``join`` raises, because the caller needs to be told why no participant
    id came back.
    """

    def __init__(
        self,
        session_id: str,
        join_code: str,
        quiz_id: str,
        *,
        config: Settings,
        quiz_store: InMemoryQuizStore,
        event_hub: SessionEventHub,
        winner_notifier: WinnerNotifier,
        on_ended: Optional[Callable[["QuizSession"], Awaitable[None]]] = None,
    ):
        self.id = session_id
        self.join_code: Optional[str] = join_code
        self.quiz_id = quiz_id
        self.created_at = datetime.now(timezone.utc)

        self.state = SessionState.LOBBY
        self.current_question_idx = 0
        self.score_pool = config.START_SCORE
        self.decay_started = False
        # set by close(); a closed session rejects every transition
        self.closed = False
        self.quiz_missing = False
        # both keyed by participant id, in join order
        self.participants: Dict[str, Participant] = {}
        self.leaderboard: Dict[str, LeaderboardEntry] = {}
        self.lock = asyncio.Lock()

        self._config = config
        self._quiz_store = quiz_store
        self._hub = event_hub
        self._notifier = winner_notifier
        self._on_ended = on_ended
        self._quiz: Optional[Quiz] = None
        self._notified = False
        self._decay = ScoreDecay(
            session_id,
            lambda: self.score_pool,
            self._set_score_pool,
            floor=config.SCORE_FLOOR,
            step=config.DECAY_STEP,
            interval_sec=config.DECAY_TICK_MS / 1000,
        )

    def _set_score_pool(self, value: int) -> None:
        self.score_pool = value

    @property
    def decay_running(self) -> bool:
        return self._decay.running

    def participant(self, participant_id: str) -> Participant:
        try:
            return self.participants[participant_id]
        except KeyError:
            raise UnknownParticipant(participant_id) from None

    def ranked_leaderboard(self) -> List[LeaderboardEntry]:
        return rank_leaderboard(self.leaderboard.values())

    async def join(self, name: str) -> Participant:
        async with self.lock:
            if self.closed or self.state is SessionState.ENDED:
                raise SessionEnded(self.id)

            participant = Participant(id=str(uuid.uuid4()), name=name)
            self.participants[participant.id] = participant
            self.leaderboard[participant.id] = LeaderboardEntry(participant_id=participant.id, name=name)
            logger.info("Participant %s (%s) joined session %s", participant.id, name, self.id)

            await self._publish_leaderboard()
            return participant

    async def advance_question(self) -> bool:
        async with self.lock:
            if self.closed or self.state is SessionState.ENDED:
                return False
            if self.state is SessionState.IN_QUESTION:
                logger.info("Advance rejected for session %s: answer not revealed yet", self.id)
                return False

            # the quiz id is only checked here, not when the session was created
            quiz = self._quiz or await self._quiz_store.get(self.quiz_id)
            if quiz is None:
                self.quiz_missing = True
                logger.warning("Session %s references unknown quiz %s", self.id, self.quiz_id)
                await self._hub.broadcast(self.id, InvalidSessionSignal(session=self.id).model_dump(mode="json"))
                return False
            self._quiz = quiz

            index = self.current_question_idx
            question = quiz.question_at(index)
            if question is None:
                await self._end()
                return True

            self._decay.stop()
            self.current_question_idx += 1
            self.score_pool = self._config.START_SCORE
            self.decay_started = False
            self.state = SessionState.IN_QUESTION
            logger.info("Session %s advanced to question %d/%d", self.id, index + 1, len(quiz.questions))

            await self._hub.broadcast(
                self.id,
                QuestionMsg(
                    session_id=self.id,
                    index=index,
                    total=len(quiz.questions),
                    prompt=question.prompt,
                    choices=list(question.choices),
                    time=question.time,
                ).model_dump(mode="json"),
            )
            return True

    async def reveal_answer(self) -> bool:
        async with self.lock:
            if self.closed or self.state is not SessionState.IN_QUESTION:
                return False
            # decay keeps running until the next advance
            self.state = SessionState.REVEALED
            logger.info("Reveal answer in session %s", self.id)
            await self._hub.broadcast(self.id, RevealAnswerSignal(session_id=self.id).model_dump(mode="json"))
            return True

    async def submit_answer(self, participant_id: str, choice_index: int) -> bool:
        async with self.lock:
            # answers always target the question that was just broadcast
            index = self.current_question_idx - 1
            rejected = self._rejection_reason(participant_id, index)
            if rejected:
                logger.info("Answer from %s rejected in session %s: %s", participant_id, self.id, rejected)
                return False

            participant = self.participants[participant_id]
            question = self._quiz.question_at(index)
            participant.answered.add(index)

            if not self.decay_started:
                self.decay_started = True
                self._decay.start()

            award = self.score_pool
            entry = self.leaderboard.get(participant_id)
            if entry is None:
                entry = LeaderboardEntry(participant_id=participant_id, name=participant.name)
                self.leaderboard[participant_id] = entry
            if choice_index == question.correct_index:
                entry.score += award

            await self._publish_leaderboard()
            return True

    def _rejection_reason(self, participant_id: str, index: int) -> Optional[str]:
        if self.closed:
            return "session removed"
        if self.state not in (SessionState.IN_QUESTION, SessionState.REVEALED):
            return f"session is {self.state.value}"
        participant = self.participants.get(participant_id)
        if participant is None:
            return "unknown participant"
        if self._quiz is None or self._quiz.question_at(index) is None:
            return f"no question at index {index}"
        if index in participant.answered:
            return f"question {index} already answered"
        return None

    async def publish_leaderboard(self) -> None:
        async with self.lock:
            if self.closed:
                return
            await self._publish_leaderboard()

    async def _publish_leaderboard(self):
        await self._hub.broadcast(
            self.id,
            LeaderboardMsg(session_id=self.id, entries=self.ranked_leaderboard()).model_dump(mode="json"),
        )

    async def _end(self):
        self._decay.stop()
        self.state = SessionState.ENDED
        ranked = self.ranked_leaderboard()
        winner = ranked[0] if ranked else None
        logger.info("Quiz ended for session %s, winner: %s", self.id, winner.name if winner else None)

        await self._hub.broadcast(self.id, QuizEndedSignal(session_id=self.id, winner=winner).model_dump(mode="json"))

        if not self._notified:
            self._notified = True
            self._notifier.fire_and_forget(self.id, winner.name if winner else None)

        if self._on_ended is not None:
            await self._on_ended(self)

    def notify_winner(self) -> asyncio.Task:
        """Fire the winner webhook again on request; the automatic call at quiz end is unaffected."""
        ranked = self.ranked_leaderboard()
        return self._notifier.fire_and_forget(self.id, ranked[0].name if ranked else None)

    def close(self) -> None:
        self.closed = True
        self._decay.stop()

    def summary(self) -> dict:
        return {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "join_code": self.join_code,
            "state": self.state.value,
            "current_question_idx": self.current_question_idx,
            "score_pool": self.score_pool,
            "participants": len(self.participants),
            "leaderboard": self.ranked_leaderboard(),
        }
