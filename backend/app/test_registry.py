from __future__ import annotations

import asyncio
import random
from unittest import IsolatedAsyncioTestCase, mock

from .db import InMemoryQuizStore, Settings
from .errors import ExhaustedCodeSpace, InvalidJoinCode, SessionEnded, SessionNotFound
from .events import SessionEventHub
from .models import Question, SessionState
from .notifier import WinnerNotifier
from .registry import SessionRegistry


class SessionRegistryTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.hub = SessionEventHub()
        self.registry = self._registry()
        quiz = await self.registry._quizzes.create(
            [Question(prompt="Only question", choices=["A", "B"], correct_index=0)]
        )
        self.quiz_id = quiz.id

    async def asyncTearDown(self) -> None:
        for session in self.registry.list_sessions():
            session.close()

    def _registry(self, **overrides) -> SessionRegistry:
        config = Settings(_env_file=None, DECAY_TICK_MS=60_000, **overrides)
        return SessionRegistry(
            config=config,
            quizzes=InMemoryQuizStore(config),
            event_hub=self.hub,
            winner_notifier=mock.Mock(spec=WinnerNotifier),
            rng=random.Random(1234),
        )

    async def _finish(self, session) -> None:
        await session.advance_question()
        await session.reveal_answer()
        await session.advance_question()

    async def test_create_session_initial_state(self):
        session = await self.registry.create_session(self.quiz_id)

        self.assertIs(session.state, SessionState.LOBBY)
        self.assertEqual(session.current_question_idx, 0)
        self.assertEqual(session.score_pool, 1000)
        self.assertFalse(session.decay_started)
        self.assertEqual(session.participants, {})
        self.assertEqual(len(session.join_code), 5)
        self.assertTrue(session.join_code.isdigit())

    async def test_create_does_not_check_quiz_exists(self):
        session = await self.registry.create_session("not-a-quiz")
        self.assertIs(self.registry.resolve(session.id), session)

    async def test_resolve_by_id_or_code(self):
        session = await self.registry.create_session(self.quiz_id)

        self.assertIs(self.registry.resolve(session.id), session)
        self.assertIs(self.registry.resolve(session.join_code), session)

    async def test_resolve_unknown(self):
        with self.assertRaises(InvalidJoinCode):
            self.registry.resolve("00000")
        with self.assertRaises(SessionNotFound):
            self.registry.resolve("nope")

    async def test_codes_are_unique_until_space_is_exhausted(self):
        registry = self._registry(JOIN_CODE_DIGITS=1)
        sessions = [await registry.create_session(self.quiz_id) for _ in range(9)]

        codes = {s.join_code for s in sessions}
        self.assertEqual(len(codes), 9)
        self.assertEqual(codes, {str(n) for n in range(1, 10)})

        with self.assertRaises(ExhaustedCodeSpace):
            await registry.create_session(self.quiz_id)

    async def test_ended_session_releases_code(self):
        registry = self._registry(JOIN_CODE_DIGITS=1)
        quiz = await registry._quizzes.create([Question(prompt="Q", choices=["A", "B"], correct_index=0)])
        sessions = [await registry.create_session(quiz.id) for _ in range(9)]

        target = sessions[4]
        code = target.join_code
        await self._finish(target)

        self.assertIsNone(target.join_code)
        self.assertNotIn(code, registry.active_codes())
        # retained by id, but the code no longer resolves
        self.assertIs(registry.resolve(target.id), target)
        replacement = await registry.create_session(quiz.id)
        self.assertEqual(replacement.join_code, code)

    async def test_ended_session_is_dropped_when_not_retained(self):
        registry = self._registry(RETAIN_ENDED_SESSIONS=False)
        quiz = await registry._quizzes.create([Question(prompt="Q", choices=["A", "B"], correct_index=0)])
        session = await registry.create_session(quiz.id)

        await self._finish(session)

        with self.assertRaises(SessionNotFound):
            registry.resolve(session.id)
        # the final log goes with the session; only live sockets saw quiz_ended
        self.assertEqual(await self.hub.list(session.id), [])

    async def test_remove_releases_everything(self):
        session = await self.registry.create_session(self.quiz_id)
        code = session.join_code
        await session.join("Ada")
        self.assertTrue(await self.hub.list(session.id))

        await self.registry.remove(session.id)

        with self.assertRaises(SessionNotFound):
            self.registry.resolve(session.id)
        self.assertNotIn(code, self.registry.active_codes())
        self.assertEqual(await self.hub.list(session.id), [])
        with self.assertRaises(SessionNotFound):
            await self.registry.remove(session.id)

    async def test_pending_transitions_on_removed_session_are_rejected(self):
        session = await self.registry.create_session(self.quiz_id)
        participant = await session.join("Ada")
        await session.advance_question()

        async with session.lock:
            pending = asyncio.create_task(session.submit_answer(participant.id, 0))
            await asyncio.sleep(0)
            await self.registry.remove(session.id)

        self.assertFalse(await pending)
        self.assertFalse(session.decay_running)
        self.assertEqual(session.leaderboard[participant.id].score, 0)
        self.assertEqual(await self.hub.list(session.id), [])

        with self.assertRaises(SessionEnded):
            await session.join("Ghost")
        self.assertFalse(await session.advance_question())
        self.assertFalse(await session.reveal_answer())
        await session.publish_leaderboard()
        self.assertEqual(await self.hub.list(session.id), [])
