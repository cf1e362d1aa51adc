from __future__ import annotations

import asyncio
import uuid
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Question, QuestionTiming, Quiz


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    START_SCORE: int = 1000
    SCORE_FLOOR: int = 100
    DECAY_STEP: int = 1
    DECAY_TICK_MS: int = 100
    JOIN_CODE_DIGITS: int = 5
    DEFAULT_QUESTION_DURATION: int = 5
    DEFAULT_ANSWERING_DURATION: int = 20
    WEBHOOK_URL: Optional[str] = None
    WEBHOOK_TOKEN: Optional[str] = None
    WEBHOOK_TIMEOUT_SEC: float = 5.0
    RETAIN_ENDED_SESSIONS: bool = True
    EVENT_HISTORY_LIMIT: int = 500
    CORS_ORIGINS: str = "*"
    CORS_ORIGIN_REGEX: Optional[str] = None
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


class InMemoryQuizStore:
    """Validated quiz definitions keyed by quiz id.

    Quizzes are frozen models, so readers get the stored instance back
    without copying.
    """

    def __init__(self, config: Optional[Settings] = None):
        self._config = config or get_settings()
        self._quizzes: Dict[str, Quiz] = {}
        self._lock = asyncio.Lock()

    def _default_timing(self) -> QuestionTiming:
        return QuestionTiming(
            question_duration=self._config.DEFAULT_QUESTION_DURATION,
            answering_duration=self._config.DEFAULT_ANSWERING_DURATION,
        )

    async def create(self, questions: List[Question]) -> Quiz:
        filled = [q if q.time else q.model_copy(update={"time": self._default_timing()}) for q in questions]
        quiz = Quiz(id=str(uuid.uuid4()), questions=filled)
        async with self._lock:
            self._quizzes[quiz.id] = quiz
        return quiz

    async def get(self, quiz_id: str) -> Optional[Quiz]:
        async with self._lock:
            return self._quizzes.get(quiz_id)

    async def list(self) -> List[Quiz]:
        async with self._lock:
            return list(self._quizzes.values())


quiz_store = InMemoryQuizStore()
