from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator


class QuestionTiming(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_duration: int = Field(gt=0)
    answering_duration: int = Field(gt=0)


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    choices: List[str] = Field(min_length=2, max_length=4)
    correct_index: StrictInt
    # None until the quiz store fills in the configured defaults
    time: Optional[QuestionTiming] = None

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Question must be a non-empty string")
        return value

    @field_validator("choices")
    @classmethod
    def _choices_not_blank(cls, value: List[str]) -> List[str]:
        if any(not choice.strip() for choice in value):
            raise ValueError("All answers must be non-empty strings")
        return value

    @model_validator(mode="after")
    def _correct_index_in_range(self) -> "Question":
        if not 0 <= self.correct_index < len(self.choices):
            raise ValueError("Correct answer index must be within the answer choices range")
        return self


class Quiz(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    questions: List[Question]

    def question_at(self, index: int) -> Optional[Question]:
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None


class Participant(BaseModel):
    id: str
    name: str
    answered: Set[int] = Field(default_factory=set)


class LeaderboardEntry(BaseModel):
    participant_id: str
    name: str
    score: int = 0


# States: lobby -> in_question <-> revealed -> ended
class SessionState(str, Enum):
    LOBBY = "lobby"
    IN_QUESTION = "in_question"
    REVEALED = "revealed"
    ENDED = "ended"
