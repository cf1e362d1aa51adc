from pydantic import BaseModel, Field, StrictInt, TypeAdapter
from typing import Annotated, List, Literal, Optional, Union
from .models import LeaderboardEntry, Question, QuestionTiming


# --- HTTP ---

class CreateQuizIn(BaseModel):
    questions: List[Question] = Field(min_length=1)


class CreateQuizOut(BaseModel):
    message: str = "Quiz created successfully"
    quiz_id: str


class CreateSessionIn(BaseModel):
    quiz_id: str


class CreateSessionOut(BaseModel):
    session_id: str
    join_code: str


class JoinIn(BaseModel):
    # session id or join code
    session: str
    name: str = Field(min_length=1, max_length=64)


class JoinOut(BaseModel):
    message: str = "User registered successfully!"
    participant_id: str
    session_id: str


class AnswerIn(BaseModel):
    session_id: str
    participant_id: str
    choice_index: StrictInt


class TransitionOut(BaseModel):
    accepted: bool


class PublicSessionOut(BaseModel):
    id: str
    quiz_id: str
    join_code: Optional[str]
    state: str
    current_question_idx: int
    score_pool: int
    participants: int
    leaderboard: List[LeaderboardEntry]


# --- WebSocket, inbound ---

class CreateSessionMsg(BaseModel):
    type: Literal["create_session"]
    quiz_id: str


class SubscribeMsg(BaseModel):
    type: Literal["subscribe"]
    session: str


class JoinMsg(BaseModel):
    type: Literal["join"]
    session: str
    name: str = Field(min_length=1, max_length=64)


class AdvanceQuestionMsg(BaseModel):
    type: Literal["advance_question"]
    session: str


class RevealAnswerMsg(BaseModel):
    type: Literal["reveal_answer"]
    session: str


class SubmitAnswerMsg(BaseModel):
    type: Literal["submit_answer"]
    session: str
    participant_id: str
    choice_index: StrictInt


class RequestLeaderboardMsg(BaseModel):
    type: Literal["request_leaderboard"]
    session: str


InboundMessage = Annotated[
    Union[
        CreateSessionMsg,
        SubscribeMsg,
        JoinMsg,
        AdvanceQuestionMsg,
        RevealAnswerMsg,
        SubmitAnswerMsg,
        RequestLeaderboardMsg,
    ],
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


# --- WebSocket, outbound ---

class LeaderboardMsg(BaseModel):
    type: Literal["leaderboard"] = "leaderboard"
    session_id: str
    entries: List[LeaderboardEntry]


class QuestionMsg(BaseModel):
    type: Literal["question"] = "question"
    session_id: str
    index: int
    total: int
    prompt: str
    choices: List[str]
    time: Optional[QuestionTiming]


class RevealAnswerSignal(BaseModel):
    type: Literal["reveal_answer"] = "reveal_answer"
    session_id: str


class QuizEndedSignal(BaseModel):
    type: Literal["quiz_ended"] = "quiz_ended"
    session_id: str
    winner: Optional[LeaderboardEntry]


class InvalidSessionSignal(BaseModel):
    type: Literal["invalid_session"] = "invalid_session"
    session: str


class SessionCreatedMsg(BaseModel):
    type: Literal["session_created"] = "session_created"
    session_id: str
    join_code: str


class SubscribedMsg(BaseModel):
    type: Literal["subscribed"] = "subscribed"
    session_id: str


class JoinedMsg(BaseModel):
    type: Literal["joined"] = "joined"
    session_id: str
    participant_id: str


class ErrorMsg(BaseModel):
    type: Literal["error"] = "error"
    message: str
