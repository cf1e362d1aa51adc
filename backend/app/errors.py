from __future__ import annotations


class QuizEngineError(Exception):
    """Base class for session engine failures."""


class SessionNotFound(QuizEngineError, LookupError):
    def __init__(self, identifier: str, message: str | None = None):
        super().__init__(message or f"Session not found: {identifier}")
        self.identifier = identifier


class InvalidJoinCode(SessionNotFound):
    def __init__(self, code: str):
        super().__init__(code, f"Invalid join code: {code}")


class SessionEnded(QuizEngineError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} has ended")
        self.session_id = session_id


class UnknownParticipant(QuizEngineError, LookupError):
    def __init__(self, participant_id: str):
        super().__init__(f"Unknown participant: {participant_id}")
        self.participant_id = participant_id


class ExhaustedCodeSpace(QuizEngineError, RuntimeError):
    pass


class NotificationDeliveryFailure(QuizEngineError, RuntimeError):
    pass
