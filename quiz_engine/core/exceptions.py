# ============================================================================
# Custom Exceptions
# ============================================================================
from typing import Optional
from uuid import UUID


class QuizEngineException(Exception):
    """Base exception for the quiz engine"""
    def __init__(
        self,
        detail: str,
        status_code: int = 400,
        error_code: Optional[str] = None
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code or "QUIZ_ENGINE_ERROR"
        super().__init__(self.detail)


class InvalidScope(QuizEngineException):
    """The requested scope has no servable questions. Not retryable as-is."""
    def __init__(self, message: str = "No questions available for the requested scope"):
        super().__init__(
            detail=message,
            status_code=422,
            error_code="INVALID_SCOPE"
        )


class QuizValidationError(QuizEngineException):
    def __init__(self, message: str):
        super().__init__(
            detail=message,
            status_code=422,
            error_code="VALIDATION_ERROR"
        )


class SessionNotActive(QuizEngineException):
    def __init__(self, session_id: UUID, status: str):
        super().__init__(
            detail=f"Quiz session {session_id} is {status}",
            status_code=409,
            error_code="SESSION_NOT_ACTIVE"
        )
        self.status = status


class SessionNotFound(QuizEngineException):
    def __init__(self, session_id: UUID):
        super().__init__(
            detail=f"Quiz session not found: {session_id}",
            status_code=404,
            error_code="SESSION_NOT_FOUND"
        )


class QuestionNotFound(QuizEngineException):
    def __init__(self, question_id: UUID):
        super().__init__(
            detail=f"Question not found: {question_id}",
            status_code=404,
            error_code="QUESTION_NOT_FOUND"
        )


class ChallengeNotFound(QuizEngineException):
    def __init__(self, challenge_id: UUID):
        super().__init__(
            detail=f"Challenge not found: {challenge_id}",
            status_code=404,
            error_code="CHALLENGE_NOT_FOUND"
        )


class ChallengeUnavailable(QuizEngineException):
    def __init__(self, challenge_id: UUID, reason: str):
        super().__init__(
            detail=f"Challenge {challenge_id} cannot be started: {reason}",
            status_code=409,
            error_code="CHALLENGE_UNAVAILABLE"
        )


class SessionAccessDenied(QuizEngineException):
    def __init__(self, resource: str = "quiz session"):
        super().__init__(
            detail=f"This {resource} belongs to another student",
            status_code=403,
            error_code="ACCESS_DENIED"
        )


class SessionBusy(QuizEngineException):
    """Another request holds the session lock; safe to retry."""
    def __init__(self, session_id: UUID):
        super().__init__(
            detail=f"Quiz session {session_id} is busy, retry shortly",
            status_code=409,
            error_code="SESSION_BUSY"
        )
