# ============================================================================
# Quiz Schemas
# ============================================================================
from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Optional, List, Union, Literal
from datetime import datetime
from uuid import UUID

from quiz_engine.models.curriculum import DifficultyLevel
from quiz_engine.models.quiz import FocusArea


# ==================== Scope (tagged union) ====================

class ModuleScope(BaseModel):
    kind: Literal["module"] = "module"
    module_id: UUID


class TopicSelector(BaseModel):
    subject: str = Field(..., min_length=1, max_length=100)
    topic: str = Field(..., min_length=1, max_length=200)
    subtopics: Optional[List[str]] = None  # None = every subtopic of the topic

    @property
    def label(self) -> str:
        if self.subtopics:
            return f"{self.subject} / {self.topic} ({', '.join(self.subtopics)})"
        return f"{self.subject} / {self.topic}"


class TopicScope(BaseModel):
    kind: Literal["topics"] = "topics"
    selectors: List[TopicSelector]


QuizScope = Annotated[Union[ModuleScope, TopicScope], Field(discriminator="kind")]

scope_adapter = TypeAdapter(QuizScope)


def parse_scope(data: dict) -> Union[ModuleScope, TopicScope]:
    """Rehydrate a scope stored as JSON on a session or challenge"""
    return scope_adapter.validate_python(data)


def dump_scope(scope: Union[ModuleScope, TopicScope]) -> dict:
    return scope.model_dump(mode="json")


# ==================== Requests ====================

class StartQuizRequest(BaseModel):
    student_id: UUID
    module_id: Optional[UUID] = None
    challenge_id: Optional[UUID] = None
    question_count: Optional[int] = Field(None, ge=1, le=200)
    focus_area: Optional[FocusArea] = None


class SubmitAnswerRequest(BaseModel):
    question_id: UUID
    answer: Optional[str] = None  # empty / missing = timed out
    time_spent: int = Field(0, ge=0)
    student_id: Optional[UUID] = None


class SessionActionRequest(BaseModel):
    student_id: Optional[UUID] = None


# ==================== Responses ====================

class QuestionPayload(BaseModel):
    """Question as shown to the student - never carries the answer"""
    id: UUID
    question_type: str
    question_text: str
    options: Optional[List[str]] = None
    points: Optional[int] = None
    time_limit: Optional[int] = None
    difficulty: DifficultyLevel
    subject: str
    topic: str

    class Config:
        from_attributes = True


class StartQuizResponse(BaseModel):
    session_id: UUID
    question: QuestionPayload
    current_question_number: int
    total_questions: int
    focus_area: FocusArea


class AnswerResponse(BaseModel):
    is_correct: bool
    correct_answer: str
    points_earned: int
    explanation: Optional[str] = None
    duplicate: bool = False


class QuizSummaryResponse(BaseModel):
    session_id: UUID
    score_percentage: float
    correct_answers: int
    wrong_answers: int
    total_points: int
    time_taken: int
    answered_questions: int
    total_questions: int
    ended_early: bool = False


class NextQuestionResponse(BaseModel):
    completed: bool = False
    question: Optional[QuestionPayload] = None
    current_question_number: Optional[int] = None
    total_questions: int
    summary: Optional[QuizSummaryResponse] = None


class AnswerRecordResponse(BaseModel):
    question_id: UUID
    sequence: int
    user_answer: Optional[str]
    is_correct: bool
    points_earned: int
    time_spent_seconds: int
    difficulty_at_ask_time: DifficultyLevel
    topic: str

    class Config:
        from_attributes = True


class SessionReviewResponse(BaseModel):
    session_id: UUID
    student_id: UUID
    status: str
    focus_area: FocusArea
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    total_questions: int
    score_percentage: Optional[float]
    total_points: int
    answers: List[AnswerRecordResponse]


class SessionHistoryItem(BaseModel):
    session_id: UUID
    status: str
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    total_questions: int
    correct_answers: int
    score_percentage: Optional[float]
    challenge_id: Optional[UUID] = None
