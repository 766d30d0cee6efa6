# ============================================================================
# Challenge & Performance Schemas
# ============================================================================
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from quiz_engine.models.challenge import ChallengeType
from quiz_engine.models.quiz import FocusArea
from quiz_engine.schemas.quiz import QuizScope


class CreateChallengeRequest(BaseModel):
    assigned_by: UUID
    assigned_to: UUID
    challenge_type: ChallengeType
    scope: QuizScope
    question_count: int
    focus_area: FocusArea = FocusArea.BALANCED
    expires_at: Optional[datetime] = None
    title: Optional[str] = Field(None, max_length=200)


class CreateChallengeResponse(BaseModel):
    challenge_id: UUID
    focus_area: FocusArea
    focus_fallback: bool
    question_count: int
    estimated_minutes: int
    allocation: List[int]
    expires_at: Optional[datetime]


class ChallengeResponse(BaseModel):
    id: UUID
    assigned_by: UUID
    assigned_to: UUID
    challenge_type: ChallengeType
    title: Optional[str]
    question_count: int
    estimated_minutes: Optional[int] = None
    focus_area: FocusArea
    status: str
    expires_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class EstimateDurationRequest(BaseModel):
    scope: QuizScope
    question_count: int


class EstimateDurationResponse(BaseModel):
    question_count: int
    estimated_minutes: int


class DismissChallengeRequest(BaseModel):
    student_id: UUID


class TopicPerformanceItem(BaseModel):
    topic: str
    accuracy: float
    confidence: float
    attempts: int


class PerformanceSummaryResponse(BaseModel):
    student_id: UUID
    subject: Optional[str]
    strong: List[TopicPerformanceItem]
    neutral: List[TopicPerformanceItem]
    weak: List[TopicPerformanceItem]
