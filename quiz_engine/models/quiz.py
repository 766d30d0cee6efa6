# ============================================================================
# Quiz Session Models
# ============================================================================
from enum import Enum

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Uuid
from sqlalchemy import Text, Numeric, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from quiz_engine.core.database import Base


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class FocusArea(str, Enum):
    STRENGTHEN = "strengthen"  # practice strong topics
    IMPROVE = "improve"        # practice weak topics
    BALANCED = "balanced"      # uniform across the scope


class QuizSession(Base):
    __tablename__ = "quiz_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=True)
    challenge_id = Column(Uuid, ForeignKey("challenges.id"), nullable=True)

    # {"kind": "module", "module_id": ...} | {"kind": "topics", "selectors": [...]}
    scope = Column(JSON, nullable=False)
    allocation = Column(JSON, default=list)  # per-selector quotas for multi-topic scopes
    focus_area = Column(String(20), nullable=False, default=FocusArea.BALANCED.value)

    status = Column(String(20), nullable=False, default=SessionStatus.ACTIVE.value)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))  # NULL while in progress
    last_activity_at = Column(DateTime(timezone=True), server_default=func.now())

    requested_questions = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    ended_early = Column(Boolean, default=False)  # pool exhausted before total_questions

    correct_count = Column(Integer, default=0)
    wrong_count = Column(Integer, default=0)
    total_points = Column(Integer, default=0)
    time_taken_seconds = Column(Integer, default=0)
    score_percentage = Column(Numeric(5, 2))

    # At most one outstanding question; NULL once it has been graded
    current_question_id = Column(Uuid, ForeignKey("questions.id"), nullable=True)

    # Adaptive streak state
    target_difficulty = Column(String(20), default="medium")
    consecutive_correct = Column(Integer, default=0)
    consecutive_wrong = Column(Integer, default=0)

    answers = relationship(
        "QuestionAnswerRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="QuestionAnswerRecord.sequence",
    )

    @property
    def answered_count(self) -> int:
        return (self.correct_count or 0) + (self.wrong_count or 0)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE.value

    def __repr__(self):
        return f"<QuizSession {self.id} ({self.status})>"


class QuestionAnswerRecord(Base):
    """Append-only grading record; one per question per session"""
    __tablename__ = "question_answer_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(Uuid, ForeignKey("questions.id"), nullable=False)
    sequence = Column(Integer, nullable=False)  # 1-based answer order

    user_answer = Column(Text, nullable=True)  # NULL = unanswered / timed out
    is_correct = Column(Boolean, nullable=False, default=False)
    points_earned = Column(Integer, nullable=False, default=0)
    time_spent_seconds = Column(Integer, default=0)
    difficulty_at_ask_time = Column(String(20), nullable=False)

    subject = Column(String(100), nullable=False)
    topic = Column(String(200), nullable=False)

    answered_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("QuizSession", back_populates="answers")
    question = relationship("Question")

    __table_args__ = (
        UniqueConstraint('session_id', 'question_id', name='unique_session_question'),
        UniqueConstraint('session_id', 'sequence', name='unique_session_sequence'),
    )

    def __repr__(self):
        return f"<QuestionAnswerRecord {self.id} ({'✓' if self.is_correct else '✗'})>"
