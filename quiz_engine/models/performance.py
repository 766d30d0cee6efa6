# ============================================================================
# Topic Performance Models
# ============================================================================
from enum import Enum

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Uuid
from sqlalchemy import Numeric, UniqueConstraint, Index
from sqlalchemy.sql import func
import uuid
from quiz_engine.core.database import Base


class PerformanceLevel(str, Enum):
    WEAK = "weak"
    NEUTRAL = "neutral"
    STRONG = "strong"


class TopicPerformance(Base):
    """Rolling statistics per (student, subject, topic) over the recent attempt window"""
    __tablename__ = "topic_performance"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    subject = Column(String(100), nullable=False)
    topic = Column(String(200), nullable=False)

    total_attempts = Column(Integer, nullable=False, default=0)  # quizzes ever recorded on this topic
    window_attempts = Column(Integer, nullable=False, default=0)  # attempts the aggregates cover
    total_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    accuracy_percent = Column(Numeric(5, 2), nullable=False, default=0)
    avg_time_per_question = Column(Integer, default=0)

    easy_correct = Column(Integer, default=0)
    easy_total = Column(Integer, default=0)
    medium_correct = Column(Integer, default=0)
    medium_total = Column(Integer, default=0)
    hard_correct = Column(Integer, default=0)
    hard_total = Column(Integer, default=0)

    performance_level = Column(String(20), nullable=False, default=PerformanceLevel.NEUTRAL.value)
    confidence_score = Column(Numeric(5, 2), nullable=False, default=0)  # 0-100

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('student_id', 'subject', 'topic', name='unique_student_subject_topic'),
    )

    def __repr__(self):
        return f"<TopicPerformance {self.subject}/{self.topic} {self.performance_level}>"


class TopicAttemptSnapshot(Base):
    """One quiz attempt's outcome on one topic; only the newest window is retained"""
    __tablename__ = "topic_attempt_snapshots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False)
    subject = Column(String(100), nullable=False)
    topic = Column(String(200), nullable=False)
    session_id = Column(Uuid, ForeignKey("quiz_sessions.id", ondelete="SET NULL"), nullable=True)
    attempt_number = Column(Integer, nullable=False)

    total_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    total_time_seconds = Column(Integer, default=0)

    easy_correct = Column(Integer, default=0)
    easy_total = Column(Integer, default=0)
    medium_correct = Column(Integer, default=0)
    medium_total = Column(Integer, default=0)
    hard_correct = Column(Integer, default=0)
    hard_total = Column(Integer, default=0)

    recorded_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('student_id', 'subject', 'topic', 'attempt_number', name='unique_topic_attempt'),
        Index('ix_snapshot_topic', 'student_id', 'subject', 'topic'),
    )

    @property
    def accuracy_percent(self) -> float:
        if not self.total_questions:
            return 0.0
        return 100.0 * self.correct_answers / self.total_questions

    def __repr__(self):
        return f"<TopicAttemptSnapshot {self.topic} #{self.attempt_number}>"
