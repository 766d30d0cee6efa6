# ============================================================================
# Question Bank Models
# ============================================================================
from enum import Enum

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Uuid
from sqlalchemy import Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from quiz_engine.core.database import Base


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    FILL_BLANK = "fill_blank"


class Module(Base):
    __tablename__ = "modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subject = Column(String(100), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    questions = relationship("Question", back_populates="module")

    def __repr__(self):
        return f"<Module {self.name} ({self.subject})>"


class Question(Base):
    __tablename__ = "questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("modules.id", ondelete="SET NULL"), nullable=True, index=True)

    # Every question belongs to exactly one (subject, topic); sub_topic is a tag within the topic
    subject = Column(String(100), nullable=False, index=True)
    topic = Column(String(200), nullable=False, index=True)
    sub_topic = Column(String(200))

    question_text = Column(Text, nullable=False)
    question_type = Column(String(30), nullable=False, default=QuestionType.MULTIPLE_CHOICE.value)
    options = Column(JSON, nullable=True)  # For MCQ: ["option1", "option2", ...]
    correct_answer = Column(Text, nullable=False)
    explanation = Column(Text)
    difficulty = Column(String(20), nullable=False, default=DifficultyLevel.MEDIUM.value)  # easy, medium, hard
    points = Column(Integer, default=10)
    time_limit = Column(Integer, default=60)  # seconds, enforced client-side

    status = Column(String(20), default="approved")  # draft, approved, rejected
    is_active = Column(Boolean, default=True)

    # Statistics
    times_attempted = Column(Integer, default=0)
    times_correct = Column(Integer, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    module = relationship("Module", back_populates="questions")

    @property
    def success_rate(self) -> float:
        if not self.times_attempted:
            return 0.0
        return ((self.times_correct or 0) / self.times_attempted) * 100

    def __repr__(self):
        return f"<Question {self.id} ({self.topic}, {self.difficulty})>"
