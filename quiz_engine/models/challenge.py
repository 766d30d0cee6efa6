# ============================================================================
# Challenge Models
# ============================================================================
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Uuid
from sqlalchemy import Text, JSON
from sqlalchemy.sql import func
import uuid
from quiz_engine.core.database import Base


class ChallengeType(str, Enum):
    SIMPLE = "simple"      # one module
    ADVANCED = "advanced"  # ordered list of topic selectors


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DISMISSED = "dismissed"
    EXPIRED = "expired"


class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    assigned_by = Column(Uuid, nullable=False)  # the assigning adult, or the student themself
    assigned_to = Column(Uuid, nullable=False, index=True)

    challenge_type = Column(String(20), nullable=False)
    title = Column(String(200))
    module_id = Column(Uuid, ForeignKey("modules.id"), nullable=True)
    scope = Column(JSON, nullable=False)
    allocation = Column(JSON, default=list)
    question_count = Column(Integer, nullable=False)
    estimated_minutes = Column(Integer)

    focus_area = Column(String(20), nullable=False)
    requested_focus_area = Column(String(20), nullable=False)
    focus_fallback = Column(Boolean, default=False)  # strengthen/improve downgraded to balanced

    status = Column(String(20), nullable=False, default=ChallengeStatus.PENDING.value)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    session_id = Column(Uuid, nullable=True)  # the session that consumed this challenge

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def __repr__(self):
        return f"<Challenge {self.id} ({self.challenge_type}, {self.status})>"


class QuestionBankShortfall(Base):
    """Selectors that could not supply their allocated question count"""
    __tablename__ = "question_bank_shortfalls"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id = Column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=True)
    subject = Column(String(100), nullable=False)
    topic = Column(String(200), nullable=False)
    subtopic = Column(Text)
    requested_count = Column(Integer, nullable=False)
    available_count = Column(Integer, nullable=False)
    shortfall = Column(Integer, nullable=False)
    resolved = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
