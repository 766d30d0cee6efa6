# ============================================================================
# Challenge Builder
# ============================================================================
"""
Turns an assignment request (assigned by an adult or self-initiated) into a
pending challenge.

Simple challenges quiz one module. Advanced challenges take an ordered list
of topic selectors; the question count is spread over them with
`allocate_evenly`, and selectors whose share exceeds what the bank holds are
logged as shortfalls for content admins.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union
from uuid import UUID
import logging
import math

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_engine.config import get_settings
from quiz_engine.core.exceptions import (
    ChallengeNotFound,
    ChallengeUnavailable,
    InvalidScope,
    QuizValidationError,
    SessionAccessDenied,
)
from quiz_engine.models.challenge import (
    Challenge,
    ChallengeStatus,
    ChallengeType,
    QuestionBankShortfall,
)
from quiz_engine.models.quiz import FocusArea
from quiz_engine.schemas.quiz import ModuleScope, TopicScope, dump_scope
from quiz_engine.services.quiz.performance_tracker import TopicPerformanceTracker
from quiz_engine.services.quiz.question_selector import QuestionSelector

logger = logging.getLogger(__name__)


def allocate_evenly(count: int, n: int) -> List[int]:
    """
    Split `count` questions over `n` selectors.

    Every selector gets count // n; the remainder goes one each to the
    earliest selectors. allocate_evenly(10, 3) == [4, 3, 3]
    """
    if n <= 0:
        return []
    share, remainder = divmod(count, n)
    return [share + (1 if i < remainder else 0) for i in range(n)]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChallengeBuilder:
    """Validates and stores challenge specifications"""

    def __init__(
        self,
        db: AsyncSession,
        tracker: Optional[TopicPerformanceTracker] = None,
        selector: Optional[QuestionSelector] = None
    ):
        self.db = db
        self.tracker = tracker or TopicPerformanceTracker(db)
        self.selector = selector or QuestionSelector(db)
        self.settings = get_settings()

    async def build(
        self,
        assigned_by: UUID,
        assigned_to: UUID,
        challenge_type: str,
        scope: Union[ModuleScope, TopicScope],
        question_count: int,
        focus_area: str = FocusArea.BALANCED.value,
        expires_at: Optional[datetime] = None,
        title: Optional[str] = None
    ) -> Challenge:
        """
        Create a pending challenge.

        Strengthen/improve requests for a student with no topic history are
        stored as balanced, with focus_fallback set and the original request
        kept in requested_focus_area.

        Raises:
            QuizValidationError: scope/type mismatch, empty scope, count out of bounds
            InvalidScope: the scope has no servable questions at all
        """
        try:
            challenge_type = ChallengeType(challenge_type).value
            requested_focus = FocusArea(focus_area or FocusArea.BALANCED).value
        except ValueError as e:
            raise QuizValidationError(str(e))

        if challenge_type == ChallengeType.SIMPLE.value:
            allocation = await self._validate_simple(scope, question_count)
            availability: List[int] = []
        else:
            allocation, availability = await self._validate_advanced(scope, question_count)

        now = datetime.now(timezone.utc)
        if expires_at is None:
            expires_at = now + timedelta(days=self.settings.CHALLENGE_EXPIRY_DAYS)
        elif _as_utc(expires_at) <= now:
            raise QuizValidationError("expires_at must be in the future")

        focus = requested_focus
        if focus != FocusArea.BALANCED.value and not await self.tracker.has_history(assigned_to):
            logger.warning(
                f"Student {assigned_to} has no topic history; "
                f"challenge focus '{focus}' falls back to balanced"
            )
            focus = FocusArea.BALANCED.value

        estimated_minutes = await self.estimate_duration(scope, question_count)

        try:
            challenge = Challenge(
                assigned_by=assigned_by,
                assigned_to=assigned_to,
                challenge_type=challenge_type,
                title=title,
                module_id=scope.module_id if isinstance(scope, ModuleScope) else None,
                scope=dump_scope(scope),
                allocation=allocation,
                question_count=question_count,
                estimated_minutes=estimated_minutes,
                focus_area=focus,
                requested_focus_area=requested_focus,
                focus_fallback=focus != requested_focus,
                status=ChallengeStatus.PENDING.value,
                expires_at=expires_at,
                created_at=now,
            )
            self.db.add(challenge)
            await self.db.flush()

            if isinstance(scope, TopicScope):
                self._log_shortfalls(challenge, scope, allocation, availability)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Created {challenge_type} challenge {challenge.id} for {assigned_to}: "
            f"{question_count} questions, focus={focus}"
        )
        return challenge

    async def _validate_simple(self, scope, question_count: int) -> List[int]:
        if not isinstance(scope, ModuleScope):
            raise QuizValidationError("Simple challenges take a single module")

        low = self.settings.SIMPLE_CHALLENGE_MIN_QUESTIONS
        high = self.settings.SIMPLE_CHALLENGE_MAX_QUESTIONS
        if not low <= question_count <= high:
            raise QuizValidationError(f"question_count must be between {low} and {high}")

        if not await self.selector.count_module(scope.module_id):
            raise InvalidScope(f"Module {scope.module_id} has no approved questions")
        return []

    async def _validate_advanced(self, scope, question_count: int):
        if not isinstance(scope, TopicScope):
            raise QuizValidationError("Advanced challenges take a list of topics")
        if not scope.selectors:
            raise QuizValidationError("Select at least one topic")

        max_topics = self.settings.ADVANCED_CHALLENGE_MAX_TOPICS
        if len(scope.selectors) > max_topics:
            raise QuizValidationError(f"At most {max_topics} topics per challenge")

        high = self.settings.ADVANCED_CHALLENGE_MAX_QUESTIONS
        if not 1 <= question_count <= high:
            raise QuizValidationError(f"question_count must be between 1 and {high}")

        allocation = allocate_evenly(question_count, len(scope.selectors))
        availability = [await self.selector.count_available(s) for s in scope.selectors]
        if not any(availability):
            raise InvalidScope("None of the selected topics has approved questions")
        return allocation, availability

    async def estimate_duration(
        self,
        scope: Union[ModuleScope, TopicScope],
        question_count: int
    ) -> int:
        """
        Expected minutes to finish a challenge: question_count times the mean
        time limit of the questions in scope, rounded up.
        """
        if question_count < 1:
            raise QuizValidationError("question_count must be at least 1")

        default = self.settings.DEFAULT_QUESTION_SECONDS
        pool = await self.selector.load_pool(scope)
        limits = [q.time_limit or default for q in pool.questions] or [default]
        average = sum(limits) / len(limits)
        return math.ceil(question_count * average / 60)

    def _log_shortfalls(
        self,
        challenge: Challenge,
        scope: TopicScope,
        allocation: List[int],
        availability: List[int]
    ) -> None:
        for selector, requested, available in zip(scope.selectors, allocation, availability):
            if available >= requested:
                continue
            logger.warning(
                f"Question bank shortfall for {selector.label}: "
                f"{requested} requested, {available} available"
            )
            self.db.add(QuestionBankShortfall(
                challenge_id=challenge.id,
                subject=selector.subject,
                topic=selector.topic,
                subtopic=", ".join(selector.subtopics) if selector.subtopics else None,
                requested_count=requested,
                available_count=available,
                shortfall=requested - available,
            ))

    # ==================== Student Side ====================

    async def list_pending(self, student_id: UUID, now: Optional[datetime] = None) -> List[Challenge]:
        """Pending, unexpired challenges, newest first"""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(Challenge)
            .where(Challenge.assigned_to == student_id)
            .where(Challenge.status == ChallengeStatus.PENDING.value)
            .where(or_(Challenge.expires_at.is_(None), Challenge.expires_at > now))
            .order_by(Challenge.created_at.desc())
        )
        return list(result.scalars().all())

    async def dismiss(self, challenge_id: UUID, student_id: UUID) -> Challenge:
        try:
            challenge = await self.db.get(Challenge, challenge_id, with_for_update=True)
            if challenge is None:
                raise ChallengeNotFound(challenge_id)
            if challenge.assigned_to != student_id:
                raise SessionAccessDenied("challenge")
            if challenge.status == ChallengeStatus.DISMISSED.value:
                return challenge
            if challenge.status != ChallengeStatus.PENDING.value:
                raise ChallengeUnavailable(challenge_id, f"it is {challenge.status}")
            if challenge.session_id is not None:
                raise ChallengeUnavailable(challenge_id, "it is already in progress")

            challenge.status = ChallengeStatus.DISMISSED.value
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Challenge {challenge_id} dismissed by {student_id}")
        return challenge
