# ============================================================================
# API Dependencies
# ============================================================================
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_engine.core.database import get_db
from quiz_engine.core.locks import get_session_locks
from quiz_engine.services.quiz.challenge_builder import ChallengeBuilder
from quiz_engine.services.quiz.performance_tracker import TopicPerformanceTracker
from quiz_engine.services.quiz.session_manager import QuizSessionManager


async def get_tracker(db: AsyncSession = Depends(get_db)) -> TopicPerformanceTracker:
    return TopicPerformanceTracker(db)


async def get_session_manager(
    db: AsyncSession = Depends(get_db),
    tracker: TopicPerformanceTracker = Depends(get_tracker)
) -> QuizSessionManager:
    """
    Session manager bound to the request's database session.

    The lock registry is process-wide so concurrent requests for the same
    quiz session serialize on it.
    """
    return QuizSessionManager(db, tracker=tracker, locks=get_session_locks())


async def get_challenge_builder(
    db: AsyncSession = Depends(get_db),
    tracker: TopicPerformanceTracker = Depends(get_tracker)
) -> ChallengeBuilder:
    return ChallengeBuilder(db, tracker=tracker)
