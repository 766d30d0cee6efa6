# ============================================================================
# Session & Challenge Maintenance
# ============================================================================
"""
Periodic reconciliation run by the Celery beat worker.

The engine never expires anything on its own clock; these sweeps move idle
Active sessions to Abandoned and overdue pending challenges to Expired.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_engine.config import get_settings
from quiz_engine.models.challenge import Challenge, ChallengeStatus
from quiz_engine.models.quiz import QuizSession, SessionStatus
from quiz_engine.services.quiz.session_manager import mark_abandoned

logger = logging.getLogger(__name__)


async def reconcile_stale_sessions(
    db: AsyncSession,
    now: Optional[datetime] = None,
    max_idle_hours: Optional[int] = None
) -> int:
    """Abandon Active sessions idle for longer than STALE_SESSION_HOURS"""
    now = now or datetime.now(timezone.utc)
    if max_idle_hours is None:
        max_idle_hours = get_settings().STALE_SESSION_HOURS
    cutoff = now - timedelta(hours=max_idle_hours)

    result = await db.execute(
        select(QuizSession)
        .where(QuizSession.status == SessionStatus.ACTIVE.value)
        .where(QuizSession.last_activity_at < cutoff)
        .with_for_update(skip_locked=True)
    )
    stale = list(result.scalars().all())

    for session in stale:
        await mark_abandoned(db, session)

    await db.commit()
    if stale:
        logger.info(f"Reconciled {len(stale)} stale quiz sessions to abandoned")
    return len(stale)


async def expire_challenges(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Pending challenges past expires_at that no session has claimed"""
    now = now or datetime.now(timezone.utc)

    result = await db.execute(
        update(Challenge)
        .where(Challenge.status == ChallengeStatus.PENDING.value)
        .where(Challenge.session_id.is_(None))
        .where(Challenge.expires_at.is_not(None))
        .where(Challenge.expires_at <= now)
        .values(status=ChallengeStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if result.rowcount:
        logger.info(f"Expired {result.rowcount} pending challenges")
    return result.rowcount or 0
